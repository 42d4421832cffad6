import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from jarwik.config import settings

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.send",
]


def _safe_account_name(account_id: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in account_id)


class GoogleAuth:
    """Loads and refreshes saved OAuth tokens, one token file per account.

    Tokens are written by the web app's OAuth callback; this class only reads
    them and persists refreshed access tokens.
    """

    def __init__(self, token_dir: Path | str | None = None):
        base = Path(token_dir) if token_dir else Path(settings.data_dir).expanduser() / "tokens"
        self.token_dir = base
        self._credentials: dict[str, Credentials] = {}

    def token_path(self, account_id: str) -> Path:
        return self.token_dir / f"{_safe_account_name(account_id)}.json"

    def credentials_for(self, account_id: str) -> Credentials | None:
        creds = self._credentials.get(account_id)
        if creds is None:
            creds = self._load(account_id)
            if creds is None:
                return None
            self._credentials[account_id] = creds

        if creds.valid:
            return creds

        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                self._save(account_id, creds)
                return creds
            except Exception as e:
                logger.error(f"Failed to refresh token for {account_id}: {e}")
                return None

        return None

    def is_authenticated(self, account_id: str) -> bool:
        return self.credentials_for(account_id) is not None

    def _load(self, account_id: str) -> Credentials | None:
        path = self.token_path(account_id)
        if not path.exists():
            return None

        try:
            return Credentials.from_authorized_user_file(str(path), SCOPES)
        except Exception as e:
            logger.error(f"Failed to load saved credentials for {account_id}: {e}")
            return None

    def _save(self, account_id: str, creds: Credentials) -> None:
        path = self.token_path(account_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(creds.to_json())
