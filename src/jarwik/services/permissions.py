"""Account lookup and per-account permission flags.

Accounts live in a JSON file (``accounts.json`` in the data directory)
maintained by the web settings page:

    {
      "accounts": {
        "user-123": {
          "phone_numbers": ["+15551234567"],
          "permissions": {"email": true, "calendar": true, "sms": false}
        }
      }
    }

Permission lookups go through a TTL cache because every dispatched action
needs one.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Protocol

from jarwik.config import settings
from jarwik.services.cache import TTLCache, make_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Permissions:
    email: bool = False
    calendar: bool = False
    contacts: bool = False
    sms: bool = False
    calls: bool = False

    @property
    def any_granted(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Permissions":
        return cls(**{f.name: bool(data.get(f.name, False)) for f in fields(cls)})


class AccountStore(Protocol):
    async def get_permissions(self, account_id: str) -> Permissions | None: ...

    async def find_account_by_phone(self, phone_number: str) -> str | None: ...


def normalize_phone(phone_number: str) -> str:
    """Digits only, so "+1 (555) 123-4567" and "15551234567" compare equal."""
    return re.sub(r"\D", "", phone_number)


class JsonAccountStore:
    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else Path(settings.data_dir).expanduser() / "accounts.json"

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = json.load(f)
        return data.get("accounts", {})

    async def get_permissions(self, account_id: str) -> Permissions | None:
        accounts = await asyncio.to_thread(self._load)
        account = accounts.get(account_id)
        if account is None:
            return None
        return Permissions.from_dict(account.get("permissions", {}))

    async def find_account_by_phone(self, phone_number: str) -> str | None:
        wanted = normalize_phone(phone_number)
        if not wanted:
            return None
        accounts = await asyncio.to_thread(self._load)
        for account_id, account in accounts.items():
            numbers = account.get("phone_numbers", [])
            if any(normalize_phone(n) == wanted for n in numbers):
                return account_id
        return None


class CachedAccountStore:
    """Wraps an AccountStore, caching permission lookups for the cache TTL."""

    def __init__(self, store: AccountStore, cache: TTLCache | None = None):
        self.store = store
        if cache is None:
            cache = TTLCache(settings.permission_cache_ttl_seconds)
        self.cache = cache

    async def get_permissions(self, account_id: str) -> Permissions | None:
        key = make_key("permissions", account_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        permissions = await self.store.get_permissions(account_id)
        if permissions is not None:
            self.cache.set(key, permissions)
        return permissions

    async def find_account_by_phone(self, phone_number: str) -> str | None:
        return await self.store.find_account_by_phone(phone_number)

    def invalidate(self, account_id: str) -> None:
        self.cache.delete(make_key("permissions", account_id))
        logger.debug(f"Dropped cached permissions for {account_id}")
