from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    assistant_name: str = "Jarwik"
    public_url: str = "https://jarwik.live"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash-lite"
    anthropic_api_key: str = ""

    google_client_id: str = ""
    google_client_secret: str = ""

    # Twilio (SMS + voice calls)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # All natural-language times resolve against this zone
    user_timezone: str = "Asia/Kolkata"

    # Sentry error tracking
    sentry_dsn: str = ""
    sentry_environment: str = "production"

    # Lightweight classifier results above these go straight to the dispatcher
    chat_confidence_threshold: float = 0.8
    sms_confidence_threshold: float = 0.6
    # Fallback results without an explicit action must clear this to execute
    execute_confidence_threshold: float = 0.7

    fallback_timeout_seconds: float = 15.0
    transport_timeout_seconds: float = 20.0
    permission_cache_ttl_seconds: int = 300

    default_account_id: str = "default-user"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    log_level: str = "INFO"
    data_dir: str = "~/.jarwik"

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_gemini(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_anthropic(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_llm(self) -> bool:
        return self.has_gemini or self.has_openai or self.has_anthropic

    @property
    def has_google(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def has_twilio(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)

    @property
    def has_sentry(self) -> bool:
        return bool(self.sentry_dsn)


settings = Settings()
