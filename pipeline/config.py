import os
from typing import List, Optional

DEFAULT_LEADS_TABLE = "social_media_contact_requests"
DEFAULT_APP_URL = "https://proposals.getshortcut.co"


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _list_env(name: str) -> List[str]:
    return [item.strip() for item in (os.getenv(name) or "").split(",") if item.strip()]


class Settings:
    """Runtime configuration read from the environment (and .env via python-dotenv)."""

    def __init__(self):
        # Key-value store for attribution blobs and the submission gate
        self.redis_url: Optional[str] = os.getenv("REDIS_URL")
        self.attribution_ttl_days = _int_env("ATTRIBUTION_TTL_DAYS", 90)
        self.submission_cooldown_seconds = _int_env("SUBMISSION_COOLDOWN_SECONDS", 300)

        # Persistence sink
        self.supabase_url = (os.getenv("SUPABASE_URL") or "").rstrip("/")
        self.supabase_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
        self.leads_table = os.getenv("LEADS_TABLE", DEFAULT_LEADS_TABLE)

        # Notification endpoints
        self.slack_webhook_url = os.getenv("SLACK_WEBHOOK_URL")
        self.slack_proposals_webhook_url = os.getenv("SLACK_WEBHOOK_URL_PROPOSALS") or self.slack_webhook_url
        self.slack_bot_token = os.getenv("SLACK_BOT_TOKEN")
        self.slack_default_channel = os.getenv("SLACK_DEFAULT_CHANNEL", "#sales-leads")
        self.discord_webhook_url = os.getenv("DISCORD_WEBHOOK_URL")
        self.sendgrid_api_key = os.getenv("SENDGRID_API_KEY")
        self.email_recipients = _list_env("EMAIL_NOTIFICATIONS")
        self.email_from = os.getenv("EMAIL_FROM", "notifications@getshortcut.co")
        self.app_url = os.getenv("APP_URL", DEFAULT_APP_URL).rstrip("/")
        self.notify_webhook_secret = os.getenv("NOTIFY_WEBHOOK_SECRET", "")

        self.http_timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    @property
    def attribution_ttl_ms(self) -> int:
        return self.attribution_ttl_days * 24 * 60 * 60 * 1000


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Load and cache settings from the environment."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests change the environment between cases)."""
    global _settings
    _settings = None
