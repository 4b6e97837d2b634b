from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv


load_dotenv()

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = {
    "collection_name": "TABLE_NAME",
    "sender_email": "SES_EMAIL",
}


class ConfigurationMissing(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    app_name: str
    log_level: str
    collection_name: str
    sender_email: str
    store_backend: str
    index_name: str
    database_url: str
    aws_region: str | None
    page_size: int
    lookahead_days: int
    batch_size: int
    batch_delay_seconds: float
    locale: str
    renew_url: str
    schedule_hour_utc: int
    schedule_minute_utc: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "renewals"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        collection_name=os.getenv("TABLE_NAME", ""),
        sender_email=os.getenv("SES_EMAIL", ""),
        store_backend=os.getenv("STORE_BACKEND", "dynamodb").lower(),
        index_name=os.getenv("EXPIRY_INDEX_NAME", "status-endDate-index"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./subscriptions.db"),
        aws_region=os.getenv("AWS_REGION") or None,
        page_size=int(os.getenv("QUERY_PAGE_SIZE", "0")),
        lookahead_days=int(os.getenv("LOOKAHEAD_DAYS", "3")),
        batch_size=int(os.getenv("BATCH_SIZE", "25")),
        batch_delay_seconds=float(os.getenv("BATCH_DELAY_SECONDS", "0.2")),
        locale=os.getenv("NOTIFY_LOCALE", "es-ES"),
        renew_url=os.getenv("RENEW_URL", "https://tudominio.com/renovar"),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "8")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )


def missing_required_settings(settings: Settings) -> list[str]:
    return [env_name for field, env_name in REQUIRED_SETTINGS.items() if not getattr(settings, field)]


def log_missing_settings(settings: Settings) -> None:
    # Startup only reports; the run fails when the value is first needed.
    for env_name in missing_required_settings(settings):
        logger.error("required setting is not configured", extra={"setting": env_name})


def require_settings(settings: Settings) -> None:
    missing = missing_required_settings(settings)
    if missing:
        raise ConfigurationMissing(f"required settings are not configured: {', '.join(missing)}")
