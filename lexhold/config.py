import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/lexhold"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    celery_task_always_eager: bool = _env_bool("CELERY_TASK_ALWAYS_EAGER")
    reminder_sweep_seconds: int = int(os.getenv("REMINDER_SWEEP_SECONDS", "3600"))

    # Hold policy
    hold_number_prefix: str = os.getenv("HOLD_NUMBER_PREFIX", "LH")
    non_compliance_reminder_threshold: int = int(
        os.getenv("NON_COMPLIANCE_REMINDER_THRESHOLD", "3")
    )  # 0 disables
    hold_expiry_days: int = int(os.getenv("HOLD_EXPIRY_DAYS", "0"))  # 0 disables

    # Notification transport
    notification_webhook_url: str = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    notification_webhook_secret: str = os.getenv("NOTIFICATION_WEBHOOK_SECRET", "")
    notification_timeout_seconds: float = float(
        os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "30")
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv(
        "LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


settings = Settings()
