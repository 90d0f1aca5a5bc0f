import logging
import logging.handlers
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://scheduler:scheduler@db:5432/scheduler"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    redis_url: str = "redis://redis:6379/0"
    secret_key: str = "change-me"

    # HTTP
    cors_origins: str = "*"
    cors_allow_credentials: bool = True
    trusted_hosts: str = "*"
    rate_limit_schedule: str = "30/minute"
    run_migrations_on_startup: bool = True

    # Scheduling
    availability_granularity_minutes: int = 60
    availability_max_days: int = 62
    min_interview_minutes: int = 15
    max_interview_minutes: int = 480
    lock_timeout_seconds: float = 30.0
    lock_blocking_timeout_seconds: float = 10.0

    # Reminders / notifications
    reminder_lead_hours: int = 24
    reminder_interval_seconds: int = 3600
    notification_queue_key: str = "notifications:outbox"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10 MB
    log_backup_count: int = 5

    model_config = {"env_file": ".env"}

    @property
    def effective_database_url(self) -> str:
        # Heroku-style URLs still use the legacy scheme
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_hosts_list(self) -> list[str]:
        return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()


def setup_logging() -> None:
    """Configure application-wide logging with rotating file handlers.

    Creates three handlers:
    - Console: INFO+ with brief format (for container logs)
    - app.log: DEBUG+ with detailed format, rotated at 10 MB x 5 backups
    - error.log: ERROR+ only, rotated at 10 MB x 5 backups
    """
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # --- Console handler (brief, for Docker logs / stdout) ---
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(console)

    detail_fmt = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app_handler = logging.handlers.RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detail_fmt)
    root.addHandler(app_handler)

    err_handler = logging.handlers.RotatingFileHandler(
        log_dir / "error.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(detail_fmt)
    root.addHandler(err_handler)

    # --- Quiet noisy third-party loggers ---
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, dir=%s, max=%s MB x %d backup",
        settings.log_level, log_dir, settings.log_max_bytes // 1_048_576, settings.log_backup_count,
    )
