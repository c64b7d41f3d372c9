import logging
from pathlib import Path

from pydantic_settings import BaseSettings

ROOT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    APP_NAME: str = "Restaurant AI Workforce"

    DATABASE_URL: str = f"sqlite+aiosqlite:///{ROOT_DIR / 'workforce.db'}"

    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"

    # Event processor
    RUN_EVENT_PROCESSOR: bool = True
    EVENT_POLL_INTERVAL_SECONDS: float = 5.0
    EVENT_TIMEOUT_SECONDS: float | None = 300.0
    STALE_EVENT_AFTER_SECONDS: float = 900.0

    # SQLite only
    SQLITE_WAL: bool = True
    SQLITE_BUSY_TIMEOUT_MS: int = 30000

    FRONTEND_URL: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": str(ROOT_DIR / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # basicConfig leaves an already configured root alone
    logging.getLogger().setLevel(level)
