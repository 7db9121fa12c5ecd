from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "bruteguard"

    # SQLAlchemy URL of the store holding the failure counters
    DATABASE_URL: str = "sqlite:///./bruteguard.db"

    # type -> max fail_count before checks of that type are blocked (JSON in env)
    THRESHOLDS: dict[str, int] = {"ip": 10000, "user": 10000, "token": 10000}

    # Cleanup pass: drop counters older than this with fewer than CLEANUP_MAX_FAILS
    CLEANUP_MIN_AGE_SECONDS: int = 3600
    CLEANUP_MAX_FAILS: int = 50  # 0.5% of the default threshold
    CLEANUP_INTERVAL_MINUTES: int = 60

    # Window used by operator listings of blocked values
    BLOCKED_MAX_AGE_SECONDS: int = 2419200  # 4 weeks

    LOG_JSON: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
