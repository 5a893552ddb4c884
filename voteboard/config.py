from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix VOTEBOARD_) or a .env file."""

    model_config = SettingsConfigDict(env_prefix="VOTEBOARD_", env_file=".env", case_sensitive=False)

    # "sql" keeps everything in the SQLAlchemy database, "redis" uses a Redis server
    store_backend: Literal["sql", "redis"] = "sql"

    # SQLite file will be created at the project root
    database_url: str = "sqlite:///./voteboard.db"
    redis_url: str = "redis://localhost:6379/0"

    # How often the SQL store is swept for expired keys (Redis expires keys on its own)
    sweep_interval_seconds: int = 60


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
