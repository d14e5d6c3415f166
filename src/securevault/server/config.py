# Server configuration, read from the environment and .env
from functools import lru_cache
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- basics ---
    PROJECT_NAME: str = "SecureVault Server"
    API_PREFIX: str = "/api"

    # --- storage ---
    # "file" keeps JSON files under DATA_DIR, "sql" uses DATABASE_URL
    STORAGE_BACKEND: Literal["file", "sql"] = "file"
    DATA_DIR: str = "./data"
    DATABASE_URL: str = "sqlite:///./securevault.db"
    SQL_ECHO: bool = False
    # upper bound for lock waits and database busy/pool waits
    STORAGE_TIMEOUT_SECONDS: float = 5.0

    # --- auth ---
    SESSION_TTL_HOURS: float = 24
    # work factor for new password hashes; existing users keep theirs
    KDF_ITERATIONS: int = 120000

    # --- http ---
    # empty list disables CORS headers
    CORS_ORIGINS: List[str] = ["*"]

    # --- logging ---
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
