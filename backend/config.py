# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./stock_ledger.db"
    LOG_LEVEL: str = "INFO"

    # Optimistic concurrency: how many times an atomic operation is re-run
    # after a version conflict before giving up with StorageFailure.
    LEDGER_MAX_RETRIES: int = 5

    # False keeps reverted transactions as CANCELLED records (audit trail).
    # True removes the transaction and its items entirely.
    LEDGER_HARD_DELETE_ON_REVERT: bool = False

    FRONTEND_URL: str = "http://localhost:3000"

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
