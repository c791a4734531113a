"""
Configuration - environment driven settings for the engine.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache


def get_engine_url(database_type: str | None = None) -> str:
    """Database URL iz okruženja (DATABASE_TYPE, DATABASE_PATH, DB_*)."""
    db_type = database_type or os.getenv("DATABASE_TYPE", "sqlite")

    if db_type == "sqlite":
        db_path = os.getenv("DATABASE_PATH", "./data/sefbooks.db")
        return f"sqlite:///{db_path}"
    elif db_type == "postgresql":
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        dbname = os.getenv("DB_NAME", "sefbooks")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        return f"postgresql://{user}:{password}@{host}:{port}/{dbname}"
    else:
        raise ValueError(f"Unsupported database type: {db_type}")


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    match_tolerance: Decimal = Decimal("0.01")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL") or get_engine_url(),
            log_level=os.getenv("SEFBOOKS_LOG_LEVEL", "INFO").upper(),
            match_tolerance=Decimal(os.getenv("SEFBOOKS_MATCH_TOLERANCE", "0.01")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
