"""
Database initialization and session management.
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from sefbooks.core.config import get_settings
from sefbooks.core.logging_config import get_logger
from sefbooks.infrastructure.database import models

logger = get_logger("database")


def create_db_engine(url: str) -> Engine:
    """SQLite (file ili :memory:) ili PostgreSQL."""
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(url, echo=False)


DATABASE_URL = get_settings().database_url

engine = create_db_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Initialize database - create all tables."""
    bind = bind or engine
    if bind.url.get_backend_name() == "sqlite" and bind.url.database not in (None, "", ":memory:"):
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(bind=bind, tables=[
        model.__table__
        for model in (
            models.Company,
            models.Invoice,
            models.InvoiceLine,
            models.BankStatement,
            models.BankTransaction,
            models.Payment,
            models.VATPeriodReport,
            models.PettyCashAccount,
            models.PettyCashEntry,
        )
    ])
    logger.info("Database initialized", extra={"backend": bind.url.get_backend_name()})


if __name__ == "__main__":
    init_db()
    print("Database initialized successfully!")
