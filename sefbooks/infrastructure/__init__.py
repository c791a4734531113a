"""Infrastructure layer."""

from sefbooks.infrastructure.database import SessionLocal, init_db
from sefbooks.infrastructure.database.repositories import SqlUnitOfWork
from sefbooks.infrastructure.memory import InMemoryStore, InMemoryUnitOfWork
