# fleet_settlement/core/db.py

from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from fleet_settlement.core.config import settings
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AuditMixin:
    """Adds creation and last-update timestamps to a model."""

    created_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, comment="Row creation timestamp"
    )
    updated_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, comment="Last update timestamp"
    )


connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=True, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session and always closes it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Creates all tables registered on the declarative base."""
    # Model modules register their tables on import
    import fleet_settlement.ledger.models  # noqa: F401
    import fleet_settlement.obligations.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created", tables=sorted(Base.metadata.tables))
