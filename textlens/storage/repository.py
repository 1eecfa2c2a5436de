"""Extraction record storage.

Create-only persistence of successful extractions using SQLAlchemy:
- SQLite by default, any SQLAlchemy URL in production
- records are never updated after creation, so concurrent pipeline
  workers can insert without coordination
- bounded connection retries at startup
"""

import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from textlens.exceptions import PersistenceError
from textlens.utils.logger import get_logger

logger = get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionRecord(Base):
    """SQLAlchemy model for one successfully processed image."""

    __tablename__ = "extractions"

    id = Column(String(32), primary_key=True)
    original_name = Column(String(255), nullable=False)
    storage_ref = Column(String(1024))
    extracted_text = Column(Text, nullable=False)
    raw_text = Column(Text)
    confidence = Column(Float)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "original_name": self.original_name,
            "storage_ref": self.storage_ref,
            "extracted_text": self.extracted_text,
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _create_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


class ExtractionRepository:
    """Create-only store for extraction records.

    Args:
        database_url: SQLAlchemy database URL.
        retries: Connection attempts made by :meth:`connect`.
        interval: Seconds to wait between attempts.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///textlens.db",
        retries: int = 5,
        interval: float = 5.0,
    ) -> None:
        self.database_url = database_url
        self.retries = max(1, retries)
        self.interval = interval
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def connected(self) -> bool:
        return self._session_factory is not None

    def connect(self) -> None:
        """Open the database and create the schema, retrying on failure.

        Raises:
            PersistenceError: If every attempt fails.
        """
        if self.connected:
            return

        for attempt in range(1, self.retries + 1):
            engine: Engine | None = None
            try:
                engine = _create_engine(self.database_url)
                with engine.connect():
                    pass
                Base.metadata.create_all(engine)
            except SQLAlchemyError as exc:
                if engine is not None:
                    engine.dispose()
                logger.warning(
                    "Database connection attempt %d/%d failed: %s",
                    attempt,
                    self.retries,
                    exc,
                )
                if attempt == self.retries:
                    raise PersistenceError(
                        f"Failed to connect to database after {self.retries} attempts"
                    ) from exc
                logger.info("Retrying in %.0f seconds...", self.interval)
                time.sleep(self.interval)
                continue

            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            logger.info("Database connected: %s", engine.url.render_as_string(hide_password=True))
            return

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def _sessions(self) -> sessionmaker:
        if self._session_factory is None:
            self.connect()
        if self._session_factory is None:
            raise PersistenceError(f"Database {self.database_url} is not connected")
        return self._session_factory

    def create(
        self,
        *,
        original_name: str,
        extracted_text: str,
        raw_text: str | None = None,
        confidence: float | None = None,
        storage_ref: str | None = None,
    ) -> str:
        """Store a new extraction record.

        Returns:
            Generated record identity.

        Raises:
            PersistenceError: If the insert fails.
        """
        record = ExtractionRecord(
            id=uuid.uuid4().hex,
            original_name=original_name,
            storage_ref=storage_ref,
            extracted_text=extracted_text,
            raw_text=raw_text,
            confidence=confidence,
            created_at=_utcnow(),
        )
        try:
            with self._sessions().begin() as session:
                session.add(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not store extraction for {original_name}") from exc

        logger.debug("Stored extraction %s for %s", record.id, original_name)
        return record.id

    def get(self, record_id: str) -> ExtractionRecord | None:
        with self._sessions()() as session:
            return session.get(ExtractionRecord, record_id)

    def count(self) -> int:
        with self._sessions()() as session:
            return session.scalar(select(func.count()).select_from(ExtractionRecord)) or 0
