"""
Consent storage adapters for consent-gate
Token-indexed consent record stores with expiry housekeeping
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Optional, Dict
from datetime import datetime, UTC
import structlog
from sqlalchemy import create_engine, Column, String, DateTime, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import ConsentRecord, ConsentStats, as_utc, utcnow
from ..config import GateConfig, get_gate_config
from ..constants import StorageDefaults
from ..crypto.hash import hash_preview, token_preview
from ..exceptions import ConsentStorageError, SignedHashConflictError

logger = structlog.get_logger(__name__)

Base = declarative_base()


class ConsentStore(ABC):
    """Contract shared by every consent record store"""

    @abstractmethod
    def save(self, record: ConsentRecord) -> None:
        """Insert or overwrite a record by token"""

    @abstractmethod
    def get(self, token: str) -> Optional[ConsentRecord]:
        """Fetch a record by token"""

    @abstractmethod
    def update_signed_hash(self, token: str, signed_hash: str) -> bool:
        """Register the post-signing fingerprint; False when the token is unknown"""

    @abstractmethod
    def delete(self, token: str) -> bool:
        """Remove a record; False when the token is unknown"""

    @abstractmethod
    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete every record whose expires_at is in the past"""

    @abstractmethod
    def stats(self, now: Optional[datetime] = None) -> ConsentStats:
        """Total, active and expired record counts"""


class InMemoryConsentStore(ConsentStore):
    """Process-local store, all access serialized through one lock"""

    def __init__(self):
        self._records: Dict[str, ConsentRecord] = {}
        self._lock = threading.RLock()

    def save(self, record: ConsentRecord) -> None:
        with self._lock:
            self._records[record.token] = record

        logger.info("Consent record saved", token_preview=token_preview(record.token),
                    subject=record.subject, purpose=record.purpose,
                    expires_at=record.expires_at.isoformat(),
                    has_signed_hash=record.signed_hash is not None)

    def get(self, token: str) -> Optional[ConsentRecord]:
        with self._lock:
            return self._records.get(token)

    def update_signed_hash(self, token: str, signed_hash: str) -> bool:
        with self._lock:
            record = self._records.get(token)
            if record is None:
                logger.warning("Consent record not found for signed hash update",
                               token_preview=token_preview(token))
                return False

            if record.signed_hash is not None:
                if record.signed_hash == signed_hash:
                    return True
                raise SignedHashConflictError(token)

            # Records are frozen; swap in a complete copy
            self._records[token] = record.with_signed_hash(signed_hash)

        logger.info("Consent signed hash updated", token_preview=token_preview(token),
                    signed_hash=hash_preview(signed_hash))
        return True

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._records.pop(token, None) is not None

    def cleanup(self, now: Optional[datetime] = None) -> int:
        now = as_utc(now) if now else utcnow()
        with self._lock:
            expired = [token for token, record in self._records.items()
                       if record.expires_at < now]
            for token in expired:
                del self._records[token]
            remaining = len(self._records)

        if expired:
            logger.info("Consent cleanup completed", expired_tokens=len(expired),
                        remaining_tokens=remaining)
        return len(expired)

    def stats(self, now: Optional[datetime] = None) -> ConsentStats:
        now = as_utc(now) if now else utcnow()
        with self._lock:
            records = list(self._records.values())

        expired = sum(1 for record in records if record.expires_at < now)
        return ConsentStats(total=len(records), active=len(records) - expired, expired=expired)


class ConsentRecordDB(Base):
    """SQLAlchemy model for consent records"""
    __tablename__ = StorageDefaults.TABLE_NAME

    token = Column(String(100), primary_key=True)
    original_hash = Column(String(64), nullable=False)
    signed_hash = Column(String(64))

    subject = Column(String(320), nullable=False, index=True)
    purpose = Column(String, nullable=False)

    # Naive UTC
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    user_id = Column(String)
    client_id = Column(String)


def _naive_utc(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


class SQLConsentStore(ConsentStore):
    """Storage adapter for consent records backed by a SQL database"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or "sqlite:///consent.db"

        engine_kwargs = {}
        if self.database_url.startswith("sqlite") and ":memory:" in self.database_url:
            # Every session must see the same in-memory database
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        self.engine = create_engine(self.database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)

        Base.metadata.create_all(bind=self.engine)

    def _to_db_model(self, record: ConsentRecord) -> ConsentRecordDB:
        """Convert ConsentRecord to database model"""
        return ConsentRecordDB(
            token=record.token,
            original_hash=record.original_hash,
            signed_hash=record.signed_hash,
            subject=record.subject,
            purpose=record.purpose,
            created_at=_naive_utc(record.created_at),
            expires_at=_naive_utc(record.expires_at),
            user_id=record.user_id,
            client_id=record.client_id,
        )

    def _from_db_model(self, db_record: ConsentRecordDB) -> ConsentRecord:
        """Convert database model to ConsentRecord"""
        return ConsentRecord(
            token=db_record.token,
            original_hash=db_record.original_hash,
            signed_hash=db_record.signed_hash,
            subject=db_record.subject,
            purpose=db_record.purpose,
            created_at=as_utc(db_record.created_at),
            expires_at=as_utc(db_record.expires_at),
            user_id=db_record.user_id,
            client_id=db_record.client_id,
        )

    def save(self, record: ConsentRecord) -> None:
        try:
            with self.SessionLocal() as session:
                session.merge(self._to_db_model(record))
                session.commit()

        except SQLAlchemyError as e:
            logger.error("Failed to store consent", token_preview=token_preview(record.token),
                         error=str(e))
            raise ConsentStorageError("save", str(e)) from e

        logger.info("Stored consent record", token_preview=token_preview(record.token),
                    subject=record.subject, purpose=record.purpose)

    def get(self, token: str) -> Optional[ConsentRecord]:
        try:
            with self.SessionLocal() as session:
                db_record = session.get(ConsentRecordDB, token)
                if db_record:
                    return self._from_db_model(db_record)
                return None

        except SQLAlchemyError as e:
            logger.error("Failed to get consent", token_preview=token_preview(token), error=str(e))
            raise ConsentStorageError("get", str(e)) from e

    def update_signed_hash(self, token: str, signed_hash: str) -> bool:
        try:
            with self.SessionLocal() as session:
                db_record = session.get(ConsentRecordDB, token, with_for_update=True)
                if not db_record:
                    logger.warning("Consent record not found for signed hash update",
                                   token_preview=token_preview(token))
                    return False

                if db_record.signed_hash is not None:
                    if db_record.signed_hash == signed_hash:
                        return True
                    raise SignedHashConflictError(token)

                db_record.signed_hash = signed_hash
                session.commit()

        except SQLAlchemyError as e:
            logger.error("Failed to update signed hash", token_preview=token_preview(token),
                         error=str(e))
            raise ConsentStorageError("update_signed_hash", str(e)) from e

        logger.info("Consent signed hash updated", token_preview=token_preview(token),
                    signed_hash=hash_preview(signed_hash))
        return True

    def delete(self, token: str) -> bool:
        try:
            with self.SessionLocal() as session:
                deleted = session.query(ConsentRecordDB).filter_by(token=token).delete()
                session.commit()
                return deleted > 0

        except SQLAlchemyError as e:
            logger.error("Failed to delete consent", token_preview=token_preview(token),
                         error=str(e))
            raise ConsentStorageError("delete", str(e)) from e

    def cleanup(self, now: Optional[datetime] = None) -> int:
        now = _naive_utc(now or datetime.now(UTC))
        try:
            with self.SessionLocal() as session:
                deleted = session.query(ConsentRecordDB).filter(
                    ConsentRecordDB.expires_at < now
                ).delete()
                session.commit()

        except SQLAlchemyError as e:
            logger.error("Failed to cleanup expired consents", error=str(e))
            raise ConsentStorageError("cleanup", str(e)) from e

        if deleted:
            logger.info("Consent cleanup completed", expired_tokens=deleted)
        return deleted

    def stats(self, now: Optional[datetime] = None) -> ConsentStats:
        now = _naive_utc(now or datetime.now(UTC))
        try:
            with self.SessionLocal() as session:
                total = session.scalar(select(func.count()).select_from(ConsentRecordDB)) or 0
                expired = session.scalar(
                    select(func.count()).select_from(ConsentRecordDB)
                    .where(ConsentRecordDB.expires_at < now)
                ) or 0

        except SQLAlchemyError as e:
            logger.error("Failed to compute consent stats", error=str(e))
            raise ConsentStorageError("stats", str(e)) from e

        return ConsentStats(total=total, active=total - expired, expired=expired)


def create_consent_store(config: Optional[GateConfig] = None) -> ConsentStore:
    """Build the store selected by configuration"""
    config = config or get_gate_config()
    if config.database_url:
        return SQLConsentStore(config.database_url)
    return InMemoryConsentStore()


async def run_periodic_cleanup(store: ConsentStore, interval_seconds: float) -> None:
    """Purge expired consents every interval until cancelled"""
    logger.info("Consent cleanup task started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            store.cleanup()
        except ConsentStorageError as e:
            # Next tick retries; expired records are still denied by the PDP
            logger.error("Scheduled consent cleanup failed", error=e.message)
