"""
Consent data models for consent-gate
Records binding a token to a content fingerprint, recipient and purpose
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import ConsentTokens
from ..crypto.hash import FINGERPRINT_PATTERN


class HashType(str, Enum):
    """Which registered fingerprint a payload matched"""
    ORIGINAL = "original"
    SIGNED = "signed"


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ConsentRecord(BaseModel):
    """Stored consent grant for one outbound email"""
    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1, max_length=ConsentTokens.MAX_LENGTH)
    original_hash: str = Field(..., description="Fingerprint of the submitted payload")
    signed_hash: Optional[str] = Field(
        default=None,
        description="Fingerprint of the payload after attachment signing"
    )

    subject: str = Field(..., description="Recipient email address")
    purpose: str = Field(..., description="Purpose of processing")

    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    user_id: Optional[str] = Field(default=None)
    client_id: Optional[str] = Field(default=None)

    @field_validator("original_hash", "signed_hash")
    @classmethod
    def _check_fingerprint(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not FINGERPRINT_PATTERN.match(value):
            raise ValueError("must be a 64-char lowercase hex SHA-256 digest")
        return value

    @field_validator("created_at", "expires_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_lifetime(self) -> "ConsentRecord":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the consent window has closed"""
        now = as_utc(now) if now else utcnow()
        return self.expires_at <= now

    def matches_hash(self, payload_hash: str) -> Optional[HashType]:
        """Return which registered hash the payload matches, if any"""
        if payload_hash == self.original_hash:
            return HashType.ORIGINAL
        if self.signed_hash is not None and payload_hash == self.signed_hash:
            return HashType.SIGNED
        return None

    def with_signed_hash(self, signed_hash: str) -> "ConsentRecord":
        """Copy of the record with the signed hash registered"""
        return ConsentRecord(**{**self.model_dump(), "signed_hash": signed_hash})

    def to_public_dict(self) -> Dict[str, Any]:
        """Persisted / API layout of the record"""
        data = self.model_dump(mode="json")
        if data.get("signed_hash") is None:
            data.pop("signed_hash", None)
        return data


class ConsentStats(BaseModel):
    """Consent store counters"""
    total: int = 0
    active: int = 0
    expired: int = 0
