"""
Hashing utilities for consent-gate
Canonical content fingerprints and file digests
"""

import hashlib
import json
import re
from typing import Any

import structlog
from pydantic import BaseModel

from ..constants import ConsentTokens
from ..exceptions import HashError

logger = structlog.get_logger(__name__)

FINGERPRINT_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def secure_hash(data: bytes, algorithm: str = 'sha256') -> str:
    """
    Create secure hash of data

    Args:
        data: Data to hash
        algorithm: Hash algorithm (sha256, sha512, blake2b)

    Returns:
        Hex-encoded hash string
    """
    if algorithm == 'sha256':
        hasher = hashlib.sha256()
    elif algorithm == 'sha512':
        hasher = hashlib.sha512()
    elif algorithm == 'blake2b':
        hasher = hashlib.blake2b()
    else:
        raise HashError(f"Unsupported hash algorithm: {algorithm}")

    hasher.update(data)
    return hasher.hexdigest()


def hash_string(text: str, algorithm: str = 'sha256') -> str:
    """Hash a string using specified algorithm"""
    return secure_hash(text.encode('utf-8'), algorithm)


def canonicalize(payload: Any) -> Any:
    """
    Normalize a payload for fingerprinting.

    Object keys are sorted at every nesting level, list order is kept.
    Integral floats collapse to ints so ``1.0`` renders as ``1``, matching
    the text a JavaScript issuer would have hashed.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

    if isinstance(payload, dict):
        return {str(key): canonicalize(payload[key]) for key in sorted(payload, key=str)}
    if isinstance(payload, (list, tuple)):
        return [canonicalize(item) for item in payload]
    if isinstance(payload, float) and payload.is_integer():
        return int(payload)
    return payload


def canonical_json(payload: Any) -> str:
    """Compact, key-sorted JSON text of a payload"""
    try:
        return json.dumps(
            canonicalize(payload),
            sort_keys=True,
            separators=(',', ':'),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        logger.error("Payload is not canonically serializable", error=str(e))
        raise HashError("Payload is not serializable for fingerprinting", reason=str(e))


def fingerprint(payload: Any) -> str:
    """
    Create deterministic fingerprint of a payload

    Args:
        payload: JSON-compatible structure or pydantic model

    Returns:
        64-char lowercase hex SHA-256 digest
    """
    return hash_string(canonical_json(payload), 'sha256')


def is_fingerprint(value: Any) -> bool:
    """Check that a value looks like a content fingerprint"""
    return isinstance(value, str) and bool(FINGERPRINT_PATTERN.match(value))


def hash_preview(value: str | None) -> str:
    """Shortened hash for log lines"""
    if not value:
        return "not_set"
    return value[:ConsentTokens.HASH_PREVIEW_CHARS] + "..."


def token_preview(token: str | None) -> str:
    """Shortened consent token for log lines"""
    if not token:
        return "missing"
    return token[:ConsentTokens.TOKEN_PREVIEW_CHARS] + "..."
