"""
ID generation utilities for consent-gate
Consent tokens and trace identifiers
"""

import secrets
import string
import time
import uuid
from typing import Optional

from ..constants import ConsentTokens

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_consent_token(timestamp_ms: Optional[int] = None) -> str:
    """Generate consent token: prefix, base36 millisecond timestamp, 128 random bits"""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    random_part = secrets.token_hex(ConsentTokens.RANDOM_BYTES)
    return f"{ConsentTokens.PREFIX}_{_to_base36(timestamp_ms)}_{random_part}"


def generate_trace_id() -> str:
    """Generate trace ID for request tracking"""
    return str(uuid.uuid4())
