"""
Utility functions for consent-gate
ID generation and ingress validation
"""

from .ids import generate_consent_token, generate_trace_id
from .validators import (
    EmailAttachment,
    EmailPayload,
    EmailSchemaValidator,
    SchemaValidationResult,
    email_content,
    validate_consent_token,
    validate_email_address,
    validate_expiry_hours,
)

__all__ = [
    # ID generation
    "generate_consent_token",
    "generate_trace_id",
    # Validators
    "EmailAttachment",
    "EmailPayload",
    "EmailSchemaValidator",
    "SchemaValidationResult",
    "email_content",
    "validate_consent_token",
    "validate_email_address",
    "validate_expiry_hours",
]
