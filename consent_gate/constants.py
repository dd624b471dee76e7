"""
Constants for the consent-gate release control module

Centralized values for consent tokens, classification levels, pipeline
reason codes and attachment signing.
"""

from typing import Final, Tuple

# =============================================================================
# SERVICE IDENTIFICATION
# =============================================================================

SERVICE_NAME: Final[str] = "consent-gate"

# =============================================================================
# CONSENT TOKENS
# =============================================================================

class ConsentTokens:
    """Consent token format and lifetime bounds"""
    PREFIX: Final[str] = "gdpr"
    RANDOM_BYTES: Final[int] = 16
    MAX_LENGTH: Final[int] = 100

    DEFAULT_EXPIRY_HOURS: Final[int] = 24
    MIN_EXPIRY_HOURS: Final[int] = 1
    MAX_EXPIRY_HOURS: Final[int] = 168  # 1 week

    DEFAULT_PURPOSE: Final[str] = "email_notification"

    # Log previews
    TOKEN_PREVIEW_CHARS: Final[int] = 8
    HASH_PREVIEW_CHARS: Final[int] = 16


# =============================================================================
# CLASSIFICATION
# =============================================================================

class ClassificationLevels:
    """ISO 27001 A.8.2 information classification levels"""
    INTERNAL: Final[str] = "internal"
    CONFIDENTIAL: Final[str] = "confidential"
    RESTRICTED: Final[str] = "restricted"

    ALL: Final[Tuple[str, ...]] = (INTERNAL, CONFIDENTIAL, RESTRICTED)

    # Applied at ingress when the request carries no classification
    FAIL_SAFE: Final[str] = RESTRICTED


# =============================================================================
# DECISION CODES
# =============================================================================

class DecisionCodes:
    """Machine-readable PDP decision codes"""
    CONSENT_VALID: Final[str] = "CONSENT_VALID"
    CONSENT_NOT_FOUND: Final[str] = "CONSENT_NOT_FOUND"
    HASH_MISMATCH: Final[str] = "HASH_MISMATCH"
    CONSENT_EXPIRED: Final[str] = "CONSENT_EXPIRED"
    SUBJECT_MISMATCH: Final[str] = "SUBJECT_MISMATCH"
    PURPOSE_MISMATCH: Final[str] = "PURPOSE_MISMATCH"


class RejectionReasons:
    """Pipeline rejection reasons reported by the enforcement point"""
    SCHEMA_INVALID: Final[str] = "schema_invalid"
    FIRST_VALIDATION_FAILED: Final[str] = "first_validation_failed"
    UNKNOWN_CLASSIFICATION: Final[str] = "unknown_classification"
    SIGNING_FAILED: Final[str] = "signing_failed"
    SECOND_VALIDATION_FAILED: Final[str] = "second_validation_failed"


# =============================================================================
# ATTACHMENT SIGNING
# =============================================================================

class SigningDefaults:
    """Attachment signing parameters"""
    SIGNED_SUFFIX: Final[str] = "_signed"
    PDF_EXTENSION: Final[str] = ".pdf"
    SIGNATURE_EXTENSION: Final[str] = ".p7s"
    TIMEOUT_SECONDS: Final[float] = 30.0


# =============================================================================
# EMAIL SCHEMA LIMITS
# =============================================================================

class EmailLimits:
    """Field bounds applied by the ingress schema validator"""
    ADDRESS_MAX: Final[int] = 320  # RFC 5321
    SUBJECT_MAX: Final[int] = 500
    BODY_MAX: Final[int] = 50000
    ATTACHMENTS_MAX: Final[int] = 10
    ATTACHMENT_NAME_MAX: Final[int] = 255
    ATTACHMENT_PATH_MAX: Final[int] = 500

    IMPORTANCE: Final[Tuple[str, ...]] = ("low", "normal", "high")


# =============================================================================
# STORAGE
# =============================================================================

class StorageDefaults:
    """Consent store housekeeping"""
    CLEANUP_INTERVAL_SECONDS: Final[int] = 3600
    TABLE_NAME: Final[str] = "consent_records"


# =============================================================================
# DELIVERY
# =============================================================================

class DeliveryDefaults:
    """Outbox sizing and shutdown"""
    OUTBOX_MAXSIZE: Final[int] = 1000
    FLUSH_TIMEOUT_SECONDS: Final[float] = 10.0


# =============================================================================
# AUDIT EVENT TYPES
# =============================================================================

class AuditEventTypes:
    """Audit event type identifiers"""
    PIPELINE_TRANSITION: Final[str] = "pipeline_transition"
    RELEASE_APPROVED: Final[str] = "release_approved"
    RELEASE_REJECTED: Final[str] = "release_rejected"
    DELIVERY_HANDOFF: Final[str] = "delivery_handoff"
    DELIVERY_FAILED: Final[str] = "delivery_failed"
