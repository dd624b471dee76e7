"""
Custom Exceptions for the consent-gate release control module

Provides a unified exception hierarchy for consent lookups, policy
decisions, attachment signing, storage and delivery hand-off.
"""

from typing import Optional, Dict, Any, List


class SecurityError(Exception):
    """
    Base exception for all consent-gate errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SECURITY_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(SecurityError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)


class HashError(SecurityError):
    """Raised when a payload cannot be fingerprinted"""

    def __init__(self, message: str, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(message, "HASH_ERROR", details)


# =============================================================================
# CONSENT ERRORS
# =============================================================================

class ConsentError(SecurityError):
    """Base exception for consent-related errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "CONSENT_ERROR",
        token: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if token:
            # Never surface the full token
            details["token_preview"] = token[:8] + "..."
        super().__init__(message, error_code, details)


class ConsentNotFoundError(ConsentError):
    """Raised when no consent record exists for a token"""

    def __init__(self, token: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(
            message=reason or "Invalid or expired GDPR token - no consent record found",
            error_code="CONSENT_NOT_FOUND",
            token=token
        )


class ConsentExpiredError(ConsentError):
    """Raised when consent has expired"""

    def __init__(
        self,
        token: Optional[str] = None,
        expired_at: Optional[str] = None,
        reason: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if expired_at:
            details["expired_at"] = expired_at
        super().__init__(
            message=reason or "GDPR consent has expired",
            error_code="CONSENT_EXPIRED",
            token=token,
            details=details
        )


class HashMismatchError(ConsentError):
    """Raised when the payload fingerprint matches neither registered hash"""

    def __init__(
        self,
        token: Optional[str] = None,
        expected: Optional[List[str]] = None,
        received: Optional[str] = None,
        reason: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if expected:
            details["expected"] = expected
        if received:
            details["received"] = received
        super().__init__(
            message=reason or "Payload hash does not match registered consent",
            error_code="HASH_MISMATCH",
            token=token,
            details=details
        )


class SubjectMismatchError(ConsentError):
    """Raised when the recipient differs from the consented subject"""

    def __init__(self, token: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(
            message=reason or "subject mismatch",
            error_code="SUBJECT_MISMATCH",
            token=token
        )


class PurposeMismatchError(ConsentError):
    """Raised when the processing purpose differs from the consented purpose"""

    def __init__(self, token: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(
            message=reason or "purpose mismatch",
            error_code="PURPOSE_MISMATCH",
            token=token
        )


class SignedHashConflictError(ConsentError):
    """Raised when a different signed hash is already registered for a token"""

    def __init__(self, token: Optional[str] = None):
        super().__init__(
            message="A different signed hash is already registered for this consent",
            error_code="SIGNED_HASH_CONFLICT",
            token=token
        )


# =============================================================================
# POLICY ERRORS
# =============================================================================

class PolicyError(SecurityError):
    """Base exception for policy-related errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "POLICY_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class UnknownClassificationError(PolicyError):
    """Raised when a classification is outside the closed set"""

    def __init__(
        self,
        classification: Any,
        valid_classifications: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {"classification": str(classification)}
        if valid_classifications:
            details["valid_classifications"] = valid_classifications
        super().__init__(
            message=f"Invalid ISO 27001 classification: {classification}",
            error_code="UNKNOWN_CLASSIFICATION",
            details=details
        )


class PipelineStateError(PolicyError):
    """Raised on an illegal enforcement pipeline transition"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Illegal pipeline transition {current} -> {requested}",
            error_code="PIPELINE_STATE_ERROR",
            details={"current": current, "requested": requested}
        )


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class SigningFailureError(SecurityError):
    """Raised when an attachment could not be signed (fail closed)"""

    def __init__(
        self,
        attachment: Optional[str] = None,
        reason: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if attachment:
            details["attachment"] = attachment
        if reason:
            details["reason"] = reason
        message = "Attachment signing failed"
        if attachment:
            message = f"Failed to sign PDF {attachment}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "SIGNING_FAILED", details)


class DeliveryError(SecurityError):
    """Raised when an approved payload could not be handed to delivery"""

    def __init__(self, message: str = "Delivery hand-off failed", reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(message, "DELIVERY_FAILED", details)


class ConsentStorageError(SecurityError):
    """Raised when the consent store cannot complete an operation"""

    def __init__(self, operation: str, reason: Optional[str] = None):
        details: Dict[str, Any] = {"operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(
            message=f"Consent store operation failed: {operation}",
            error_code="STORAGE_ERROR",
            details=details
        )
