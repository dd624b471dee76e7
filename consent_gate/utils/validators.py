"""
Ingress validators for consent-gate

Structural and field-level checks for outbound email requests before any
consent decision is taken, plus the explicit classification fail-safe.
"""

import re
from typing import Optional, Any, List, Dict

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..config import GateConfig, MissingClassificationMode, get_gate_config
from ..constants import ClassificationLevels, ConsentTokens, EmailLimits
from ..exceptions import ValidationError

logger = structlog.get_logger(__name__)

# =============================================================================
# REGEX PATTERNS
# =============================================================================

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ATTACHMENT_NAME_PATTERN = re.compile(r'^[^<>:"/\\|?*]+$')
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_\-.]+$")

# Request metadata, never part of the consent fingerprint
METADATA_FIELDS = ("classification", "gdpr_token")

# =============================================================================
# SCHEMA MODELS
# =============================================================================


def _check_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address format")
    return value


class EmailAttachment(BaseModel):
    """File reference carried by an email"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=EmailLimits.ATTACHMENT_NAME_MAX)
    path: str = Field(..., min_length=1, max_length=EmailLimits.ATTACHMENT_PATH_MAX)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not ATTACHMENT_NAME_PATTERN.match(value):
            raise ValueError("Invalid characters in attachment name")
        return value


class EmailPayload(BaseModel):
    """ISO 27001 compliant outbound email request"""
    model_config = ConfigDict(populate_by_name=True)

    to: str = Field(..., max_length=EmailLimits.ADDRESS_MAX)
    subject: str = Field(..., min_length=1, max_length=EmailLimits.SUBJECT_MAX)
    body: str = Field(..., min_length=1, max_length=EmailLimits.BODY_MAX)
    sender: Optional[str] = Field(default=None, alias="from", max_length=EmailLimits.ADDRESS_MAX)
    attachments: Optional[List[EmailAttachment]] = Field(
        default=None, max_length=EmailLimits.ATTACHMENTS_MAX
    )
    classification: Optional[str] = None
    importance: Optional[str] = None
    gdpr_token: Optional[str] = Field(default=None, min_length=1, max_length=ConsentTokens.MAX_LENGTH)

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("sender")
    @classmethod
    def _check_sender(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value) if value is not None else value

    @field_validator("classification", mode="before")
    @classmethod
    def _check_classification(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = getattr(value, "value", value)
        if value not in ClassificationLevels.ALL:
            raise ValueError("Classification must be one of: "
                             + ", ".join(ClassificationLevels.ALL))
        return value

    @field_validator("importance")
    @classmethod
    def _check_importance(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in EmailLimits.IMPORTANCE:
            raise ValueError(f"importance must be one of: {', '.join(EmailLimits.IMPORTANCE)}")
        return value

    def content(self) -> Dict[str, Any]:
        """
        Fields covered by the consent fingerprint.

        Classification and the token are request metadata, and optional
        fields the caller never sent are left out so the digest matches the
        payload the consent was issued for.
        """
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_unset=True,
            exclude_none=True,
            exclude=set(METADATA_FIELDS),
        )


class SchemaValidationResult(BaseModel):
    """Outcome of ingress validation"""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    email: Optional[EmailPayload] = None
    classification_defaulted: bool = False


# =============================================================================
# VALIDATORS
# =============================================================================

class EmailSchemaValidator:
    """Validates outbound email payloads and applies the classification fail-safe"""

    def __init__(self, config: Optional[GateConfig] = None):
        self.config = config or get_gate_config()

    def validate(self, payload: Any,
                 classification: Optional[Any] = None) -> SchemaValidationResult:
        """
        Validate a raw payload.

        Args:
            payload: Raw request body
            classification: Classification supplied alongside the body; wins
                over the one inside it

        Returns:
            SchemaValidationResult with the parsed email when valid
        """
        if not isinstance(payload, dict):
            return SchemaValidationResult(valid=False, errors=["payload: must be an object"])

        data = dict(payload)
        if classification is not None:
            data["classification"] = classification

        try:
            email = EmailPayload.model_validate(data)
        except PydanticValidationError as exc:
            errors = [_format_error(err) for err in exc.errors()]
            logger.warning("Email payload failed schema validation",
                           validation_errors=len(errors))
            return SchemaValidationResult(valid=False, errors=errors)

        defaulted = False
        if email.classification is None:
            # Fail-safe branch for requests without a classification
            if self.config.missing_classification_policy == MissingClassificationMode.REJECT:
                logger.warning("Email payload rejected - classification missing")
                return SchemaValidationResult(
                    valid=False,
                    errors=["classification: Classification must be one of: "
                            + ", ".join(ClassificationLevels.ALL)],
                )
            email.classification = ClassificationLevels.FAIL_SAFE
            defaulted = True
            logger.info("Classification missing, applying fail-safe",
                        classification=ClassificationLevels.FAIL_SAFE)

        return SchemaValidationResult(valid=True, email=email, classification_defaulted=defaulted)


def email_content(payload: Any) -> Dict[str, Any]:
    """
    Fingerprinted part of an email payload.

    Raw dicts are parsed through EmailPayload first so issuance and
    enforcement hash the same projection. Keys outside the schema are
    dropped on both sides.

    Raises:
        ValidationError: If the payload is not a valid email payload
    """
    if isinstance(payload, EmailPayload):
        return payload.content()
    if not isinstance(payload, dict):
        raise ValidationError("email_payload must be an object", field="email_payload")
    try:
        return EmailPayload.model_validate(payload).content()
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid email payload",
            field="email_payload",
            details={"errors": [_format_error(err) for err in exc.errors()]},
        )


def _format_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "payload"
    return f"{location}: {error.get('msg', 'invalid')}"


def validate_consent_token(
    token: Any,
    field_name: str = "gdpr_token",
    required: bool = True
) -> Optional[str]:
    """
    Validate consent token format.

    Args:
        token: Token to validate
        field_name: Field name for error messages
        required: Whether the field is required

    Returns:
        Validated token string or None

    Raises:
        ValidationError: If validation fails
    """
    if token is None or (isinstance(token, str) and not token.strip()):
        if required:
            raise ValidationError(f"{field_name} is required", field=field_name)
        return None

    if not isinstance(token, str):
        raise ValidationError(f"{field_name} must be a string", field=field_name)

    token = token.strip()

    if len(token) > ConsentTokens.MAX_LENGTH:
        raise ValidationError(f"{field_name} exceeds maximum length", field=field_name)

    if not TOKEN_PATTERN.match(token):
        raise ValidationError(f"{field_name} contains invalid characters", field=field_name)

    return token


def validate_email_address(
    address: Any,
    field_name: str = "recipient_email"
) -> str:
    """Validate a single email address"""
    if not isinstance(address, str) or not address.strip():
        raise ValidationError(f"{field_name} is required", field=field_name)

    address = address.strip()
    if len(address) > EmailLimits.ADDRESS_MAX or not EMAIL_PATTERN.match(address):
        raise ValidationError("Invalid email format", field=field_name)
    return address


def validate_expiry_hours(
    hours: Any,
    field_name: str = "expires_in_hours",
    min_hours: int = ConsentTokens.MIN_EXPIRY_HOURS,
    max_hours: int = ConsentTokens.MAX_EXPIRY_HOURS
) -> int:
    """
    Validate a consent lifetime in hours.

    Raises:
        ValidationError: If the value is not an integer within bounds
    """
    if isinstance(hours, bool):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    try:
        hours_int = int(hours)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)

    if hours_int != hours:
        raise ValidationError(f"{field_name} must be an integer", field=field_name)

    if hours_int < min_hours:
        raise ValidationError(f"{field_name} must be at least {min_hours}", field=field_name)

    if hours_int > max_hours:
        raise ValidationError(f"{field_name} cannot exceed {max_hours}", field=field_name)

    return hours_int
