"""
Consent issuance for consent-gate
Creates consent records bound to a payload fingerprint
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models import ConsentRecord, ConsentStats, as_utc, utcnow
from .storage import ConsentStore, create_consent_store
from ..config import GateConfig, get_gate_config
from ..crypto.hash import fingerprint, hash_preview, is_fingerprint, token_preview
from ..exceptions import ValidationError
from ..utils.ids import generate_consent_token, generate_trace_id
from ..utils.validators import email_content, validate_email_address, validate_expiry_hours

logger = structlog.get_logger(__name__)


class ConsentTokenRequest(BaseModel):
    """Request for a new consent token"""
    recipient_email: str
    purpose: Optional[str] = None
    email_payload: Dict[str, Any]
    expires_in_hours: Optional[int] = None
    user_id: Optional[str] = None
    client_id: Optional[str] = None


class SignedHashRequest(BaseModel):
    """Post-signing payload to register against an existing consent"""
    signed_payload: Dict[str, Any] = Field(..., description="Payload with rewritten attachment paths")


class ConsentIssuer:
    """Issues consent records and stores them"""

    def __init__(self, store: Optional[ConsentStore] = None,
                 config: Optional[GateConfig] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or get_gate_config()
        self.store = store or create_consent_store(self.config)
        self.clock = clock or utcnow

    def issue(self, email_payload: Any, recipient_email: str,
              purpose: Optional[str] = None, expires_in_hours: Optional[int] = None,
              user_id: Optional[str] = None, client_id: Optional[str] = None) -> ConsentRecord:
        """Issue a consent for the fingerprint of the submitted payload"""
        payload_hash = fingerprint(email_content(email_payload))
        return self.issue_for_hash(payload_hash, recipient_email, purpose,
                                   expires_in_hours, user_id, client_id)

    def issue_for_hash(self, payload_hash: str, recipient_email: str,
                       purpose: Optional[str] = None, expires_in_hours: Optional[int] = None,
                       user_id: Optional[str] = None,
                       client_id: Optional[str] = None) -> ConsentRecord:
        """Issue a consent for a precomputed payload fingerprint"""
        trace_id = generate_trace_id()

        if not is_fingerprint(payload_hash):
            raise ValidationError("payload_hash must be a 64-char lowercase hex digest",
                                  field="payload_hash")
        recipient_email = validate_email_address(recipient_email)
        purpose = purpose or self.config.default_purpose
        hours = validate_expiry_hours(
            expires_in_hours if expires_in_hours is not None
            else self.config.default_token_expiry_hours,
            max_hours=self.config.max_token_expiry_hours,
        )

        logger.info("Generating consent token", trace_id=trace_id,
                    recipient=recipient_email, purpose=purpose,
                    payload_hash=hash_preview(payload_hash), expires_in_hours=hours)

        created_at = as_utc(self.clock())
        try:
            record = ConsentRecord(
                token=generate_consent_token(),
                original_hash=payload_hash,
                subject=recipient_email,
                purpose=purpose,
                created_at=created_at,
                expires_at=created_at + timedelta(hours=hours),
                user_id=user_id,
                client_id=client_id,
            )
        except PydanticValidationError as exc:
            raise ValidationError("Invalid consent record", details={"errors": [e["msg"] for e in exc.errors()]})

        self.store.save(record)

        logger.info("Consent token generated", trace_id=trace_id,
                    token_preview=token_preview(record.token),
                    expires_at=record.expires_at.isoformat(), recipient=recipient_email)
        return record

    def issue_from_request(self, request: ConsentTokenRequest) -> ConsentRecord:
        """Issue a consent from a request model"""
        return self.issue(
            request.email_payload,
            request.recipient_email,
            purpose=request.purpose,
            expires_in_hours=request.expires_in_hours,
            user_id=request.user_id,
            client_id=request.client_id,
        )

    def register_signed_payload(self, token: str, signed_payload: Any) -> bool:
        """Register the fingerprint of the post-signing payload for a consent"""
        signed_hash = fingerprint(signed_payload)
        ok = self.store.update_signed_hash(token, signed_hash)
        if not ok:
            logger.warning("Signed payload registration failed - token not found",
                           token_preview=token_preview(token))
        return ok

    def validate_token(self, token: str, payload_hash: str, recipient_email: str,
                       purpose: Optional[str] = None):
        """Decision the PDP would take for a token (inspection only)"""
        # policy imports the consent package at load time
        from ..policy.pdp import PolicyDecisionPoint

        return PolicyDecisionPoint(self.store, self.clock).decide(
            token, payload_hash, recipient_email, purpose
        )

    def revoke(self, token: str) -> bool:
        """Withdraw a consent before it expires"""
        removed = self.store.delete(token)
        if removed:
            logger.info("Revoked consent", token_preview=token_preview(token))
        return removed

    def stats(self) -> ConsentStats:
        """Consent store statistics"""
        return self.store.stats()


# Global issuer instance
_consent_issuer: Optional[ConsentIssuer] = None


def get_consent_issuer() -> ConsentIssuer:
    """Get the global consent issuer instance"""
    global _consent_issuer
    if _consent_issuer is None:
        _consent_issuer = ConsentIssuer()
    return _consent_issuer


def set_consent_issuer(issuer: Optional[ConsentIssuer]) -> None:
    """Replace the global consent issuer (startup wiring and tests)"""
    global _consent_issuer
    _consent_issuer = issuer


def issue_consent(email_payload: Any, recipient_email: str,
                  purpose: Optional[str] = None,
                  expires_in_hours: Optional[int] = None) -> ConsentRecord:
    """Issue a consent using the global issuer"""
    return get_consent_issuer().issue(email_payload, recipient_email, purpose, expires_in_hours)
