"""
Policy Decision Point for consent-gate
Evaluates whether a payload fingerprint is covered by a stored consent
"""

from datetime import datetime
from typing import Callable, Dict, Optional, Type
from pydantic import BaseModel
import structlog

from ..consent.models import HashType, as_utc, utcnow
from ..consent.storage import ConsentStore
from ..constants import DecisionCodes
from ..crypto.hash import hash_preview, token_preview
from ..exceptions import (
    ConsentError,
    ConsentExpiredError,
    ConsentNotFoundError,
    HashMismatchError,
    PurposeMismatchError,
    SubjectMismatchError,
)

logger = structlog.get_logger(__name__)


class Decision(BaseModel):
    """Outcome of a single PDP evaluation"""
    allow: bool
    reason: str
    code: str
    hash_type: Optional[HashType] = None

    def to_error(self, token: Optional[str] = None) -> Optional[ConsentError]:
        """Exception matching a denial, None on allow"""
        if self.allow:
            return None
        error_cls = _DENIAL_ERRORS.get(self.code, ConsentError)
        if error_cls is ConsentError:
            return ConsentError(self.reason, self.code, token=token)
        return error_cls(token=token, reason=self.reason)


_DENIAL_ERRORS: Dict[str, Type[ConsentError]] = {
    DecisionCodes.CONSENT_NOT_FOUND: ConsentNotFoundError,
    DecisionCodes.HASH_MISMATCH: HashMismatchError,
    DecisionCodes.CONSENT_EXPIRED: ConsentExpiredError,
    DecisionCodes.SUBJECT_MISMATCH: SubjectMismatchError,
    DecisionCodes.PURPOSE_MISMATCH: PurposeMismatchError,
}


def _deny(code: str, reason: str) -> Decision:
    return Decision(allow=False, reason=reason, code=code)


class PolicyDecisionPoint:
    """
    Consent policy evaluation.

    Checks run in a fixed order and the first failure wins:
    token exists, hash matches original or signed, not expired,
    subject matches, purpose matches (when given).
    """

    def __init__(self, store: ConsentStore,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or utcnow

    def decide(self, token: str, payload_hash: str, subject: str,
               purpose: Optional[str] = None) -> Decision:
        """Evaluate a release request against the stored consent"""
        decision = self._evaluate(token, payload_hash, subject, purpose)

        log = logger.info if decision.allow else logger.warning
        log("Consent policy evaluated", token_preview=token_preview(token),
            payload_hash=hash_preview(payload_hash), allow=decision.allow,
            code=decision.code, hash_type=decision.hash_type, purpose=purpose)
        return decision

    def _evaluate(self, token: str, payload_hash: str, subject: str,
                  purpose: Optional[str]) -> Decision:
        record = self.store.get(token)
        if record is None:
            return _deny(DecisionCodes.CONSENT_NOT_FOUND,
                         "Invalid or expired GDPR token - no consent record found")

        hash_type = record.matches_hash(payload_hash)
        if hash_type is None:
            expected = f"{record.original_hash} (original)"
            if record.signed_hash:
                expected += f" or {record.signed_hash} (signed)"
            else:
                expected += " or <not registered> (signed)"
            return _deny(DecisionCodes.HASH_MISMATCH,
                         f"Payload hash does not match registered consent. "
                         f"Expected: {expected}, got: {payload_hash}")

        if record.is_expired(as_utc(self.clock())):
            return _deny(DecisionCodes.CONSENT_EXPIRED,
                         f"GDPR consent has expired (expires_at {record.expires_at.isoformat()})")

        if subject != record.subject:
            return _deny(DecisionCodes.SUBJECT_MISMATCH,
                         f"subject mismatch. Expected: {record.subject}, got: {subject}")

        if purpose is not None and purpose != record.purpose:
            return _deny(DecisionCodes.PURPOSE_MISMATCH,
                         f"purpose mismatch. Expected: {record.purpose}, got: {purpose}")

        return Decision(
            allow=True,
            reason=f"Consent valid and policy conditions met ({hash_type.value} payload hash)",
            code=DecisionCodes.CONSENT_VALID,
            hash_type=hash_type,
        )

    def require(self, token: str, payload_hash: str, subject: str,
                purpose: Optional[str] = None) -> Decision:
        """Evaluate and raise the matching consent error on denial"""
        decision = self.decide(token, payload_hash, subject, purpose)
        error = decision.to_error(token)
        if error is not None:
            raise error
        return decision

    def register_signed_hash(self, token: str, signed_hash: str) -> bool:
        """Record the post-signing fingerprint for a consent"""
        return self.store.update_signed_hash(token, signed_hash)
