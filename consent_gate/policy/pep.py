"""
Policy Enforcement Point for consent-gate

Gates the release of an outbound email behind the consent decision point.
A request moves through a fixed sequence of states:

    RECEIVED -> SCHEMA_VALID -> FIRST_VALIDATED -> [SIGNED] -> SECOND_VALIDATED -> APPROVED

with an exit to REJECTED from every state. The first validation checks the
payload as submitted; when the classification requires it, PDF attachments
are signed and the rewritten payload (plus its classification) is validated
again against the same consent.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..audit import (
    AuditTrail,
    create_delivery_event,
    create_release_event,
    create_transition_event,
)
from ..config import GateConfig, get_gate_config
from ..constants import RejectionReasons
from ..crypto.hash import fingerprint, hash_preview, token_preview
from ..crypto.signing import (
    AttachmentSigner,
    Pkcs7AttachmentSigner,
    SigningConfig,
    SigningResult,
    ensure_all_signed,
    sign_attachments,
)
from ..delivery import Deliverer, DeliveryStatus
from ..exceptions import (
    DeliveryError,
    PipelineStateError,
    SigningFailureError,
    UnknownClassificationError,
    ValidationError,
)
from ..utils.ids import generate_trace_id
from ..utils.validators import EmailSchemaValidator, validate_consent_token
from .classification import (
    Classification,
    SecurityControls,
    parse_classification,
    resolve_controls,
)
from .pdp import Decision, PolicyDecisionPoint

logger = structlog.get_logger(__name__)


class PipelineState(str, Enum):
    """Release pipeline states"""
    RECEIVED = "RECEIVED"
    SCHEMA_VALID = "SCHEMA_VALID"
    FIRST_VALIDATED = "FIRST_VALIDATED"
    SIGNED = "SIGNED"
    SECOND_VALIDATED = "SECOND_VALIDATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


_TRANSITIONS: Dict[PipelineState, frozenset] = {
    PipelineState.RECEIVED: frozenset({PipelineState.SCHEMA_VALID, PipelineState.REJECTED}),
    PipelineState.SCHEMA_VALID: frozenset({PipelineState.FIRST_VALIDATED, PipelineState.REJECTED}),
    PipelineState.FIRST_VALIDATED: frozenset({
        PipelineState.SIGNED,
        PipelineState.SECOND_VALIDATED,
        PipelineState.APPROVED,  # second validation not required
        PipelineState.REJECTED,
    }),
    PipelineState.SIGNED: frozenset({PipelineState.SECOND_VALIDATED, PipelineState.REJECTED}),
    PipelineState.SECOND_VALIDATED: frozenset({PipelineState.APPROVED, PipelineState.REJECTED}),
    PipelineState.APPROVED: frozenset(),
    PipelineState.REJECTED: frozenset(),
}


class EnforcementOutcome(BaseModel):
    """Result of one enforce() call"""
    approved: bool
    state: PipelineState
    code: str = Field(..., description="approved, or the pipeline rejection reason")
    reason: str = Field(..., description="Human-readable explanation")
    error_code: Optional[str] = Field(default=None, description="Taxonomy code for rejections")
    errors: List[str] = Field(default_factory=list)

    first_hash: Optional[str] = None
    second_hash: Optional[str] = None
    final_payload: Optional[Dict[str, Any]] = None

    classification: Optional[Classification] = None
    classification_defaulted: bool = False
    controls: Optional[SecurityControls] = None
    first_decision: Optional[Decision] = None
    second_decision: Optional[Decision] = None
    signing: List[SigningResult] = Field(default_factory=list)
    delivery: Optional[DeliveryStatus] = None

    trace_id: str
    history: List[PipelineState] = Field(default_factory=list)

    def raise_for_delivery(self) -> None:
        """Raise DeliveryError if the approved payload could not be handed off"""
        if self.delivery is not None and not self.delivery.delivered:
            raise DeliveryError(reason=self.delivery.detail)


class _Pipeline:
    """Tracks the current state and refuses out-of-order transitions"""

    def __init__(self, trace_id: str, audit: Optional[AuditTrail], user_id: Optional[str]):
        self.trace_id = trace_id
        self.audit = audit
        self.user_id = user_id
        self.state = PipelineState.RECEIVED
        self.history: List[PipelineState] = [PipelineState.RECEIVED]

    def advance(self, target: PipelineState, **details: Any) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise PipelineStateError(self.state.value, target.value)

        if self.audit is not None:
            self.audit.record(create_transition_event(
                self.trace_id, self.state.value, target.value, details, self.user_id
            ))
        self.state = target
        self.history.append(target)


class PolicyEnforcementPoint:
    """Orchestrates validation, signing and re-validation of outbound email"""

    def __init__(self, pdp: PolicyDecisionPoint,
                 validator: Optional[EmailSchemaValidator] = None,
                 signer: Optional[AttachmentSigner] = None,
                 signing_config: Optional[SigningConfig] = None,
                 deliverer: Optional[Deliverer] = None,
                 audit: Optional[AuditTrail] = None,
                 config: Optional[GateConfig] = None):
        self.config = config or get_gate_config()
        self.pdp = pdp
        self.validator = validator or EmailSchemaValidator(self.config)
        self.signer = signer
        self.signing_config = signing_config or SigningConfig.from_config(self.config)
        self.deliverer = deliverer
        self.audit = audit if audit is not None else AuditTrail()

    async def enforce(self, payload: Any, gdpr_token: Optional[str],
                      classification: Optional[Any] = None) -> EnforcementOutcome:
        """
        Run the release pipeline for one email.

        Args:
            payload: Raw email request body
            gdpr_token: Consent token; falls back to ``gdpr_token`` in the body
            classification: Classification; falls back to the body, then to
                the ingress fail-safe

        Returns:
            EnforcementOutcome; a rejected outcome never reaches delivery
        """
        trace_id = generate_trace_id()
        pipeline = _Pipeline(trace_id, self.audit, self.config.tenant_client_id)
        outcome: Dict[str, Any] = {}

        # 1. Schema validation, no PDP call for malformed requests
        result = self.validator.validate(payload, classification)
        if not result.valid:
            return self._reject(pipeline, outcome, RejectionReasons.SCHEMA_INVALID,
                                "Schema validation failed", "VALIDATION_ERROR",
                                errors=result.errors)

        email = result.email
        try:
            token = validate_consent_token(gdpr_token if gdpr_token is not None else email.gdpr_token)
        except ValidationError as e:
            return self._reject(pipeline, outcome, RejectionReasons.SCHEMA_INVALID,
                                e.message, e.error_code, errors=[f"gdpr_token: {e.message}"])

        outcome["classification_defaulted"] = result.classification_defaulted
        pipeline.advance(PipelineState.SCHEMA_VALID)

        content = email.content()
        logger.debug("Email payload validated", trace_id=trace_id,
                     recipient_domain=email.to.split("@")[1],
                     subject_length=len(email.subject), body_length=len(email.body),
                     attachments_count=len(email.attachments or []),
                     **({"verbose_validated_payload": content} if self.config.debug_mode else {}))

        # 2. First validation against the payload as submitted
        first_hash = fingerprint(content)
        outcome["first_hash"] = first_hash
        first = self.pdp.decide(token, first_hash, subject=email.to,
                                purpose=self.config.default_purpose)
        outcome["first_decision"] = first
        if not first.allow:
            return self._reject(pipeline, outcome, RejectionReasons.FIRST_VALIDATION_FAILED,
                                first.reason, first.code)
        pipeline.advance(PipelineState.FIRST_VALIDATED, first_hash=first_hash,
                         hash_type=first.hash_type.value if first.hash_type else None)

        # 3. Controls for the classification
        try:
            level = parse_classification(email.classification)
        except UnknownClassificationError as e:
            return self._reject(pipeline, outcome, RejectionReasons.UNKNOWN_CLASSIFICATION,
                                e.message, e.error_code)
        controls = resolve_controls(level)
        outcome["classification"] = level
        outcome["controls"] = controls

        # 4. Signing when electronic messaging controls apply
        attachments = list(email.attachments or [])
        if controls.electronic_messaging:
            try:
                signing = await sign_attachments(
                    attachments, self.signer, self.signing_config,
                    timeout=self.config.signing_timeout_seconds, trace_id=trace_id,
                )
                ensure_all_signed(signing, self.signing_config.suffix)
            except SigningFailureError as e:
                logger.error("Release blocked - signing failed", trace_id=trace_id,
                             error=e.message)
                return self._reject(pipeline, outcome, RejectionReasons.SIGNING_FAILED,
                                    e.message, e.error_code)
            outcome["signing"] = signing
            attachments = [r.signed for r in signing]
            pipeline.advance(PipelineState.SIGNED,
                             signed_count=sum(1 for r in signing if r.was_signed))

        final_payload = dict(content)
        if "attachments" in content:
            final_payload["attachments"] = [a.model_dump() for a in attachments]
        final_payload["classification"] = level.value
        outcome["final_payload"] = final_payload

        # 5. Second validation against the rewritten payload
        if controls.information_transfer:
            second_hash = fingerprint(final_payload)
            outcome["second_hash"] = second_hash
            second = self.pdp.decide(token, second_hash, subject=email.to,
                                     purpose=self.config.default_purpose)
            outcome["second_decision"] = second
            if not second.allow:
                return self._reject(pipeline, outcome, RejectionReasons.SECOND_VALIDATION_FAILED,
                                    second.reason, second.code)
            pipeline.advance(PipelineState.SECOND_VALIDATED, second_hash=second_hash,
                             hash_type=second.hash_type.value if second.hash_type else None)

        # 6. Approval and hand-off
        pipeline.advance(PipelineState.APPROVED)
        final_decision = outcome.get("second_decision") or first
        approved = EnforcementOutcome(
            approved=True,
            state=pipeline.state,
            code="approved",
            reason=final_decision.reason,
            trace_id=trace_id,
            history=pipeline.history,
            **outcome,
        )
        self.audit.record(create_release_event(
            trace_id, True, approved.reason,
            {"token_preview": token_preview(token), "classification": level.value,
             "first_hash": first_hash, "second_hash": approved.second_hash},
            self.config.tenant_client_id,
        ))
        logger.info("Release approved", trace_id=trace_id, token_preview=token_preview(token),
                    classification=level.value, first_hash=hash_preview(first_hash),
                    second_hash=hash_preview(approved.second_hash))

        if self.deliverer is not None:
            approved.delivery = await self._deliver(trace_id, final_payload)
        return approved

    async def _deliver(self, trace_id: str, final_payload: Dict[str, Any]) -> DeliveryStatus:
        try:
            status = await self.deliverer.deliver(final_payload)
        except Exception as e:
            # The release decision stands; the failure is reported on the outcome
            logger.error("Delivery hand-off failed", trace_id=trace_id, error=str(e))
            status = DeliveryStatus(delivered=False, detail=str(e))
        else:
            logger.info("Delivery hand-off completed", trace_id=trace_id,
                        delivered=status.delivered, reference=status.reference)

        self.audit.record(create_delivery_event(
            trace_id, status.delivered, status.detail, status.reference,
            self.config.tenant_client_id,
        ))
        return status

    def _reject(self, pipeline: _Pipeline, outcome: Dict[str, Any], code: str,
                reason: str, error_code: Optional[str],
                errors: Optional[List[str]] = None) -> EnforcementOutcome:
        pipeline.advance(PipelineState.REJECTED, code=code, error_code=error_code)
        rejected = EnforcementOutcome(
            approved=False,
            state=pipeline.state,
            code=code,
            reason=reason,
            error_code=error_code,
            errors=errors or [],
            trace_id=pipeline.trace_id,
            history=pipeline.history,
            **{k: v for k, v in outcome.items() if k != "final_payload"},
        )
        self.audit.record(create_release_event(
            pipeline.trace_id, False, reason,
            {"code": code, "error_code": error_code, "first_hash": rejected.first_hash,
             "second_hash": rejected.second_hash},
            self.config.tenant_client_id,
        ))
        logger.warning("Email blocked by policy", trace_id=pipeline.trace_id, code=code,
                       error_code=error_code, reason=reason)
        return rejected


# Global enforcement point instance
_enforcement_point: Optional[PolicyEnforcementPoint] = None


def get_enforcement_point() -> PolicyEnforcementPoint:
    """Get the global enforcement point, sharing the global issuer's store"""
    global _enforcement_point
    if _enforcement_point is None:
        from ..consent.issuance import get_consent_issuer

        _enforcement_point = PolicyEnforcementPoint(
            PolicyDecisionPoint(get_consent_issuer().store),
            signer=Pkcs7AttachmentSigner(),
        )
    return _enforcement_point


def set_enforcement_point(pep: Optional[PolicyEnforcementPoint]) -> None:
    """Replace the global enforcement point (startup wiring and tests)"""
    global _enforcement_point
    _enforcement_point = pep


async def enforce_email_policy(payload: Any, gdpr_token: Optional[str],
                               classification: Optional[Any] = None) -> EnforcementOutcome:
    """Run the release pipeline with the global enforcement point"""
    return await get_enforcement_point().enforce(payload, gdpr_token, classification)
