"""
consent-gate - FastAPI Application
Consent token issuance and consent-bound email release
"""

from fastapi import FastAPI, HTTPException, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import json
import logging
import structlog

from . import __version__
from .audit import AuditTrail
from .config import get_gate_config
from .constants import RejectionReasons, SERVICE_NAME
from .consent.issuance import (
    ConsentIssuer,
    ConsentTokenRequest,
    SignedHashRequest,
    set_consent_issuer,
)
from .consent.storage import create_consent_store, run_periodic_cleanup
from .crypto.hash import fingerprint, token_preview
from .crypto.signing import Pkcs7AttachmentSigner
from .delivery import OutboxDeliverer, Transport
from .exceptions import DeliveryError, SignedHashConflictError, ValidationError
from .policy.pdp import PolicyDecisionPoint
from .policy.pep import PolicyEnforcementPoint, set_enforcement_point
from .utils.ids import generate_trace_id

# Global settings
settings = get_gate_config()


def configure_logging(level: str) -> None:
    """Apply the configured level to the stdlib root logger structlog writes through"""
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)


configure_logging(settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize services
consent_issuer: Optional[ConsentIssuer] = None
decision_point: Optional[PolicyDecisionPoint] = None
enforcement_point: Optional[PolicyEnforcementPoint] = None
audit_trail: Optional[AuditTrail] = None
outbox: Optional[OutboxDeliverer] = None

# Transport the outbox drains into; set by the embedding deployment
outbox_transport: Optional[Transport] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global consent_issuer, decision_point, enforcement_point, audit_trail, outbox

    logger.info("Starting consent-gate", version=__version__)

    # Services already provided (tests, embedding apps) are kept
    if consent_issuer is None:
        consent_issuer = ConsentIssuer(create_consent_store(settings), settings)
    if decision_point is None:
        decision_point = PolicyDecisionPoint(consent_issuer.store)
    if audit_trail is None:
        audit_trail = AuditTrail()
    if outbox is None:
        outbox = OutboxDeliverer(maxsize=settings.outbox_maxsize)
    if enforcement_point is None:
        enforcement_point = PolicyEnforcementPoint(
            decision_point,
            signer=Pkcs7AttachmentSigner(),
            deliverer=outbox,
            audit=audit_trail,
            config=settings,
        )
    set_consent_issuer(consent_issuer)
    set_enforcement_point(enforcement_point)

    cleanup_task = asyncio.create_task(
        run_periodic_cleanup(consent_issuer.store, settings.cleanup_interval_seconds)
    )
    delivery_task = None
    if outbox_transport is not None:
        delivery_task = asyncio.create_task(outbox.drain(outbox_transport))
        # Consumer registers before the first request is served
        await asyncio.sleep(0)
    else:
        logger.warning("No outbox transport configured, approved emails will not be accepted")

    logger.info("Release control services initialized",
                store=type(consent_issuer.store).__name__,
                missing_classification_policy=settings.missing_classification_policy.value)

    yield

    if delivery_task is not None:
        await outbox.flush(settings.outbox_flush_timeout_seconds)
    for task in (delivery_task, cleanup_task):
        if task is None:
            continue
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Shutting down consent-gate")

# Create FastAPI app
app = FastAPI(
    title="consent-gate",
    description="Consent-bound release control for regulated outbound email",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _require_services():
    if consent_issuer is None or decision_point is None or enforcement_point is None:
        raise HTTPException(status_code=503, detail="Release control services not available")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
        "components": {
            "consent_issuer": consent_issuer is not None,
            "decision_point": decision_point is not None,
            "enforcement_point": enforcement_point is not None,
            "outbox": outbox is not None,
            "outbox_consumer": outbox.has_consumer if outbox else False,
        },
        "pending_deliveries": outbox.pending() if outbox else 0,
    }

# =============================================================================
# GDPR CONSENT ENDPOINTS
# =============================================================================

@app.post("/gdpr/generate-token")
async def generate_token(request: ConsentTokenRequest):
    """Issue a consent token bound to the fingerprint of an email payload"""
    _require_services()
    trace_id = generate_trace_id()

    try:
        record = consent_issuer.issue_from_request(request)
    except ValidationError as e:
        logger.warning("GDPR token generation failed - validation error",
                       trace_id=trace_id, error=e.message)
        raise HTTPException(status_code=400, detail={"trace_id": trace_id, **e.to_dict()})

    return {
        "trace_id": trace_id,
        "success": True,
        "gdpr_token": record.token,
        "payload_hash": record.original_hash,
        "expires_at": record.expires_at.isoformat(),
        "recipient_email": record.subject,
        "purpose": record.purpose,
        "message": "GDPR consent token generated successfully",
    }


@app.get("/gdpr/validate-token/{token}")
async def validate_token(token: str, payload_hash: Optional[str] = None,
                         recipient_email: Optional[str] = None,
                         purpose: Optional[str] = None):
    """Inspect the decision the PDP would take for a token"""
    _require_services()
    trace_id = generate_trace_id()

    if not payload_hash or not recipient_email:
        raise HTTPException(status_code=400, detail={
            "trace_id": trace_id,
            "error": "payload_hash and recipient_email query parameters are required",
        })

    decision = decision_point.decide(token, payload_hash, recipient_email, purpose)
    return {
        "trace_id": trace_id,
        "valid": decision.allow,
        "reason": decision.reason,
        "code": decision.code,
        "hash_type": decision.hash_type.value if decision.hash_type else None,
    }


@app.post("/gdpr/register-signed-hash/{token}")
async def register_signed_hash(token: str, request: SignedHashRequest):
    """Register the fingerprint of the signed payload for an existing consent"""
    _require_services()
    trace_id = generate_trace_id()

    try:
        registered = consent_issuer.register_signed_payload(token, request.signed_payload)
    except SignedHashConflictError as e:
        raise HTTPException(status_code=409, detail={"trace_id": trace_id, **e.to_dict()})

    if not registered:
        raise HTTPException(status_code=404, detail={
            "trace_id": trace_id,
            "error": "No consent record found for token",
            "token_preview": token_preview(token),
        })

    return {
        "trace_id": trace_id,
        "success": True,
        "signed_hash": fingerprint(request.signed_payload),
        "message": "Signed payload hash registered",
    }


@app.get("/gdpr/stats")
async def gdpr_stats():
    """Consent store statistics"""
    _require_services()
    return {
        "trace_id": generate_trace_id(),
        "stats": consent_issuer.stats().model_dump(),
        "message": "GDPR service statistics",
    }

# =============================================================================
# EMAIL RELEASE ENDPOINT
# =============================================================================

_REJECTION_STATUS = {
    RejectionReasons.SCHEMA_INVALID: 400,
    RejectionReasons.SIGNING_FAILED: 502,
}


@app.post("/email/send")
async def send_email(request: Request,
                     gdpr_token: Optional[str] = Header(default=None, alias="gdpr-token")):
    """
    Release an email through the consent pipeline.

    The token is read from the ``gdpr-token`` header, falling back to the
    ``gdpr_token`` body field. Schema failures map to 400, signing failures
    to 502 and every other denial to 403.
    """
    _require_services()

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail={
            "error": "Request body must be valid JSON",
            "code": RejectionReasons.SCHEMA_INVALID,
        })

    outcome = await enforcement_point.enforce(payload, gdpr_token)

    if not outcome.approved:
        raise HTTPException(
            status_code=_REJECTION_STATUS.get(outcome.code, 403),
            detail={
                "trace_id": outcome.trace_id,
                "error": "Email blocked by policy",
                "code": outcome.code,
                "error_code": outcome.error_code,
                "reason": outcome.reason,
                "errors": outcome.errors,
            },
        )

    try:
        outcome.raise_for_delivery()
    except DeliveryError as e:
        raise HTTPException(status_code=500, detail={"trace_id": outcome.trace_id, **e.to_dict()})

    return {
        "trace_id": outcome.trace_id,
        "success": True,
        "message": "Email approved for delivery",
        "classification": outcome.classification.value,
        "classification_defaulted": outcome.classification_defaulted,
        "controls": outcome.controls.model_dump(by_alias=True),
        "first_hash": outcome.first_hash,
        "second_hash": outcome.second_hash,
        "signed_attachments": [r.signed.name for r in outcome.signing if r.was_signed],
        "delivery": outcome.delivery.model_dump() if outcome.delivery else None,
    }

# =============================================================================
# ROOT ENDPOINT
# =============================================================================

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "consent-gate",
        "version": __version__,
        "status": "operational",
        "features": {
            "consent_tokens": True,
            "two_phase_validation": True,
            "attachment_signing": True,
            "missing_classification_policy": settings.missing_classification_policy.value,
        }
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
