"""
consent-gate
Consent-bound release control for regulated outbound email
"""

__version__ = "0.1.0"

# Core exports
from .config import GateConfig, get_gate_config, update_gate_config

# Consent management
from .consent import (
    ConsentRecord, ConsentStats, HashType,
    ConsentStore, InMemoryConsentStore, SQLConsentStore, create_consent_store,
    ConsentIssuer, get_consent_issuer, issue_consent,
)

# Fingerprints and signing
from .crypto import (
    canonical_json, fingerprint, is_fingerprint,
    AttachmentSigner, Pkcs7AttachmentSigner, SigningConfig, sign_attachments, signed_name,
)

# Policy
from .policy import (
    Classification, SecurityControls, resolve_controls,
    Decision, PolicyDecisionPoint,
    EnforcementOutcome, PipelineState, PolicyEnforcementPoint, enforce_email_policy,
)

# Delivery and audit
from .delivery import Deliverer, DeliveryStatus, OutboxDeliverer, Transport
from .audit import AuditEvent, AuditTrail

# Utilities
from .utils import EmailPayload, EmailSchemaValidator, generate_consent_token, generate_trace_id

__all__ = [
    # Config
    "GateConfig",
    "get_gate_config",
    "update_gate_config",

    # Consent
    "ConsentRecord",
    "ConsentStats",
    "HashType",
    "ConsentStore",
    "InMemoryConsentStore",
    "SQLConsentStore",
    "create_consent_store",
    "ConsentIssuer",
    "get_consent_issuer",
    "issue_consent",

    # Crypto
    "canonical_json",
    "fingerprint",
    "is_fingerprint",
    "AttachmentSigner",
    "Pkcs7AttachmentSigner",
    "SigningConfig",
    "sign_attachments",
    "signed_name",

    # Policy
    "Classification",
    "SecurityControls",
    "resolve_controls",
    "Decision",
    "PolicyDecisionPoint",
    "EnforcementOutcome",
    "PipelineState",
    "PolicyEnforcementPoint",
    "enforce_email_policy",

    # Delivery and audit
    "Deliverer",
    "DeliveryStatus",
    "OutboxDeliverer",
    "Transport",
    "AuditEvent",
    "AuditTrail",

    # Utils
    "EmailPayload",
    "EmailSchemaValidator",
    "generate_consent_token",
    "generate_trace_id",
]
