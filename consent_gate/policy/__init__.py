"""
Policy module for consent-gate
Classification controls, consent decisions and release enforcement
"""

from .classification import Classification, SecurityControls, parse_classification, resolve_controls
from .pdp import Decision, PolicyDecisionPoint
from .pep import (
    EnforcementOutcome, PipelineState, PolicyEnforcementPoint,
    enforce_email_policy, get_enforcement_point, set_enforcement_point,
)

__all__ = [
    "Classification",
    "SecurityControls",
    "parse_classification",
    "resolve_controls",
    "Decision",
    "PolicyDecisionPoint",
    "EnforcementOutcome",
    "PipelineState",
    "PolicyEnforcementPoint",
    "enforce_email_policy",
    "get_enforcement_point",
    "set_enforcement_point",
]
