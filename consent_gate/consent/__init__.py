"""
Consent management module for consent-gate
Consent records, stores and issuance
"""

from .models import ConsentRecord, ConsentStats, HashType
from .storage import (
    ConsentStore, InMemoryConsentStore, SQLConsentStore, create_consent_store,
    run_periodic_cleanup,
)
from .issuance import (
    ConsentIssuer, ConsentTokenRequest, SignedHashRequest,
    get_consent_issuer, set_consent_issuer, issue_consent,
)

__all__ = [
    "ConsentRecord",
    "ConsentStats",
    "HashType",
    "ConsentStore",
    "InMemoryConsentStore",
    "SQLConsentStore",
    "create_consent_store",
    "run_periodic_cleanup",
    "ConsentIssuer",
    "ConsentTokenRequest",
    "SignedHashRequest",
    "get_consent_issuer",
    "set_consent_issuer",
    "issue_consent",
]
