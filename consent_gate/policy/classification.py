"""
ISO 27001 classification controls for consent-gate
Maps an information classification to the checks a release must pass

- internal: A.9.4.1 (information access restriction)
- confidential: A.9.4.1 + A.13.2.1 (information transfer)
- restricted: A.9.4.1 + A.13.2.1 + A.13.2.3 (electronic messaging, signed attachments)

A.12.4.1 (audit logging) applies to every level.
"""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import UnknownClassificationError


class Classification(str, Enum):
    """ISO 27001 A.8.2 information classification levels"""
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


class SecurityControls(BaseModel):
    """Controls required for a classification"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_restriction: bool = Field(alias="accessRestriction")      # A.9.4.1
    information_transfer: bool = Field(alias="informationTransfer")  # A.13.2.1
    electronic_messaging: bool = Field(alias="electronicMessaging")  # A.13.2.3
    audit_logging: bool = Field(alias="auditLogging")                # A.12.4.1


_CONTROLS: Dict[Classification, SecurityControls] = {
    Classification.INTERNAL: SecurityControls(
        access_restriction=True,
        information_transfer=False,
        electronic_messaging=False,
        audit_logging=True,
    ),
    Classification.CONFIDENTIAL: SecurityControls(
        access_restriction=True,
        information_transfer=True,
        electronic_messaging=False,
        audit_logging=True,
    ),
    Classification.RESTRICTED: SecurityControls(
        access_restriction=True,
        information_transfer=True,
        electronic_messaging=True,
        audit_logging=True,
    ),
}


def parse_classification(value: Any) -> Classification:
    """Coerce a raw value into the closed classification set"""
    if isinstance(value, Classification):
        return value
    try:
        return Classification(value)
    except ValueError:
        raise UnknownClassificationError(value, [c.value for c in Classification])


def resolve_controls(classification: Any) -> SecurityControls:
    """Required security controls for a classification"""
    return _CONTROLS[parse_classification(classification)]
