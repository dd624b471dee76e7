"""
Configuration management for consent-gate
Token lifetimes, classification fail-safe, signing and storage settings
"""

from enum import Enum
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

from .constants import ConsentTokens, DeliveryDefaults, SigningDefaults, StorageDefaults

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MissingClassificationMode(str, Enum):
    """Ingress handling of requests without a classification"""
    DEFAULT_RESTRICTED = "default_restricted"
    REJECT = "reject"


class CertificateType(str, Enum):
    """Signing certificate container formats"""
    P12 = "p12"
    PEM = "pem"


class GateConfig(BaseSettings):
    """Release control configuration settings"""

    # Consent token settings
    default_purpose: str = Field(default=ConsentTokens.DEFAULT_PURPOSE)
    default_token_expiry_hours: int = Field(default=ConsentTokens.DEFAULT_EXPIRY_HOURS)
    max_token_expiry_hours: int = Field(
        default=ConsentTokens.MAX_EXPIRY_HOURS,
        description="Upper bound for requested consent lifetimes"
    )

    # Classification settings
    missing_classification_policy: MissingClassificationMode = Field(
        default=MissingClassificationMode.DEFAULT_RESTRICTED,
        description="default_restricted applies the strictest controls, reject refuses the request"
    )

    # Signing settings
    signing_timeout_seconds: float = Field(default=SigningDefaults.TIMEOUT_SECONDS)
    signed_suffix: str = Field(default=SigningDefaults.SIGNED_SUFFIX)
    cert_path: Optional[str] = Field(default=None, description="Signing certificate path")
    cert_password: Optional[str] = Field(default=None)
    cert_type: CertificateType = Field(default=CertificateType.P12)

    # Storage settings
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL; in-memory store when unset"
    )
    cleanup_interval_seconds: int = Field(default=StorageDefaults.CLEANUP_INTERVAL_SECONDS)

    # Delivery settings
    outbox_maxsize: int = Field(default=DeliveryDefaults.OUTBOX_MAXSIZE, ge=1)
    outbox_flush_timeout_seconds: float = Field(
        default=DeliveryDefaults.FLUSH_TIMEOUT_SECONDS,
        description="How long shutdown waits for queued payloads to be sent"
    )

    # Tenant identity attached to decisions for audit
    tenant_client_id: Optional[str] = Field(default=None)

    # Environment-specific overrides
    debug_mode: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "CONSENT_GATE_", "case_sensitive": False}

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return level


# Global configuration instance
gate_config = GateConfig()


def get_gate_config() -> GateConfig:
    """Get the global configuration instance"""
    return gate_config


def update_gate_config(**kwargs) -> GateConfig:
    """Update configuration with new values"""
    global gate_config
    for key, value in kwargs.items():
        if hasattr(gate_config, key):
            setattr(gate_config, key, value)
    return gate_config
