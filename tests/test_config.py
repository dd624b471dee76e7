"""
Tests for release control configuration
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from consent_gate import config as config_mod
from consent_gate.config import (
    CertificateType,
    GateConfig,
    MissingClassificationMode,
    get_gate_config,
    update_gate_config,
)


class TestGateConfig:
    """Test configuration defaults and overrides"""

    def test_defaults(self):
        config = GateConfig(_env_file=None)

        assert config.default_purpose == "email_notification"
        assert config.default_token_expiry_hours == 24
        assert config.max_token_expiry_hours == 168
        assert config.missing_classification_policy == MissingClassificationMode.DEFAULT_RESTRICTED
        assert config.signing_timeout_seconds == 30.0
        assert config.signed_suffix == "_signed"
        assert config.cert_type == CertificateType.P12
        assert config.database_url is None

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("CONSENT_GATE_MISSING_CLASSIFICATION_POLICY", "reject")
        monkeypatch.setenv("CONSENT_GATE_SIGNING_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("CONSENT_GATE_DATABASE_URL", "sqlite:///:memory:")

        config = GateConfig()

        assert config.missing_classification_policy == MissingClassificationMode.REJECT
        assert config.signing_timeout_seconds == 5.0
        assert config.database_url == "sqlite:///:memory:"

    def test_update_global_config(self, monkeypatch):
        monkeypatch.setattr(config_mod, "gate_config", GateConfig())

        updated = update_gate_config(default_purpose="billing", not_a_setting=1)

        assert updated is get_gate_config()
        assert get_gate_config().default_purpose == "billing"
        assert not hasattr(get_gate_config(), "not_a_setting")

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("CONSENT_GATE_LOG_LEVEL", "debug")

        assert GateConfig().log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(PydanticValidationError):
            GateConfig(log_level="verbose")

    def test_outbox_must_be_bounded(self):
        assert GateConfig().outbox_maxsize > 0

        with pytest.raises(PydanticValidationError):
            GateConfig(outbox_maxsize=0)
