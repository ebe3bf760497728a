"""
Tests for consent_ledger.core.config.
"""

from __future__ import annotations

import pydantic
import pytest

from consent_ledger.core.config import ConsentLedgerConfig, get_config
from consent_ledger.core.enums import DataCategory, IdentityProvider, LegalBasis


class TestConsentLedgerConfig:
    """Tests for the settings model."""

    def test_defaults(self, monkeypatch):
        for name in ("APP_ENV", "UNKNOWN_VALUE", "WRITE_AUDIT_LOG", "HISTORY_LIMIT"):
            monkeypatch.delenv(f"CONSENT_LEDGER_{name}", raising=False)

        config = ConsentLedgerConfig(_env_file=None)

        assert config.app_env == "development"
        assert config.anonymous_identity_provider == IdentityProvider.ANONYMOUS
        assert config.default_data_category == DataCategory.FUNCTIONAL
        assert config.default_legal_basis == LegalBasis.CONSENT
        assert config.unknown_value == "unknown"
        assert config.write_audit_log is True
        assert config.link_purpose_junctions is True
        assert config.history_limit == 100

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CONSENT_LEDGER_HISTORY_LIMIT", "5")
        monkeypatch.setenv("CONSENT_LEDGER_WRITE_AUDIT_LOG", "false")
        monkeypatch.setenv("CONSENT_LEDGER_DEFAULT_DATA_CATEGORY", "analytics")

        config = ConsentLedgerConfig(_env_file=None)

        assert config.history_limit == 5
        assert config.write_audit_log is False
        assert config.default_data_category == DataCategory.ANALYTICS

    def test_env_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("consent_ledger_unknown_value", "n/a")

        assert ConsentLedgerConfig(_env_file=None).unknown_value == "n/a"

    def test_history_limit_must_be_positive(self):
        with pytest.raises(pydantic.ValidationError):
            ConsentLedgerConfig(_env_file=None, history_limit=0)

    @pytest.mark.parametrize("env,expected", [("production", True), ("prod", True), ("test", False)])
    def test_is_production(self, env, expected):
        assert ConsentLedgerConfig(_env_file=None, app_env=env).is_production is expected


class TestGetConfig:
    """Tests for the cached accessor."""

    def test_cached(self):
        get_config.cache_clear()
        try:
            assert get_config() is get_config()
        finally:
            get_config.cache_clear()
