"""
Consent Ledger - Configuration

Runtime settings for the consent orchestration service and logging.
Entity and plugin configuration (table names, column overrides, extra
fields, hooks) is code-level and lives in ``consent_ledger.schema.merge``.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from consent_ledger.core.enums import DataCategory, IdentityProvider, LegalBasis


class ConsentLedgerConfig(BaseSettings):
    """
    Consent ledger configuration.

    Loaded from ``CONSENT_LEDGER_*`` environment variables with sensible
    defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONSENT_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # ENVIRONMENT
    # ═══════════════════════════════════════════════════════════════

    app_env: str = Field(
        default="development",
        description="Deployment environment name",
    )

    log_level: str = Field(
        default="INFO",
        description="Minimum log level",
    )

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON instead of console output",
    )

    # ═══════════════════════════════════════════════════════════════
    # AUTO-CREATION DEFAULTS
    # ═══════════════════════════════════════════════════════════════

    anonymous_identity_provider: IdentityProvider = Field(
        default=IdentityProvider.ANONYMOUS,
        description="Identity provider recorded on auto-created subjects",
    )

    default_data_category: DataCategory = Field(
        default=DataCategory.FUNCTIONAL,
        description="Data category for auto-created purposes",
    )

    default_legal_basis: LegalBasis = Field(
        default=LegalBasis.CONSENT,
        description="Legal basis for auto-created purposes",
    )

    unknown_value: str = Field(
        default="unknown",
        description="Placeholder stored when the IP address or user agent is missing",
    )

    # ═══════════════════════════════════════════════════════════════
    # EVIDENCE TRAIL
    # ═══════════════════════════════════════════════════════════════

    write_audit_log: bool = Field(
        default=True,
        description="Write an audit log entry for every consent change",
    )

    link_purpose_junctions: bool = Field(
        default=True,
        description="Write one purpose_junction row per consented purpose",
    )

    history_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum records returned by a consent history lookup",
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("production", "prod")


@lru_cache
def get_config() -> ConsentLedgerConfig:
    """Get cached consent ledger configuration."""
    return ConsentLedgerConfig()
