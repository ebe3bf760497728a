"""
Consent Ledger - Entity Models

Typed views over output-parsed rows. The schema is extensible at runtime
(plugins and configuration may add fields), so every model keeps unknown
keys (``extra="allow"``) and every built-in field is optional: a field
marked ``returned=False`` is simply absent.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_aware(value: Any) -> Any:
    """Make naive datetimes UTC-aware; parse ISO strings."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class LedgerModel(BaseModel):
    """Base model for all ledger entities."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
        extra="allow",
    )

    id: str | None = None
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_aware(cls, v: Any) -> Any:
        return ensure_aware(v)


class TimestampedModel(LedgerModel):
    """Entities that also track ``updated_at``."""

    updated_at: datetime | None = None

    @field_validator("updated_at", mode="before")
    @classmethod
    def _updated_at_aware(cls, v: Any) -> Any:
        return ensure_aware(v)


# ═══════════════════════════════════════════════════════════════════════════
# IDENTITY & CATALOGUE
# ═══════════════════════════════════════════════════════════════════════════


class Subject(TimestampedModel):
    """A consenting end user, possibly anonymous."""

    is_identified: bool | None = None
    external_id: str | None = None
    identity_provider: str | None = None
    last_ip_address: str | None = None
    subject_timezone: str | None = None


class Domain(TimestampedModel):
    """A site or application consent is collected for."""

    name: str | None = None
    description: str | None = None
    allowed_origins: list[str] | None = None
    is_verified: bool | None = None
    is_active: bool | None = None


class Purpose(TimestampedModel):
    """A named category of processing a subject can consent to."""

    code: str | None = None
    name: str | None = None
    description: str | None = None
    is_essential: bool | None = None
    data_category: str | None = None
    legal_basis: str | None = None
    is_active: bool | None = None


class ConsentPolicy(LedgerModel):
    """A versioned privacy policy document."""

    version: str | None = None
    name: str | None = None
    effective_date: datetime | None = None
    expiration_date: datetime | None = None
    content: str | None = None
    content_hash: str | None = None
    is_active: bool | None = None


class GeoLocation(LedgerModel):
    """A jurisdiction lookup row."""

    country_code: str | None = None
    country_name: str | None = None
    region_code: str | None = None
    region_name: str | None = None
    regulatory_zones: list[str] | None = None


# ═══════════════════════════════════════════════════════════════════════════
# CONSENT & EVIDENCE
# ═══════════════════════════════════════════════════════════════════════════


class ConsentHistoryEntry(BaseModel):
    """One entry of the history embedded in a consent row."""

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    action_type: str
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)


class Consent(TimestampedModel):
    """A subject's consent on one domain covering a set of purposes."""

    subject_id: str | None = None
    domain_id: str | None = None
    purpose_ids: list[str] | None = None
    policy_id: str | None = None
    status: str | None = None
    given_at: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool | None = None
    withdrawal_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = None
    history: list[ConsentHistoryEntry] | None = None

    @field_validator("given_at", "valid_until", mode="before")
    @classmethod
    def _dates_aware(cls, v: Any) -> Any:
        return ensure_aware(v)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if ``valid_until`` has passed."""
        if self.valid_until is None:
            return False
        return self.valid_until <= (now or datetime.now(UTC))


class PurposeJunction(TimestampedModel):
    """Link row between a consent and one purpose."""

    consent_id: str | None = None
    purpose_id: str | None = None
    status: str | None = None
    metadata: dict[str, Any] | None = None


class ConsentGeoLocation(LedgerModel):
    """Where a consent was given from."""

    consent_id: str | None = None
    ip: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None


class ConsentRecord(LedgerModel):
    """Append-only history row for a consent event."""

    subject_id: str | None = None
    consent_id: str | None = None
    action_type: str | None = None
    details: dict[str, Any] | None = None


class Withdrawal(LedgerModel):
    """Evidence of a consent withdrawal."""

    consent_id: str | None = None
    subject_id: str | None = None
    withdrawal_reason: str | None = None
    withdrawal_method: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = None


class AuditLog(LedgerModel):
    """Audit trail entry for any ledger change."""

    entity_type: str | None = None
    entity_id: str | None = None
    action_type: str | None = None
    subject_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    changes: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


ENTITY_MODELS: dict[str, type[LedgerModel]] = {
    "subject": Subject,
    "domain": Domain,
    "purpose": Purpose,
    "geo_location": GeoLocation,
    "consent_policy": ConsentPolicy,
    "consent": Consent,
    "purpose_junction": PurposeJunction,
    "consent_geo_location": ConsentGeoLocation,
    "record": ConsentRecord,
    "withdrawal": Withdrawal,
    "audit_log": AuditLog,
}
