"""
Consent Ledger - Built-in Tables

Field sets for the eleven statically known entities, plus the
``EntitySchema`` / ``TableDefinition`` shapes the merge engine produces.

``order`` is the creation/migration dependency order: an entity is always
ordered after every entity it references.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from consent_ledger.core.enums import (
    ConsentStatus,
    FieldType,
    IdentityProvider,
    JunctionStatus,
    OnDelete,
)
from consent_ledger.schema.fields import (
    Field,
    boolean_field,
    created_at_field,
    date_field,
    id_field,
    json_field,
    now_utc,
    number_field,
    reference_field,
    string_array_field,
    string_field,
    timezone_field,
    updated_at_field,
)


@dataclass(frozen=True)
class EntitySchema:
    """
    The effective schema of one entity after merging.

    Attributes:
        key: Logical entity key (``"subject"``, ``"purpose_junction"``, ...)
        entity_name: Configured table name
        entity_prefix: Prefix of generated ids
        fields: Ordered field map, keyed by field key
        order: Creation/migration order, lower first
        unique_together: Multi-column uniqueness constraints, by field key
    """
    key: str
    entity_name: str
    entity_prefix: str
    fields: dict[str, Field]
    order: float = math.inf
    unique_together: tuple[tuple[str, ...], ...] = ()

    def column_map(self) -> dict[str, str]:
        """Map field keys to physical column names."""
        return {key: f.column(key) for key, f in self.fields.items()}

    def key_map(self) -> dict[str, str]:
        """Map physical column names back to field keys."""
        return {f.column(key): key for key, f in self.fields.items()}


@dataclass
class ColumnDefinition:
    """One persisted column."""
    name: str
    type: FieldType
    required: bool = True
    unique: bool = False
    references: dict[str, Any] | None = None
    sortable: bool = True
    bigint: bool = False


@dataclass
class TableDefinition:
    """Logical, adapter-independent persisted table."""
    name: str
    entity_keys: list[str]
    order: float
    columns: dict[str, ColumnDefinition] = field(default_factory=dict)
    unique_constraints: list[tuple[str, ...]] = field(default_factory=list)


def _base(prefix: str, *, updated_at: bool = True) -> dict[str, Field]:
    fields = {"id": id_field(prefix), "created_at": created_at_field()}
    if updated_at:
        fields["updated_at"] = updated_at_field()
    return fields


# ═══════════════════════════════════════════════════════════════════════════
# BUILT-IN ENTITY FIELD SETS
# ═══════════════════════════════════════════════════════════════════════════


def subject_fields() -> dict[str, Field]:
    return {
        **_base("sub"),
        "is_identified": boolean_field(default=False),
        "external_id": string_field(required=False, unique=True),
        "identity_provider": string_field(
            required=False, default=IdentityProvider.ANONYMOUS.value
        ),
        "last_ip_address": string_field(required=False),
        "subject_timezone": timezone_field(required=False),
    }


def domain_fields() -> dict[str, Field]:
    return {
        **_base("dom"),
        "name": string_field(unique=True),
        "description": string_field(required=False),
        "allowed_origins": string_array_field(required=False, default=[]),
        "is_verified": boolean_field(default=True),
        "is_active": boolean_field(default=True),
    }


def purpose_fields() -> dict[str, Field]:
    return {
        **_base("pur"),
        "code": string_field(unique=True),
        "name": string_field(),
        "description": string_field(),
        "is_essential": boolean_field(default=False),
        "data_category": string_field(required=False),
        "legal_basis": string_field(required=False),
        "is_active": boolean_field(default=True),
    }


def geo_location_fields() -> dict[str, Field]:
    return {
        **_base("geo", updated_at=False),
        "country_code": string_field(),
        "country_name": string_field(),
        "region_code": string_field(required=False),
        "region_name": string_field(required=False),
        "regulatory_zones": string_array_field(required=False),
    }


def consent_policy_fields() -> dict[str, Field]:
    return {
        **_base("pol", updated_at=False),
        "version": string_field(),
        "name": string_field(),
        "effective_date": date_field(),
        "expiration_date": date_field(required=False),
        "content": string_field(),
        "content_hash": string_field(),
        "is_active": boolean_field(default=True),
    }


def consent_fields() -> dict[str, Field]:
    return {
        **_base("cns"),
        "subject_id": reference_field("subject"),
        "domain_id": reference_field("domain"),
        "purpose_ids": json_field(),
        "policy_id": reference_field(
            "consent_policy", required=False, on_delete=OnDelete.SET_NULL
        ),
        "status": string_field(default=ConsentStatus.ACTIVE.value),
        "given_at": date_field(default=now_utc),
        "valid_until": date_field(required=False),
        "is_active": boolean_field(default=True),
        "withdrawal_reason": string_field(required=False),
        "ip_address": string_field(required=False),
        "user_agent": string_field(required=False),
        "metadata": json_field(required=False),
        "history": json_field(required=False, default=[]),
    }


def purpose_junction_fields() -> dict[str, Field]:
    return {
        **_base("pjn"),
        "consent_id": reference_field("consent"),
        "purpose_id": reference_field("purpose"),
        "status": string_field(default=JunctionStatus.ACTIVE.value),
        "metadata": json_field(required=False),
    }


def consent_geo_location_fields() -> dict[str, Field]:
    return {
        **_base("cgl", updated_at=False),
        "consent_id": reference_field("consent"),
        "ip": string_field(),
        "country": string_field(required=False),
        "region": string_field(required=False),
        "city": string_field(required=False),
        "latitude": number_field(required=False),
        "longitude": number_field(required=False),
        "timezone": timezone_field(required=False),
    }


def record_fields() -> dict[str, Field]:
    return {
        **_base("rec", updated_at=False),
        "subject_id": reference_field("subject"),
        "consent_id": reference_field("consent", required=False),
        "action_type": string_field(),
        "details": json_field(required=False),
    }


def withdrawal_fields() -> dict[str, Field]:
    return {
        **_base("wdr", updated_at=False),
        "consent_id": reference_field("consent"),
        "subject_id": reference_field("subject"),
        "withdrawal_reason": string_field(required=False),
        "withdrawal_method": string_field(default="subject-initiated"),
        "ip_address": string_field(required=False),
        "user_agent": string_field(required=False),
        "metadata": json_field(required=False),
    }


def audit_log_fields() -> dict[str, Field]:
    return {
        **_base("log", updated_at=False),
        "entity_type": string_field(),
        "entity_id": string_field(),
        "action_type": string_field(),
        "subject_id": reference_field(
            "subject", required=False, on_delete=OnDelete.SET_NULL
        ),
        "ip_address": string_field(required=False),
        "user_agent": string_field(required=False),
        "changes": json_field(required=False),
        "metadata": json_field(required=False),
    }


@dataclass(frozen=True)
class EntityDefinition:
    """Static description of a built-in entity before merging."""
    key: str
    prefix: str
    order: float
    build_fields: Any
    unique_together: tuple[tuple[str, ...], ...] = ()

    def fields(self) -> dict[str, Field]:
        return self.build_fields()


BUILTIN_ENTITIES: tuple[EntityDefinition, ...] = (
    EntityDefinition("subject", "sub", 1, subject_fields),
    EntityDefinition("domain", "dom", 2, domain_fields),
    EntityDefinition("purpose", "pur", 2, purpose_fields),
    EntityDefinition("geo_location", "geo", 2, geo_location_fields),
    EntityDefinition("consent_policy", "pol", 3, consent_policy_fields),
    EntityDefinition("consent", "cns", 5, consent_fields),
    EntityDefinition(
        "purpose_junction", "pjn", 6, purpose_junction_fields,
        unique_together=(("consent_id", "purpose_id"),),
    ),
    EntityDefinition("consent_geo_location", "cgl", 6, consent_geo_location_fields),
    EntityDefinition("record", "rec", 7, record_fields),
    EntityDefinition("withdrawal", "wdr", 7, withdrawal_fields),
    EntityDefinition("audit_log", "log", 8, audit_log_fields),
)


def builtin_entity_definitions() -> dict[str, EntityDefinition]:
    """Get the built-in entity definitions keyed by entity key."""
    return {definition.key: definition for definition in BUILTIN_ENTITIES}
