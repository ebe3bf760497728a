"""
Consent Ledger - Registry

Single entry point to every entity repository. The registry builds the
merged schema once from its options and shares one adapter and one hook
list across all repositories.
"""

from __future__ import annotations

from typing import Any

import structlog

from consent_ledger.registry.base import EntityRepository
from consent_ledger.registry.entities import (
    REPOSITORY_CLASSES,
    AuditLogRepository,
    ConsentGeoLocationRepository,
    ConsentPolicyRepository,
    ConsentRepository,
    DomainRepository,
    GeoLocationRepository,
    PurposeJunctionRepository,
    PurposeRepository,
    RecordRepository,
    SubjectRepository,
    WithdrawalRepository,
)
from consent_ledger.registry.hooks import DatabaseHook, collect_hooks
from consent_ledger.schema.fields import Field
from consent_ledger.schema.merge import (
    LedgerOptions,
    build_schema,
    find_schema,
    get_persisted_schema,
)
from consent_ledger.schema.tables import EntitySchema, TableDefinition
from consent_ledger.storage.adapter import StorageAdapter

logger = structlog.get_logger(__name__)


class ConsentRegistry:
    """
    Typed CRUD access to every ledger entity.

    Usage:
        registry = create_registry(MemoryAdapter())
        await registry.initialize()
        subject = await registry.subjects.create({"is_identified": False})
    """

    subjects: SubjectRepository
    domains: DomainRepository
    purposes: PurposeRepository
    consent_policies: ConsentPolicyRepository
    geo_locations: GeoLocationRepository
    consents: ConsentRepository
    purpose_junctions: PurposeJunctionRepository
    consent_geo_locations: ConsentGeoLocationRepository
    records: RecordRepository
    withdrawals: WithdrawalRepository
    audit_logs: AuditLogRepository

    _ATTRIBUTES = {
        "subject": "subjects",
        "domain": "domains",
        "purpose": "purposes",
        "consent_policy": "consent_policies",
        "geo_location": "geo_locations",
        "consent": "consents",
        "purpose_junction": "purpose_junctions",
        "consent_geo_location": "consent_geo_locations",
        "record": "records",
        "withdrawal": "withdrawals",
        "audit_log": "audit_logs",
    }

    def __init__(self, adapter: StorageAdapter, options: LedgerOptions | None = None):
        self.adapter = adapter
        self.options = options or LedgerOptions()
        self.schemas: dict[str, EntitySchema] = build_schema(options=self.options)
        self.hooks: list[DatabaseHook] = collect_hooks(self.options.hooks, self.options.plugins)

        self._repositories: dict[str, EntityRepository[Any]] = {}
        for key, schema in self.schemas.items():
            repository_class = REPOSITORY_CLASSES.get(key, EntityRepository)
            repository = repository_class(adapter, schema, self.hooks)
            self._repositories[key] = repository
            attribute = self._ATTRIBUTES.get(key)
            if attribute is not None:
                setattr(self, attribute, repository)

        logger.debug(
            "registry_created",
            adapter=getattr(adapter, "id", type(adapter).__name__),
            entities=list(self.schemas),
            plugins=[plugin.id for plugin in self.options.plugins],
            hooks=len(self.hooks),
        )

    def repository(self, entity: str) -> EntityRepository[Any]:
        """Get the repository of an entity by key or table name, plugin entities included."""
        return self._repositories[find_schema(self.schemas, entity).key]

    def get_all_fields(self, entity: str) -> dict[str, Field]:
        """Get the resolved field map of an entity."""
        return dict(find_schema(self.schemas, entity).fields)

    @property
    def persisted_schema(self) -> dict[str, TableDefinition]:
        """The adapter-independent table shape."""
        return get_persisted_schema(self.schemas)

    async def initialize(self) -> None:
        """Hand the persisted schema to the adapter."""
        await self.adapter.initialize(self.persisted_schema)
        logger.info("registry_initialized", tables=len(self.persisted_schema))


def create_registry(adapter: StorageAdapter, options: LedgerOptions | None = None) -> ConsentRegistry:
    """Create a registry over ``adapter``."""
    return ConsentRegistry(adapter, options)
