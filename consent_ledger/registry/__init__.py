"""
Consent Ledger - Registry Module

Database hooks, entity repositories and the registry that ties them to
a storage adapter.
"""

from consent_ledger.registry.base import Criteria, EntityRepository
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
from consent_ledger.registry.hooks import (
    REJECT,
    DatabaseHook,
    EntityHook,
    HookContext,
    HookTransform,
    collect_hooks,
    run_after_hooks,
    run_before_hooks,
)
from consent_ledger.registry.registry import ConsentRegistry, create_registry

__all__ = [
    # Hooks
    "REJECT",
    "DatabaseHook",
    "EntityHook",
    "HookContext",
    "HookTransform",
    "collect_hooks",
    "run_after_hooks",
    "run_before_hooks",
    # Repositories
    "Criteria",
    "EntityRepository",
    "REPOSITORY_CLASSES",
    "AuditLogRepository",
    "ConsentGeoLocationRepository",
    "ConsentPolicyRepository",
    "ConsentRepository",
    "DomainRepository",
    "GeoLocationRepository",
    "PurposeJunctionRepository",
    "PurposeRepository",
    "RecordRepository",
    "SubjectRepository",
    "WithdrawalRepository",
    # Registry
    "ConsentRegistry",
    "create_registry",
]
