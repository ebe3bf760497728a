"""
Consent Ledger

Consent-management core: a plugin-extensible schema engine, a typed
entity registry over an abstract storage adapter, and the consent
orchestration service built on top of it.
"""

__version__ = "1.0.0"

from consent_ledger.core import (
    ConflictError,
    ConsentLedgerConfig,
    ConsentLedgerError,
    DependencyFailure,
    DuplicateEntryError,
    ErrorKind,
    FieldType,
    MissingRequiredFieldError,
    NotFoundError,
    ParseAction,
    ValidationError,
    generate_id,
    get_config,
)
from consent_ledger.monitoring import configure_logging
from consent_ledger.registry import (
    REJECT,
    ConsentRegistry,
    EntityHook,
    HookTransform,
    create_registry,
)
from consent_ledger.schema import (
    EntityFragment,
    EntityOptions,
    EntitySchema,
    Field,
    LedgerOptions,
    LedgerPlugin,
    build_schema,
    get_all_fields,
    parse_input,
    parse_output,
)
from consent_ledger.services import (
    ConsentService,
    CreateConsentParams,
    create_consent_service,
)
from consent_ledger.storage import MemoryAdapter, StorageAdapter, WhereCondition

__all__ = [
    "__version__",
    # Core
    "ConflictError",
    "ConsentLedgerConfig",
    "ConsentLedgerError",
    "DependencyFailure",
    "DuplicateEntryError",
    "ErrorKind",
    "FieldType",
    "MissingRequiredFieldError",
    "NotFoundError",
    "ParseAction",
    "ValidationError",
    "generate_id",
    "get_config",
    # Logging
    "configure_logging",
    # Schema
    "EntityFragment",
    "EntityOptions",
    "EntitySchema",
    "Field",
    "LedgerOptions",
    "LedgerPlugin",
    "build_schema",
    "get_all_fields",
    "parse_input",
    "parse_output",
    # Storage
    "MemoryAdapter",
    "StorageAdapter",
    "WhereCondition",
    # Registry
    "REJECT",
    "ConsentRegistry",
    "EntityHook",
    "HookTransform",
    "create_registry",
    # Services
    "ConsentService",
    "CreateConsentParams",
    "create_consent_service",
]
