"""
Consent Ledger - Core Module

Core components shared by every layer:
- Configuration
- Enumerations
- Errors
- Identifiers
- Entity models
"""

from consent_ledger.core.config import ConsentLedgerConfig, get_config
from consent_ledger.core.enums import (
    ActionType,
    AuditAction,
    ConsentStatus,
    DataCategory,
    ErrorKind,
    FieldType,
    HookOperation,
    HookPhase,
    IdentityProvider,
    JunctionStatus,
    LegalBasis,
    OnDelete,
    ParseAction,
    WithdrawalMethod,
)
from consent_ledger.core.errors import (
    ConflictError,
    ConsentLedgerError,
    DependencyFailure,
    DuplicateEntryError,
    MissingRequiredFieldError,
    NotFoundError,
    ValidationError,
)
from consent_ledger.core.ids import create_id_generator, generate_id
from consent_ledger.core.models import (
    ENTITY_MODELS,
    AuditLog,
    Consent,
    ConsentGeoLocation,
    ConsentHistoryEntry,
    ConsentPolicy,
    ConsentRecord,
    Domain,
    GeoLocation,
    LedgerModel,
    Purpose,
    PurposeJunction,
    Subject,
    Withdrawal,
)

__all__ = [
    # Config
    "ConsentLedgerConfig",
    "get_config",
    # Enums
    "ActionType",
    "AuditAction",
    "ConsentStatus",
    "DataCategory",
    "ErrorKind",
    "FieldType",
    "HookOperation",
    "HookPhase",
    "IdentityProvider",
    "JunctionStatus",
    "LegalBasis",
    "OnDelete",
    "ParseAction",
    "WithdrawalMethod",
    # Errors
    "ConflictError",
    "ConsentLedgerError",
    "DependencyFailure",
    "DuplicateEntryError",
    "MissingRequiredFieldError",
    "NotFoundError",
    "ValidationError",
    # Ids
    "create_id_generator",
    "generate_id",
    # Models
    "ENTITY_MODELS",
    "AuditLog",
    "Consent",
    "ConsentGeoLocation",
    "ConsentHistoryEntry",
    "ConsentPolicy",
    "ConsentRecord",
    "Domain",
    "GeoLocation",
    "LedgerModel",
    "Purpose",
    "PurposeJunction",
    "Subject",
    "Withdrawal",
]
