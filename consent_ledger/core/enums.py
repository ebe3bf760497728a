"""
Consent Ledger - Core Enumerations

Enums shared by the schema engine, the registry and the consent
orchestration service: field types, consent lifecycle states, legal bases,
hook phases and the error taxonomy.
"""

from enum import Enum


class FieldType(str, Enum):
    """
    Storage-agnostic field types.

    Array types are spelled with a ``[]`` suffix and hold homogeneous
    lists of the base scalar.
    """
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMEZONE = "timezone"
    JSON = "json"
    STRING_ARRAY = "string[]"
    NUMBER_ARRAY = "number[]"

    @property
    def is_array(self) -> bool:
        """Check if this type holds a list of scalars."""
        return self.value.endswith("[]")

    @property
    def base_type(self) -> "FieldType":
        """Get the scalar type (the element type for arrays)."""
        if self.is_array:
            return FieldType(self.value[:-2])
        return self


class ParseAction(str, Enum):
    """Write actions the input parser distinguishes."""
    CREATE = "create"
    UPDATE = "update"


class OnDelete(str, Enum):
    """Referential action for foreign-key columns."""
    NO_ACTION = "no action"
    RESTRICT = "restrict"
    CASCADE = "cascade"
    SET_NULL = "set null"
    SET_DEFAULT = "set default"


class ConsentStatus(str, Enum):
    """Lifecycle of a consent row."""
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class JunctionStatus(str, Enum):
    """Status of a single consent-purpose link, independent of the consent."""
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class ActionType(str, Enum):
    """Consent history / record action types."""
    GIVEN = "given"
    WITHDRAWN = "withdrawn"
    UPDATED = "updated"
    EXPIRED = "expired"
    REQUESTED = "requested"


class AuditAction(str, Enum):
    """Audit log action types."""
    CREATE = "create"
    UPDATE = "update"
    WITHDRAW = "withdraw"


class WithdrawalMethod(str, Enum):
    """How a withdrawal was initiated."""
    SUBJECT_INITIATED = "subject-initiated"
    AUTOMATIC_EXPIRY = "automatic-expiry"
    ADMIN = "admin"
    API = "api"
    OTHER = "other"


class LegalBasis(str, Enum):
    """Legal basis for processing (GDPR Article 6)."""
    CONSENT = "consent"
    CONTRACT = "contract"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_TASK = "public_task"
    LEGITIMATE_INTEREST = "legitimate_interest"


class DataCategory(str, Enum):
    """Broad data categories a purpose may cover."""
    FUNCTIONAL = "functional"
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    PERSONALIZATION = "personalization"
    NECESSARY = "necessary"


class IdentityProvider(str, Enum):
    """Where a subject's identity comes from."""
    ANONYMOUS = "anonymous"
    EXTERNAL = "external"


class HookOperation(str, Enum):
    """Registry operations that run lifecycle hooks."""
    CREATE = "create"
    UPDATE = "update"


class HookPhase(str, Enum):
    """When a hook runs relative to the storage write."""
    BEFORE = "before"
    AFTER = "after"


class ErrorKind(str, Enum):
    """
    Machine-readable error kinds.

    Each kind carries the HTTP-style status the outer layer maps it to.
    """
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    @property
    def default_status(self) -> int:
        """Get the default status code for this kind."""
        return {
            ErrorKind.BAD_REQUEST: 400,
            ErrorKind.NOT_FOUND: 404,
            ErrorKind.CONFLICT: 409,
            ErrorKind.INTERNAL_SERVER_ERROR: 500,
        }[self]
