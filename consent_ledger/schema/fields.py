"""
Consent Ledger - Field Model

Declarative field definitions shared by every entity. A ``Field`` is a
description, not code that runs eagerly: defaults are evaluated lazily at
creation time, and transforms / validators run only inside the parser.

Defaults and validators are modelled as explicit variants so the parser
dispatches on type instead of inspecting object shapes:

- ``Literal(value)`` / ``Producer(fn)`` for default values
- ``FunctionValidator(fn)`` / ``LegacyValidator(input, output)`` for validation
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Union

from consent_ledger.core.enums import FieldType, OnDelete
from consent_ledger.core.errors import ValidationError
from consent_ledger.core.ids import create_id_generator

JsonValue = Union[str, int, float, bool, None, dict[str, Any], list[Any]]
MaybeAwaitable = Union[Any, Awaitable[Any]]


# =============================================================================
# Default values
# =============================================================================


@dataclass(frozen=True)
class Literal:
    """A static default value."""
    value: Any

    def resolve(self) -> Any:
        # Mutable literals are copied so rows never share a list/dict
        if isinstance(self.value, (list, dict, set)):
            return type(self.value)(self.value)
        return self.value


@dataclass(frozen=True)
class Producer:
    """A zero-argument callable evaluated each time a default is needed."""
    fn: Callable[[], Any]

    def resolve(self) -> Any:
        return self.fn()


DefaultValue = Union[Literal, Producer]


def as_default(value: Any) -> DefaultValue | None:
    """Normalise a bare value or callable into a ``DefaultValue``."""
    if value is None or isinstance(value, (Literal, Producer)):
        return value
    if callable(value):
        return Producer(value)
    return Literal(value)


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Validators and transforms
# =============================================================================


@dataclass(frozen=True)
class FunctionValidator:
    """
    Current-style validator.

    ``fn(value)`` returns an error message, or ``None`` when the value is
    valid. It may be a coroutine function.
    """
    fn: Callable[[Any], MaybeAwaitable]


@dataclass(frozen=True)
class LegacyValidator:
    """
    Backward-compatible validator.

    ``input`` / ``output`` are parsers: any object with a ``parse(value)``
    method, or a plain callable such as ``TypeAdapter(int).validate_python``.
    They return the parsed value and may raise on invalid data.
    """
    input: Any = None
    output: Any = None


Validator = Union[FunctionValidator, LegacyValidator]


def as_validator(value: Any) -> Validator | None:
    """Normalise a callable or ``{input, output}`` mapping into a ``Validator``."""
    if value is None or isinstance(value, (FunctionValidator, LegacyValidator)):
        return value
    if isinstance(value, dict):
        return LegacyValidator(input=value.get("input"), output=value.get("output"))
    if callable(value):
        return FunctionValidator(value)
    raise TypeError(f"Unsupported validator: {value!r}")


def run_parser(parser: Any, value: Any) -> Any:
    """Invoke a legacy parser, which is either ``obj.parse`` or a callable."""
    parse = getattr(parser, "parse", None)
    if parse is not None:
        return parse(value)
    if callable(parser):
        return parser(value)
    raise TypeError(f"Legacy parser {parser!r} has no parse()")


@dataclass(frozen=True)
class Transform:
    """Value transforms applied on the way in and on the way out."""
    input: Callable[[Any], MaybeAwaitable] | None = None
    output: Callable[[Any], MaybeAwaitable] | None = None


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a callback handed back an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


# =============================================================================
# References
# =============================================================================


@dataclass(frozen=True)
class Reference:
    """
    Foreign-key pointer to another entity.

    ``entity`` is symbolic (the entity key, e.g. ``"subject"``) until the
    merge engine materialises it into the target's configured table name.
    """
    entity: str
    field: str = "id"
    required: bool = True
    on_delete: OnDelete = OnDelete.CASCADE


# =============================================================================
# Field
# =============================================================================


@dataclass(frozen=True)
class Field:
    """
    Definition of a single entity field.

    Attributes:
        type: Storage-agnostic field type
        required: Must be present (or defaulted) on create
        returned: Included in output; ``False`` hides it from every read
        input: Accepted from callers; ``False`` fields only ever get defaults
        unique: Values must be unique across rows
        default: Lazily evaluated default value
        transform: Input/output value transforms
        validator: Function or legacy validator
        references: Foreign-key reference to another entity
        field_name: Physical column name, defaults to the field key
    """
    type: FieldType
    required: bool = True
    returned: bool = True
    input: bool = True
    unique: bool = False
    default: DefaultValue | None = None
    transform: Transform | None = None
    validator: Validator | None = None
    references: Reference | None = None
    field_name: str | None = None
    sortable: bool = True
    bigint: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", FieldType(self.type))
        object.__setattr__(self, "default", as_default(self.default))
        object.__setattr__(self, "validator", as_validator(self.validator))

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def resolve_default(self) -> Any:
        """Evaluate the default value at the point of use."""
        if self.default is None:
            return None
        return self.default.resolve()

    def column(self, key: str) -> str:
        """Physical column name for this field under ``key``."""
        return self.field_name or key

    def with_changes(self, **changes: Any) -> "Field":
        return replace(self, **changes)


def infer_value_type(field_type: FieldType | str) -> Any:
    """
    Get the Python runtime shape of a field type.

    Returns:
        A type, a tuple of types, or ``list[...]`` for array types
    """
    field_type = FieldType(field_type)
    scalar: dict[FieldType, Any] = {
        FieldType.STRING: str,
        FieldType.NUMBER: (int, float),
        FieldType.BOOLEAN: bool,
        FieldType.DATE: datetime,
        FieldType.TIMEZONE: str,
        FieldType.JSON: JsonValue,
    }
    if field_type.is_array:
        base = scalar[field_type.base_type]
        return list[base if not isinstance(base, tuple) else Union[base]]
    return scalar[field_type]


def _coerce_scalar(base: FieldType, value: Any, key: str) -> Any:
    if base in (FieldType.STRING, FieldType.TIMEZONE):
        if isinstance(value, str):
            return value
    elif base == FieldType.NUMBER:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    elif base == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
    elif base == FieldType.DATE:
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        if isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                pass
            else:
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    elif base == FieldType.JSON:
        return value
    raise ValidationError(key, f"{key} must be of type {base.value}, got {type(value).__name__}")


def check_value_type(field_type: FieldType | str, value: Any, key: str = "value") -> Any:
    """
    Check (and lightly coerce) a value against its field type.

    ``None`` always passes. Dates accept ISO-8601 strings and come back as
    aware datetimes. Booleans are never accepted as numbers.

    Raises:
        ValidationError: If the value does not match the type
    """
    if value is None:
        return None
    field_type = FieldType(field_type)
    if field_type.is_array:
        if not isinstance(value, (list, tuple)):
            raise ValidationError(key, f"{key} must be a list of {field_type.base_type.value}")
        return [_coerce_scalar(field_type.base_type, item, key) for item in value]
    return _coerce_scalar(field_type, value, key)


# =============================================================================
# Field factories
# =============================================================================


def string_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.STRING, **kwargs)


def number_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.NUMBER, **kwargs)


def boolean_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.BOOLEAN, **kwargs)


def date_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.DATE, **kwargs)


def timezone_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.TIMEZONE, **kwargs)


def json_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.JSON, **kwargs)


def string_array_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.STRING_ARRAY, **kwargs)


def number_array_field(**kwargs: Any) -> Field:
    return Field(type=FieldType.NUMBER_ARRAY, **kwargs)


def id_field(prefix: str) -> Field:
    """Primary key field generating ``<prefix>_...`` ids; never accepted from input."""
    return Field(
        type=FieldType.STRING,
        required=True,
        input=False,
        unique=True,
        default=Producer(create_id_generator(prefix)),
    )


def reference_field(
    entity: str,
    required: bool = True,
    on_delete: OnDelete = OnDelete.CASCADE,
    **kwargs: Any,
) -> Field:
    """String column referencing ``entity.id``."""
    return Field(
        type=FieldType.STRING,
        required=required,
        references=Reference(entity=entity, required=required, on_delete=on_delete),
        **kwargs,
    )


def created_at_field() -> Field:
    return Field(type=FieldType.DATE, required=True, input=False, default=Producer(now_utc))


def updated_at_field(required: bool = True) -> Field:
    return Field(type=FieldType.DATE, required=required, default=Producer(now_utc))


__all__ = [
    "DefaultValue",
    "Field",
    "FunctionValidator",
    "JsonValue",
    "LegacyValidator",
    "Literal",
    "Producer",
    "Reference",
    "Transform",
    "Validator",
    "as_default",
    "as_validator",
    "boolean_field",
    "check_value_type",
    "created_at_field",
    "date_field",
    "id_field",
    "infer_value_type",
    "json_field",
    "maybe_await",
    "now_utc",
    "number_array_field",
    "number_field",
    "reference_field",
    "run_parser",
    "string_array_field",
    "string_field",
    "timezone_field",
    "updated_at_field",
]
