"""
Consent Ledger - Input/Output Parser

Applies a merged entity schema to data crossing the storage boundary.

Input parsing iterates the schema (never the raw keys), so the result only
ever holds fields the entity knows about. Output parsing iterates the row,
so fields the schema does not know about pass through untouched.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

import structlog

from consent_ledger.core.enums import ParseAction
from consent_ledger.core.errors import (
    ConsentLedgerError,
    MissingRequiredFieldError,
    ValidationError,
)
from consent_ledger.schema.fields import (
    Field,
    FunctionValidator,
    LegacyValidator,
    check_value_type,
    maybe_await,
    run_parser,
)
from consent_ledger.schema.tables import EntitySchema

logger = structlog.get_logger(__name__)

SchemaLike = Union[EntitySchema, Mapping[str, Field]]


def _fields_of(schema: SchemaLike) -> Mapping[str, Field]:
    if isinstance(schema, EntitySchema):
        return schema.fields
    return schema


def _run_legacy(parser: Any, value: Any, key: str) -> Any:
    try:
        return run_parser(parser, value)
    except ConsentLedgerError:
        raise
    except Exception as exc:
        raise ValidationError(key, f"Invalid value for {key}: {exc}") from exc


async def _parse_present(key: str, f: Field, value: Any) -> Any:
    if value is None:
        return None

    validator = f.validator
    if isinstance(validator, FunctionValidator):
        message = await maybe_await(validator.fn(value))
        if message:
            raise ValidationError(key, str(message))
    elif isinstance(validator, LegacyValidator) and validator.input is not None:
        return _run_legacy(validator.input, value, key)

    if f.transform is not None and f.transform.input is not None:
        return await maybe_await(f.transform.input(value))
    return value


async def parse_input(
    raw: Mapping[str, Any],
    schema: SchemaLike,
    action: ParseAction | str = ParseAction.CREATE,
) -> dict[str, Any]:
    """
    Validate, default and transform raw input against a schema.

    Args:
        raw: Untrusted input keyed by field key
        schema: Entity schema or plain field map
        action: ``create`` applies defaults and required checks;
            ``update`` is a partial update

    Returns:
        Parsed data holding only schema fields, in schema order

    Raises:
        MissingRequiredFieldError: A required field is absent on create
        ValidationError: A validator rejected a value or its type is wrong
    """
    action = ParseAction(action)
    parsed: dict[str, Any] = {}

    for key, f in _fields_of(schema).items():
        if key in raw:
            if not f.input:
                # Never trust caller-supplied values for protected fields
                if f.has_default:
                    parsed[key] = f.resolve_default()
                else:
                    logger.debug("protected_field_dropped", field=key)
                continue
            value = await _parse_present(key, f, raw[key])
            parsed[key] = check_value_type(f.type, value, key)
            continue

        if action != ParseAction.CREATE:
            continue
        if f.has_default:
            parsed[key] = f.resolve_default()
        elif f.required:
            raise MissingRequiredFieldError(key)

    return parsed


def parse_output(record: Mapping[str, Any], schema: SchemaLike) -> dict[str, Any]:
    """
    Drop fields marked ``returned=False``; keep everything else.

    Pure and idempotent: parsing an already parsed record is a no-op.
    """
    fields = _fields_of(schema)
    return {
        key: value
        for key, value in record.items()
        if key not in fields or fields[key].returned
    }


async def apply_output_transforms(record: Mapping[str, Any], schema: SchemaLike) -> dict[str, Any]:
    """
    Run output transforms (or legacy output parsers) on the fields present.

    Applied once on the registry read path, after ``parse_output``.
    """
    fields = _fields_of(schema)
    result = dict(record)
    for key, value in record.items():
        f = fields.get(key)
        if f is None or value is None:
            continue
        validator = f.validator
        if isinstance(validator, LegacyValidator) and validator.output is not None:
            result[key] = _run_legacy(validator.output, value, key)
        elif f.transform is not None and f.transform.output is not None:
            result[key] = await maybe_await(f.transform.output(value))
    return result


__all__ = [
    "apply_output_transforms",
    "parse_input",
    "parse_output",
]
