"""
Consent Ledger - Schema Merge Engine

Builds the effective schema of every entity from three independent
sources, in increasing precedence:

1. Built-in field sets (``consent_ledger.schema.tables``)
2. Plugin schema fragments (the documented extension point)
3. Configuration: additional fields and column-name overrides

Merging is a pure function of its inputs and is total: nothing raises
here. A reference to an entity that does not exist in the final set
degrades the field to a plain column.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import structlog

from consent_ledger.schema.fields import Field, Reference, id_field
from consent_ledger.schema.tables import (
    ColumnDefinition,
    EntityDefinition,
    EntitySchema,
    TableDefinition,
    builtin_entity_definitions,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Plugin and configuration shapes
# =============================================================================


@dataclass
class EntityFragment:
    """Fields (and optionally table metadata) a plugin contributes to one entity."""
    fields: dict[str, Field] = field(default_factory=dict)
    entity_name: str | None = None
    entity_prefix: str | None = None
    order: float | None = None


@dataclass
class LedgerPlugin:
    """
    A ledger extension.

    ``schema`` maps entity keys to fragments; keys that are not built-in
    entities become new tables. ``hooks`` is a list of database hooks (see
    ``consent_ledger.registry.hooks``).
    """
    id: str
    schema: dict[str, EntityFragment] = field(default_factory=dict)
    hooks: list[Any] = field(default_factory=list)


@dataclass
class EntityOptions:
    """
    Per-entity configuration.

    Attributes:
        entity_name: Table name override
        fields: Column-name overrides, field key -> column name
        additional_fields: Extra fields; these win over built-ins and plugins
    """
    entity_name: str | None = None
    fields: dict[str, str] = field(default_factory=dict)
    additional_fields: dict[str, Field] = field(default_factory=dict)


@dataclass
class LedgerOptions:
    """Code-level ledger configuration: entity options, plugins and hooks."""
    entities: dict[str, EntityOptions] = field(default_factory=dict)
    plugins: list[LedgerPlugin] = field(default_factory=list)
    hooks: list[Any] = field(default_factory=list)

    def for_entity(self, key: str) -> EntityOptions:
        return self.entities.get(key) or EntityOptions()


# =============================================================================
# Merge steps
# =============================================================================


def merge_plugin_fragments(plugins: Iterable[LedgerPlugin]) -> dict[str, EntityFragment]:
    """
    Fold every plugin's schema into one fragment per entity.

    Fragments for the same entity are unioned; on a field-key collision the
    later plugin wins. Table metadata follows the same rule.
    """
    merged: dict[str, EntityFragment] = {}
    for plugin in plugins:
        for key, fragment in (plugin.schema or {}).items():
            current = merged.get(key)
            if current is None:
                merged[key] = EntityFragment(
                    fields=dict(fragment.fields),
                    entity_name=fragment.entity_name,
                    entity_prefix=fragment.entity_prefix,
                    order=fragment.order,
                )
                continue
            current.fields.update(fragment.fields)
            current.entity_name = fragment.entity_name or current.entity_name
            current.entity_prefix = fragment.entity_prefix or current.entity_prefix
            if fragment.order is not None:
                current.order = fragment.order
    return merged


def _apply_options(key: str, fields: dict[str, Field], options: EntityOptions) -> dict[str, Field]:
    fields.update(options.additional_fields)
    for field_key, column in options.fields.items():
        current = fields.get(field_key)
        if current is None:
            logger.debug("field_override_ignored", entity=key, field=field_key)
            continue
        fields[field_key] = current.with_changes(field_name=column)
    return fields


def resolve_references(schemas: Mapping[str, EntitySchema]) -> dict[str, EntitySchema]:
    """
    Materialise every symbolic reference against the final entity set.

    A reference may name the target by entity key or by configured table
    name; either way it ends up pointing at the target's ``entity_name``.
    Unresolvable references are dropped and the field is kept.
    """
    by_key = {key: schema.entity_name for key, schema in schemas.items()}
    by_table = {schema.entity_name: schema.entity_name for schema in schemas.values()}

    resolved: dict[str, EntitySchema] = {}
    for key, schema in schemas.items():
        fields: dict[str, Field] = {}
        for field_key, f in schema.fields.items():
            ref = f.references
            if ref is None:
                fields[field_key] = f
                continue
            target = by_key.get(ref.entity) or by_table.get(ref.entity)
            if target is None:
                logger.debug(
                    "reference_dropped",
                    entity=key,
                    field=field_key,
                    target=ref.entity,
                )
                fields[field_key] = f.with_changes(references=None)
            else:
                fields[field_key] = f.with_changes(
                    references=Reference(
                        entity=target,
                        field=ref.field,
                        required=ref.required,
                        on_delete=ref.on_delete,
                    )
                )
        resolved[key] = EntitySchema(
            key=schema.key,
            entity_name=schema.entity_name,
            entity_prefix=schema.entity_prefix,
            fields=fields,
            order=schema.order,
            unique_together=schema.unique_together,
        )
    return resolved


def build_schema(
    entity_definitions: Mapping[str, EntityDefinition] | None = None,
    plugins: Iterable[LedgerPlugin] | None = None,
    options: LedgerOptions | None = None,
) -> dict[str, EntitySchema]:
    """
    Build the effective schema of every entity.

    Args:
        entity_definitions: Built-in entities; defaults to the ledger's eleven
        plugins: Plugins to merge; defaults to ``options.plugins``
        options: Entity configuration applied last

    Returns:
        Entity key -> merged ``EntitySchema``, built-ins first, then
        plugin-only entities in plugin order
    """
    options = options or LedgerOptions()
    definitions = (
        builtin_entity_definitions() if entity_definitions is None else dict(entity_definitions)
    )
    fragments = merge_plugin_fragments(options.plugins if plugins is None else plugins)

    schemas: dict[str, EntitySchema] = {}

    for key, definition in definitions.items():
        fragment = fragments.get(key)
        entity_options = options.for_entity(key)
        prefix = (fragment.entity_prefix if fragment else None) or definition.prefix
        fields = definition.fields()
        if prefix != definition.prefix:
            fields["id"] = id_field(prefix)
        if fragment is not None:
            fields.update(fragment.fields)
        fields = _apply_options(key, fields, entity_options)
        schemas[key] = EntitySchema(
            key=key,
            entity_name=entity_options.entity_name
            or (fragment.entity_name if fragment else None)
            or key,
            entity_prefix=prefix,
            fields=fields,
            order=definition.order,
            unique_together=definition.unique_together,
        )

    for key, fragment in fragments.items():
        if key in schemas:
            continue
        prefix = fragment.entity_prefix or key[:3]
        entity_options = options.for_entity(key)
        fields = {"id": id_field(prefix), **fragment.fields}
        fields = _apply_options(key, fields, entity_options)
        schemas[key] = EntitySchema(
            key=key,
            entity_name=entity_options.entity_name or fragment.entity_name or key,
            entity_prefix=prefix,
            fields=fields,
            order=math.inf if fragment.order is None else fragment.order,
        )
        logger.debug("plugin_entity_added", entity=key, fields=list(fields))

    return resolve_references(schemas)


def find_schema(schemas: Mapping[str, EntitySchema], entity: str) -> EntitySchema:
    """Look up a schema by entity key or configured table name."""
    schema = schemas.get(entity)
    if schema is not None:
        return schema
    for candidate in schemas.values():
        if candidate.entity_name == entity:
            return candidate
    raise KeyError(f"Unknown entity: {entity}")


def get_all_fields(options: LedgerOptions | None, entity: str) -> dict[str, Field]:
    """
    Get the resolved field map for one entity.

    Used by callers that need the effective schema without a registry,
    e.g. a migration generator.
    """
    return dict(find_schema(build_schema(options=options), entity).fields)


def get_persisted_schema(schemas: Mapping[str, EntitySchema]) -> dict[str, TableDefinition]:
    """
    Project merged schemas onto the persisted table shape.

    Columns are keyed by physical column name. Two entities configured with
    the same table name share one table whose columns are the union of
    both (later wins); the table keeps the first entity's order.
    """
    tables: dict[str, TableDefinition] = {}
    for schema in sorted(schemas.values(), key=lambda s: s.order):
        columns: dict[str, ColumnDefinition] = {}
        for key, f in schema.fields.items():
            column = f.column(key)
            references = None
            if f.references is not None:
                references = {
                    "table": f.references.entity,
                    "column": f.references.field,
                    "on_delete": f.references.on_delete.value,
                }
            columns[column] = ColumnDefinition(
                name=column,
                type=f.type,
                required=f.required,
                unique=f.unique,
                references=references,
                sortable=f.sortable,
                bigint=f.bigint,
            )
        constraints = [
            tuple(schema.fields[k].column(k) for k in group if k in schema.fields)
            for group in schema.unique_together
        ]

        table = tables.get(schema.entity_name)
        if table is None:
            tables[schema.entity_name] = TableDefinition(
                name=schema.entity_name,
                entity_keys=[schema.key],
                order=schema.order,
                columns=columns,
                unique_constraints=constraints,
            )
        else:
            table.entity_keys.append(schema.key)
            table.columns.update(columns)
            table.unique_constraints.extend(constraints)
    return tables


__all__ = [
    "EntityFragment",
    "EntityOptions",
    "LedgerOptions",
    "LedgerPlugin",
    "build_schema",
    "find_schema",
    "get_all_fields",
    "get_persisted_schema",
    "merge_plugin_fragments",
    "resolve_references",
]
