"""
Consent Ledger - Schema Module

Field model, built-in tables, the schema merge engine and the
input/output parser.
"""

from consent_ledger.schema.fields import (
    Field,
    FunctionValidator,
    LegacyValidator,
    Literal,
    Producer,
    Reference,
    Transform,
    boolean_field,
    check_value_type,
    date_field,
    id_field,
    infer_value_type,
    json_field,
    number_array_field,
    number_field,
    reference_field,
    string_array_field,
    string_field,
    timezone_field,
)
from consent_ledger.schema.merge import (
    EntityFragment,
    EntityOptions,
    LedgerOptions,
    LedgerPlugin,
    build_schema,
    find_schema,
    get_all_fields,
    get_persisted_schema,
    merge_plugin_fragments,
    resolve_references,
)
from consent_ledger.schema.parser import (
    apply_output_transforms,
    parse_input,
    parse_output,
)
from consent_ledger.schema.tables import (
    BUILTIN_ENTITIES,
    ColumnDefinition,
    EntityDefinition,
    EntitySchema,
    TableDefinition,
    builtin_entity_definitions,
)

__all__ = [
    # Fields
    "Field",
    "FunctionValidator",
    "LegacyValidator",
    "Literal",
    "Producer",
    "Reference",
    "Transform",
    "boolean_field",
    "check_value_type",
    "date_field",
    "id_field",
    "infer_value_type",
    "json_field",
    "number_array_field",
    "number_field",
    "reference_field",
    "string_array_field",
    "string_field",
    "timezone_field",
    # Tables
    "BUILTIN_ENTITIES",
    "ColumnDefinition",
    "EntityDefinition",
    "EntitySchema",
    "TableDefinition",
    "builtin_entity_definitions",
    # Merge
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
    # Parser
    "apply_output_transforms",
    "parse_input",
    "parse_output",
]
