"""
Schema module for the compatibility engine.

This module provides the schema model and everything built on it:
- Schema tree types (Record, Enum, Union, ...) and schema sets
- Codec between schema sets and artifact attribute maps
- Compatibility checking for schema evolution
- Baseline version resolution
- Per-build schema registry

Invariants:
    - Schema trees are immutable values
    - Checking never mutates its inputs and never performs I/O
    - Stored attribute keys are stable across releases

How to change safely:
    - Add new node kinds to types, codec and compat together
    - Keep codec output byte-stable; published artifacts depend on it
"""

from .codec import (
    COUNT_KEY,
    ENTRY_PREFIX,
    decode_set,
    encode_set,
    generate_fingerprint,
    load_schemas,
    parse_node,
    serialize_node,
    versions_from_definitions,
)
from .compat import (
    Issue,
    IssueKind,
    Severity,
    check,
    check_constraints,
    check_directional,
    check_sets,
    count_by_severity,
    enforce,
    is_promotable,
)
from .registry import SchemaRegistry
from .types import (
    BOOLEAN,
    BYTES,
    FLOAT32,
    FLOAT64,
    INT32,
    INT64,
    NO_DEFAULT,
    NULL,
    STRING,
    Array,
    CheckConfig,
    Enum,
    Field,
    Fixed,
    LogicalType,
    Map,
    Mode,
    NamedSchemaSet,
    Primitive,
    PrimitiveKind,
    Record,
    Ref,
    SchemaNode,
    SchemaVersion,
    Union,
    array,
    enum,
    field,
    fixed,
    logical,
    map_of,
    primitive,
    record,
    ref,
    union,
)
from .versioning import Strategy, Version, resolve_baselines

__all__ = [
    # Types
    "SchemaNode",
    "Primitive",
    "PrimitiveKind",
    "LogicalType",
    "Field",
    "Record",
    "Enum",
    "Array",
    "Map",
    "Union",
    "Fixed",
    "Ref",
    "SchemaVersion",
    "NamedSchemaSet",
    "CheckConfig",
    "Mode",
    "NO_DEFAULT",
    "NULL",
    "BOOLEAN",
    "INT32",
    "INT64",
    "FLOAT32",
    "FLOAT64",
    "BYTES",
    "STRING",
    "primitive",
    "logical",
    "field",
    "record",
    "enum",
    "array",
    "map_of",
    "union",
    "fixed",
    "ref",
    # Codec
    "COUNT_KEY",
    "ENTRY_PREFIX",
    "serialize_node",
    "parse_node",
    "encode_set",
    "decode_set",
    "load_schemas",
    "versions_from_definitions",
    "generate_fingerprint",
    # Compatibility
    "Issue",
    "IssueKind",
    "Severity",
    "check",
    "check_directional",
    "check_sets",
    "check_constraints",
    "count_by_severity",
    "enforce",
    "is_promotable",
    # Versioning
    "Version",
    "Strategy",
    "resolve_baselines",
    # Registry
    "SchemaRegistry",
]
