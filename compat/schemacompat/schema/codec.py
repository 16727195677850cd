"""
Schema codec: textual node form and artifact attribute maps.

Nodes are serialized to canonical JSON in an Avro-like shape:
- primitives as their kind name ("int32", "string", ...)
- logical types as {"type": <base>, "logicalType": <tag>}
- records as {"type": "record", "name", "fields": [{"name", "type", "default"?}]}
- enums as {"type": "enum", "name", "symbols", "default"?}
- arrays/maps as {"type": "array", "items"} / {"type": "map", "values"}
- unions as a JSON list of branches
- fixed as {"type": "fixed", "name", "size"}
- named references as the bare type name

A schema set is stored as a flat string attribute map: one count key plus
one base64-encoded JSON entry {"typeName", "schema", "metadata"} per type,
so it fits text-only metadata stores such as archive manifests.

Invariants:
    - Encoding is deterministic (sorted entries, canonical JSON)
    - decode_set(encode_set(s)) == s for every valid set
    - decode_set returns a complete set or raises DecodeError, never a partial set
    - Named references resolve within the same set only

How to change safely:
    - Never rename COUNT_KEY, ENTRY_PREFIX or entry JSON keys; published
      artifacts carry them
    - New optional entry keys must be tolerated as missing on decode
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Union as TypingUnion

from ..errors import DecodeError, SchemaModelError
from .types import (
    Array,
    Enum,
    Field,
    Fixed,
    LogicalType,
    Map,
    NO_DEFAULT,
    NamedSchemaSet,
    Primitive,
    PrimitiveKind,
    Record,
    Ref,
    SchemaNode,
    SchemaVersion,
    Union,
    iter_nodes,
    unresolved_references,
)

logger = logging.getLogger(__name__)

COUNT_KEY = "Compat-Schema-Count"
ENTRY_PREFIX = "Schema-"

# Avro spellings accepted on decode
PRIMITIVE_ALIASES: Dict[str, PrimitiveKind] = {
    "int": PrimitiveKind.INT32,
    "long": PrimitiveKind.INT64,
    "float": PrimitiveKind.FLOAT32,
    "double": PrimitiveKind.FLOAT64,
    **{kind.value: kind for kind in PrimitiveKind},
}

SchemaSource = TypingUnion[NamedSchemaSet, Mapping[str, SchemaVersion], Iterable[SchemaVersion]]


def _canonical(obj: Any) -> str:
    try:
        return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SchemaModelError(f"Schema contains a value that is not JSON-serializable: {e}")


def node_to_obj(node: SchemaNode) -> Any:
    """Convert a node to its JSON-compatible form.

    Raises:
        SchemaModelError: If the node graph is cyclic or a reference
            shadows a primitive name
    """
    # Walk once up front so that hand-built cycles fail cleanly
    for _ in iter_nodes(node):
        pass
    return _to_obj(node)


def _to_obj(node: SchemaNode) -> Any:
    if isinstance(node, Primitive):
        return node.kind.value
    if isinstance(node, LogicalType):
        return {"type": node.base.kind.value, "logicalType": node.tag}
    if isinstance(node, Record):
        fields: List[Dict[str, Any]] = []
        for f in node.fields:
            entry: Dict[str, Any] = {"name": f.name, "type": _to_obj(f.type)}
            if f.has_default:
                entry["default"] = f.default
            fields.append(entry)
        return {"type": "record", "name": node.name, "fields": fields}
    if isinstance(node, Enum):
        result: Dict[str, Any] = {"type": "enum", "name": node.name, "symbols": list(node.symbols)}
        if node.default_symbol is not None:
            result["default"] = node.default_symbol
        return result
    if isinstance(node, Array):
        return {"type": "array", "items": _to_obj(node.items)}
    if isinstance(node, Map):
        return {"type": "map", "values": _to_obj(node.values)}
    if isinstance(node, Union):
        return [_to_obj(b) for b in node.branches]
    if isinstance(node, Fixed):
        return {"type": "fixed", "name": node.name, "size": node.size}
    if isinstance(node, Ref):
        if node.name in PRIMITIVE_ALIASES:
            raise SchemaModelError(f"Reference name '{node.name}' collides with a primitive type")
        return node.name
    raise SchemaModelError(f"Unsupported schema node {type(node).__name__}")


def serialize_node(node: SchemaNode) -> str:
    """Serialize a node to compact canonical JSON."""
    return _canonical(node_to_obj(node))


def obj_to_node(obj: Any, path: str = "") -> SchemaNode:
    """Build a node from its JSON-compatible form.

    Raises:
        DecodeError: If the object is not a valid schema
    """
    try:
        return _from_obj(obj, path)
    except SchemaModelError as e:
        raise DecodeError(f"Invalid schema at {path or '/'}: {e.message}") from e


def _from_obj(obj: Any, path: str) -> SchemaNode:
    where = path or "/"
    if isinstance(obj, str):
        kind = PRIMITIVE_ALIASES.get(obj)
        if kind is not None:
            return Primitive(kind)
        return Ref(obj)
    if isinstance(obj, list):
        return Union(tuple(_from_obj(b, f"{path}/branches/{i}") for i, b in enumerate(obj)))
    if not isinstance(obj, dict):
        raise DecodeError(f"Unexpected {type(obj).__name__} in schema at {where}")

    type_value = obj.get("type")
    if isinstance(type_value, (dict, list)):
        return _from_obj(type_value, path)
    if not isinstance(type_value, str):
        raise DecodeError(f"Missing 'type' in schema object at {where}")

    if type_value in PRIMITIVE_ALIASES:
        base = Primitive(PRIMITIVE_ALIASES[type_value])
        tag = obj.get("logicalType")
        if tag is None:
            return base
        return LogicalType(base=base, tag=str(tag))
    if type_value == "record":
        raw_fields = obj.get("fields", [])
        if not isinstance(raw_fields, list):
            raise DecodeError(f"Record 'fields' must be a list at {where}")
        fields = []
        for i, raw in enumerate(raw_fields):
            if not isinstance(raw, dict) or "name" not in raw or "type" not in raw:
                raise DecodeError(f"Record field {i} needs 'name' and 'type' at {where}")
            name = raw["name"]
            fields.append(Field(
                name=name,
                type=_from_obj(raw["type"], f"{path}/fields/{name}"),
                default=raw["default"] if "default" in raw else NO_DEFAULT,
                position=i,
            ))
        return Record(name=_required_str(obj, "name", where), fields=tuple(fields))
    if type_value == "enum":
        symbols = obj.get("symbols")
        if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
            raise DecodeError(f"Enum 'symbols' must be a list of strings at {where}")
        return Enum(
            name=_required_str(obj, "name", where),
            symbols=tuple(symbols),
            default_symbol=obj.get("default"),
        )
    if type_value == "array":
        if "items" not in obj:
            raise DecodeError(f"Array needs 'items' at {where}")
        return Array(items=_from_obj(obj["items"], f"{path}/items"))
    if type_value == "map":
        if "values" not in obj:
            raise DecodeError(f"Map needs 'values' at {where}")
        return Map(values=_from_obj(obj["values"], f"{path}/values"))
    if type_value == "fixed":
        size = obj.get("size")
        if not isinstance(size, int) or isinstance(size, bool):
            raise DecodeError(f"Fixed 'size' must be an integer at {where}")
        return Fixed(name=_required_str(obj, "name", where), size=size)
    # {"type": "SomeNamedType"} is a reference
    return Ref(type_value)


def _required_str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"Missing '{key}' at {where}")
    return value


def parse_node(text: str) -> SchemaNode:
    """Parse a node from its serialized JSON text.

    Raises:
        DecodeError: If the text is not valid JSON or not a valid schema
    """
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Schema is not valid JSON: {e}")
    return obj_to_node(obj)


def _as_schema_set(schemas: SchemaSource) -> NamedSchemaSet:
    if isinstance(schemas, NamedSchemaSet):
        return schemas
    if isinstance(schemas, Mapping):
        for key, version in schemas.items():
            if key != version.type_name:
                raise SchemaModelError(
                    f"Schema set key '{key}' does not match type_name '{version.type_name}'"
                )
        return NamedSchemaSet(schemas.values())
    return NamedSchemaSet(schemas)


def encode_set(schemas: SchemaSource) -> Dict[str, str]:
    """Encode a schema set into a storage attribute map.

    Args:
        schemas: NamedSchemaSet, mapping of type_name to SchemaVersion,
            or an iterable of SchemaVersion

    Returns:
        Flat string map with COUNT_KEY and one ENTRY_PREFIX{i} key per type

    Raises:
        SchemaModelError: On duplicate type names, cyclic nodes, conflicting
            named type definitions or unresolved references

    Example:
        >>> attrs = encode_set(NamedSchemaSet([SchemaVersion("User", User)]))
        >>> attrs["Compat-Schema-Count"]
        '1'
    """
    schema_set = _as_schema_set(schemas)
    named = schema_set.named_types()
    missing = unresolved_references((v.node for v in schema_set.values()), named)
    if missing:
        raise SchemaModelError(f"Unresolved named type reference(s): {', '.join(missing)}")

    attributes: Dict[str, str] = {COUNT_KEY: str(len(schema_set))}
    for index, type_name in enumerate(sorted(schema_set)):
        version = schema_set[type_name]
        entry = {
            "typeName": version.type_name,
            "schema": serialize_node(version.node),
            "metadata": dict(version.metadata),
        }
        encoded = base64.b64encode(_canonical(entry).encode("utf-8")).decode("ascii")
        attributes[f"{ENTRY_PREFIX}{index}"] = encoded

    logger.debug(f"Encoded {len(schema_set)} schema(s) into storage attributes")
    return attributes


def _decode_entry(key: str, encoded: str) -> SchemaVersion:
    try:
        raw = base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        data = json.loads(raw)
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise DecodeError(f"Attribute '{key}' is not a base64 JSON entry: {e}", key=key)

    if not isinstance(data, dict):
        raise DecodeError(f"Attribute '{key}' does not hold a JSON object", key=key)
    type_name = data.get("typeName")
    if not isinstance(type_name, str) or not type_name:
        raise DecodeError(f"Attribute '{key}' is missing 'typeName'", key=key)
    schema_text = data.get("schema")
    if not isinstance(schema_text, str):
        raise DecodeError(f"Attribute '{key}' is missing 'schema'", key=key)
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in metadata.items()
    ):
        raise DecodeError(f"Attribute '{key}' has malformed 'metadata'", key=key)

    try:
        node = parse_node(schema_text)
    except DecodeError as e:
        raise DecodeError(f"Attribute '{key}' ({type_name}): {e.message}", key=key) from e
    return SchemaVersion(type_name=type_name, node=node, metadata=metadata)


def decode_set(attributes: Mapping[str, str]) -> NamedSchemaSet:
    """Decode a storage attribute map into a schema set.

    Missing optional entry fields (metadata) are tolerated. Any other
    problem fails the whole decode.

    Args:
        attributes: Attribute map as produced by encode_set()

    Returns:
        The complete NamedSchemaSet

    Raises:
        DecodeError: If the count is absent, non-numeric or negative, an
            entry is missing or unparsable, a type name repeats, or a named
            reference does not resolve within the set
    """
    raw_count = attributes.get(COUNT_KEY)
    if raw_count is None:
        raise DecodeError(f"Missing '{COUNT_KEY}' attribute", key=COUNT_KEY)
    text = raw_count.strip() if isinstance(raw_count, str) else ""
    digits = text[1:] if text.startswith("-") else text
    if not (digits.isascii() and digits.isdigit()):
        raise DecodeError(f"'{COUNT_KEY}' is not a number: {raw_count!r}", key=COUNT_KEY)
    count = int(text)
    if count < 0:
        raise DecodeError(f"'{COUNT_KEY}' cannot be negative: {count}", key=COUNT_KEY)

    versions: List[SchemaVersion] = []
    seen: set[str] = set()
    for index in range(count):
        key = f"{ENTRY_PREFIX}{index}"
        encoded = attributes.get(key)
        if encoded is None:
            raise DecodeError(f"Missing schema attribute '{key}'", key=key)
        version = _decode_entry(key, encoded)
        if version.type_name in seen:
            raise DecodeError(f"Duplicate type name '{version.type_name}' in '{key}'", key=key)
        seen.add(version.type_name)
        versions.append(version)

    try:
        schema_set = NamedSchemaSet(versions)
    except SchemaModelError as e:
        raise DecodeError(e.message) from e
    named = schema_set.named_types()
    missing = unresolved_references((v.node for v in schema_set.values()), named)
    if missing:
        raise DecodeError(f"Unresolved named type reference(s): {', '.join(missing)}")

    logger.debug(f"Decoded {len(schema_set)} schema(s) from storage attributes")
    return schema_set


def load_schemas(attributes: Mapping[str, str], source: str = "artifact") -> NamedSchemaSet:
    """Decode attributes, degrading to an empty set on failure.

    A decode failure means "no schemas available" for this source and is
    logged rather than raised.

    Args:
        attributes: Attribute map read from an artifact
        source: Label for log messages (e.g. artifact name)

    Returns:
        Decoded set, or an empty set if decoding failed
    """
    try:
        return decode_set(attributes)
    except DecodeError as e:
        logger.warning(f"Failed to decode schemas from {source}: {e.message}")
        return NamedSchemaSet()


def versions_from_definitions(data: Any) -> NamedSchemaSet:
    """Build a schema set from plain definitions (as loaded from YAML/JSON).

    Accepts either a list of entries or {"schemas": [...]}, where each entry
    is {"typeName", "schema", "metadata"?} and "schema" is a schema object.

    Raises:
        DecodeError: If the definitions are malformed
    """
    entries = data.get("schemas", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise DecodeError("Schema definitions must be a list of entries")

    versions: List[SchemaVersion] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or "typeName" not in entry or "schema" not in entry:
            raise DecodeError(f"Definition {i} needs 'typeName' and 'schema'")
        metadata = {str(k): str(v) for k, v in (entry.get("metadata") or {}).items()}
        node = obj_to_node(entry["schema"])
        try:
            versions.append(SchemaVersion(str(entry["typeName"]), node, metadata))
        except SchemaModelError as e:
            raise DecodeError(f"Definition {i}: {e.message}") from e
    try:
        return NamedSchemaSet(versions)
    except SchemaModelError as e:
        raise DecodeError(e.message) from e


def generate_fingerprint(schemas: SchemaSource) -> str:
    """Generate a fingerprint of a schema set.

    The fingerprint is a SHA-256 hash of the canonical storage encoding.
    It changes when any schema or metadata changes.

    Returns:
        Fingerprint string in format 'sha256:<hash>'
    """
    canonical = _canonical(encode_set(schemas))
    hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"sha256:{hash_bytes}"
