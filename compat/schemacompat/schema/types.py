"""
Core type definitions for the schema model.

This module defines the language-agnostic schema tree compared by the
compatibility engine:
- Primitive, LogicalType: leaf types
- Record, Enum, Fixed: named types
- Array, Map, Union: structural containers
- Ref: reference to a named type (recursion and sharing)
- SchemaVersion: a node plus its stable type name and metadata
- NamedSchemaSet: the set of schemas produced by one build

Invariants:
    - Nodes are immutable once constructed
    - Record field names are unique within a record
    - Union branches are non-empty, not directly nested, and pairwise
      distinguishable by discriminant
    - Enum symbols are non-empty and unique
    - type_name is unique within a NamedSchemaSet
    - A named type has a single shape within one set

How to change safely:
    - Add new node kinds together with codec and engine support
    - Never change the serialized value of a PrimitiveKind
    - Keep discriminant() stable; union matching depends on it

Example:
    >>> from compat.schemacompat.schema.types import record, field, STRING, INT64
    >>> User = record(
    ...     "User",
    ...     field("id", INT64),
    ...     field("name", STRING, default=""),
    ... )
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum as _Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from ..errors import SchemaModelError


class _NoDefault:
    """Marker for a field without a default value.

    ``None`` is a legitimate default (the null value), so absence needs
    its own marker.
    """

    _instance: Optional[_NoDefault] = None

    def __new__(cls) -> _NoDefault:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _NoDefault:
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> _NoDefault:
        return self


NO_DEFAULT: Any = _NoDefault()


class PrimitiveKind(_Enum):
    """Primitive value kinds."""

    NULL = "null"
    BOOLEAN = "boolean"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BYTES = "bytes"
    STRING = "string"

    @classmethod
    def from_str(cls, value: str) -> PrimitiveKind:
        """Convert string representation to PrimitiveKind.

        Raises:
            SchemaModelError: If value is not a primitive kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise SchemaModelError(f"Invalid primitive kind '{value}'. Valid kinds: {valid}")


class Mode(_Enum):
    """Compatibility checking mode."""

    BACKWARD = "backward"
    FORWARD = "forward"
    FULL = "full"

    @classmethod
    def from_str(cls, value: str) -> Mode:
        """Parse a mode name, case-insensitively.

        Raises:
            ValueError: If value is not a known mode
        """
        normalized = value.strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        valid = [m.value for m in cls]
        raise ValueError(f"Invalid compatibility mode '{value}'. Valid modes: {valid}")


@dataclass(frozen=True)
class CheckConfig:
    """Per-type opt-in for compatibility checking.

    Attributes:
        checked: Whether the type takes part in compatibility checks
        mode: Mode override for this type (None uses the run's mode)
    """

    checked: bool = True
    mode: Optional[Mode] = None


class SchemaNode:
    """Base class for all schema tree nodes."""

    def discriminant(self) -> str:
        """Tag used to tell union branches apart."""
        raise NotImplementedError

    def children(self) -> tuple[SchemaNode, ...]:
        """Direct child nodes, in document order."""
        return ()


@dataclass(frozen=True)
class Primitive(SchemaNode):
    """A primitive type such as int32 or string."""

    kind: PrimitiveKind

    def discriminant(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class LogicalType(SchemaNode):
    """A primitive carrying a semantic tag (uuid, decimal, timestamp-millis...).

    Attributes:
        base: Underlying primitive representation
        tag: Logical type name; comparison requires identical tags
    """

    base: Primitive
    tag: str

    def __post_init__(self) -> None:
        if not isinstance(self.base, Primitive):
            raise SchemaModelError(
                f"Logical type '{self.tag}' must wrap a primitive, got {type(self.base).__name__}"
            )
        if not self.tag:
            raise SchemaModelError("Logical type tag cannot be empty")

    def discriminant(self) -> str:
        return f"logical:{self.tag}"


@dataclass(frozen=True)
class Field:
    """A single field within a record.

    Attributes:
        name: Field name, the matching key between versions
        type: Schema of the field value
        default: Default value, or NO_DEFAULT when the field has none
        position: Index of the field within its record
    """

    name: str
    type: SchemaNode
    default: Any = NO_DEFAULT
    position: int = 0

    @property
    def has_default(self) -> bool:
        """Whether the field declares a default value."""
        return self.default is not NO_DEFAULT


@dataclass(frozen=True)
class Record(SchemaNode):
    """A named record with ordered fields.

    Field order matters only for positional fallback; matching between
    versions is by field name. Positions are normalised to the field
    index on construction.
    """

    name: str
    fields: tuple[Field, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaModelError("Record name cannot be empty")
        fields = tuple(self.fields)
        names = [f.name for f in fields]
        if any(not n for n in names):
            raise SchemaModelError(f"Empty field name in record '{self.name}'")
        if len(names) != len(set(names)):
            raise SchemaModelError(f"Duplicate field name in record '{self.name}'")
        normalized = tuple(
            f if f.position == i else dataclasses.replace(f, position=i)
            for i, f in enumerate(fields)
        )
        object.__setattr__(self, "fields", normalized)

    def discriminant(self) -> str:
        return self.name

    def children(self) -> tuple[SchemaNode, ...]:
        return tuple(f.type for f in self.fields)

    def get_field(self, name: str) -> Optional[Field]:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(frozen=True)
class Enum(SchemaNode):
    """A named enumeration.

    Symbol order is significant for default-index fallback only.

    Attributes:
        name: Enum name
        symbols: Ordered, unique symbols
        default_symbol: Symbol unknown values resolve to, if any
    """

    name: str
    symbols: tuple[str, ...]
    default_symbol: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaModelError("Enum name cannot be empty")
        symbols = tuple(self.symbols)
        if not symbols:
            raise SchemaModelError(f"Enum '{self.name}' must have at least one symbol")
        if len(symbols) != len(set(symbols)):
            raise SchemaModelError(f"Duplicate symbol in enum '{self.name}'")
        if self.default_symbol is not None and self.default_symbol not in symbols:
            raise SchemaModelError(
                f"Default symbol '{self.default_symbol}' is not a symbol of enum '{self.name}'"
            )
        object.__setattr__(self, "symbols", symbols)

    def discriminant(self) -> str:
        return self.name


@dataclass(frozen=True)
class Array(SchemaNode):
    """An array of items."""

    items: SchemaNode

    def discriminant(self) -> str:
        return "array"

    def children(self) -> tuple[SchemaNode, ...]:
        return (self.items,)


@dataclass(frozen=True)
class Map(SchemaNode):
    """A map from string keys to values."""

    values: SchemaNode

    def discriminant(self) -> str:
        return "map"

    def children(self) -> tuple[SchemaNode, ...]:
        return (self.values,)


@dataclass(frozen=True)
class Union(SchemaNode):
    """A union of distinguishable branches."""

    branches: tuple[SchemaNode, ...]

    def __post_init__(self) -> None:
        branches = tuple(self.branches)
        if not branches:
            raise SchemaModelError("Union must have at least one branch")
        seen: set[str] = set()
        for branch in branches:
            if isinstance(branch, Union):
                raise SchemaModelError("Unions cannot directly contain other unions")
            tag = branch.discriminant()
            if tag in seen:
                raise SchemaModelError(f"Union contains more than one '{tag}' branch")
            seen.add(tag)
        object.__setattr__(self, "branches", branches)

    def discriminant(self) -> str:
        return "union"

    def children(self) -> tuple[SchemaNode, ...]:
        return self.branches


@dataclass(frozen=True)
class Fixed(SchemaNode):
    """A named fixed-size byte sequence."""

    name: str
    size: int

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaModelError("Fixed name cannot be empty")
        if self.size < 0:
            raise SchemaModelError(f"Fixed '{self.name}' size must be >= 0, got {self.size}")

    def discriminant(self) -> str:
        return self.name


@dataclass(frozen=True)
class Ref(SchemaNode):
    """Reference to a named Record, Enum or Fixed by name."""

    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaModelError("Reference name cannot be empty")

    def discriminant(self) -> str:
        return self.name


NamedType = (Record, Enum, Fixed)

NULL = Primitive(PrimitiveKind.NULL)
BOOLEAN = Primitive(PrimitiveKind.BOOLEAN)
INT32 = Primitive(PrimitiveKind.INT32)
INT64 = Primitive(PrimitiveKind.INT64)
FLOAT32 = Primitive(PrimitiveKind.FLOAT32)
FLOAT64 = Primitive(PrimitiveKind.FLOAT64)
BYTES = Primitive(PrimitiveKind.BYTES)
STRING = Primitive(PrimitiveKind.STRING)


def primitive(kind: str | PrimitiveKind) -> Primitive:
    """Create a primitive node from a kind or its string name."""
    if isinstance(kind, str):
        kind = PrimitiveKind.from_str(kind)
    return Primitive(kind)


def logical(base: str | PrimitiveKind | Primitive, tag: str) -> LogicalType:
    """Create a logical type over a primitive base."""
    if not isinstance(base, Primitive):
        base = primitive(base)
    return LogicalType(base=base, tag=tag)


def field(name: str, type: SchemaNode, *, default: Any = NO_DEFAULT) -> Field:
    """Convenience function to create a Field.

    Position is assigned by the enclosing record.

    Example:
        >>> field("age", union(NULL, INT32), default=None)
    """
    return Field(name=name, type=type, default=default)


def record(name: str, *fields: Field) -> Record:
    """Create a record from fields in declaration order."""
    return Record(name=name, fields=tuple(fields))


def enum(name: str, symbols: Iterable[str], *, default: Optional[str] = None) -> Enum:
    """Create an enum from ordered symbols."""
    return Enum(name=name, symbols=tuple(symbols), default_symbol=default)


def array(items: SchemaNode) -> Array:
    return Array(items=items)


def map_of(values: SchemaNode) -> Map:
    return Map(values=values)


def union(*branches: SchemaNode) -> Union:
    return Union(branches=tuple(branches))


def fixed(name: str, size: int) -> Fixed:
    return Fixed(name=name, size=size)


def ref(name: str) -> Ref:
    return Ref(name=name)


def iter_nodes(node: SchemaNode) -> Iterator[SchemaNode]:
    """Traverse a node tree depth-first in document order.

    Raises:
        SchemaModelError: If the object graph loops back onto a node that
            is still being visited (a cycle not broken by a Ref)
    """
    active: set[int] = set()

    def visit(current: SchemaNode) -> Iterator[SchemaNode]:
        if not isinstance(current, SchemaNode):
            raise SchemaModelError(f"Expected a schema node, got {type(current).__name__}")
        key = id(current)
        if key in active:
            name = getattr(current, "name", type(current).__name__)
            raise SchemaModelError(
                f"Cyclic reference to '{name}'; use a Ref for recursive types"
            )
        active.add(key)
        yield current
        for child in current.children():
            yield from visit(child)
        active.discard(key)

    return visit(node)


def collect_named_types(nodes: Iterable[SchemaNode]) -> Dict[str, SchemaNode]:
    """Index every named Record, Enum and Fixed defined in the given trees.

    Raises:
        SchemaModelError: If one name is defined with two different shapes
    """
    named: Dict[str, SchemaNode] = {}
    for root in nodes:
        for node in iter_nodes(root):
            if not isinstance(node, NamedType):
                continue
            existing = named.get(node.name)
            if existing is None:
                named[node.name] = node
            elif existing != node:
                raise SchemaModelError(
                    f"Named type '{node.name}' is defined more than once with different shapes"
                )
    return named


def unresolved_references(
    nodes: Iterable[SchemaNode],
    named: Mapping[str, SchemaNode],
) -> List[str]:
    """Names referenced by a Ref without a matching named definition."""
    missing: List[str] = []
    for root in nodes:
        for node in iter_nodes(root):
            if isinstance(node, Ref) and node.name not in named and node.name not in missing:
                missing.append(node.name)
    return missing


@dataclass(frozen=True)
class SchemaVersion:
    """One build's schema for a type.

    Attributes:
        type_name: Stable identity used to match the type across versions
        node: Schema tree
        metadata: Auxiliary declarations (e.g. "mode", "constraint", "pattern")

    Example:
        >>> SchemaVersion("com.example.User", User, {"constraint": "non-empty"})
    """

    type_name: str
    node: SchemaNode
    metadata: Mapping[str, str] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.type_name:
            raise SchemaModelError("type_name cannot be empty")
        if not isinstance(self.node, SchemaNode):
            raise SchemaModelError(
                f"Schema for '{self.type_name}' must be a schema node, "
                f"got {type(self.node).__name__}"
            )
        metadata = dict(self.metadata)
        for key, value in metadata.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise SchemaModelError(
                    f"Metadata for '{self.type_name}' must map strings to strings"
                )
        object.__setattr__(self, "metadata", metadata)

    @property
    def check_config(self) -> CheckConfig:
        """Check configuration declared through metadata."""
        checked = self.metadata.get("checked", "true").strip().lower() != "false"
        mode_str = self.metadata.get("mode")
        return CheckConfig(checked=checked, mode=Mode.from_str(mode_str) if mode_str else None)


class NamedSchemaSet(Mapping[str, SchemaVersion]):
    """Immutable mapping of type_name to SchemaVersion for one build.

    Every named Record, Enum and Fixed must have a single shape across the
    whole set; a conflicting definition fails construction.

    Example:
        >>> schemas = NamedSchemaSet([SchemaVersion("User", User)])
        >>> schemas["User"].node
        Record(name='User', ...)
    """

    def __init__(self, versions: Iterable[SchemaVersion] = ()) -> None:
        entries: Dict[str, SchemaVersion] = {}
        for version in versions:
            if version.type_name in entries:
                raise SchemaModelError(
                    f"Duplicate type_name '{version.type_name}' in schema set"
                )
            entries[version.type_name] = version
        self._named = collect_named_types(v.node for v in entries.values())
        self._entries = entries

    def __getitem__(self, type_name: str) -> SchemaVersion:
        return self._entries[type_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"NamedSchemaSet({sorted(self._entries)!r})"

    def named_types(self) -> Dict[str, SchemaNode]:
        """Named type definitions across the whole set."""
        return dict(self._named)
