"""
Schema registry for one build.

The SchemaRegistry is the collection point where producers register the
schemas of a build before they are encoded into the build's artifact.
It provides:
- Registration of serialized schema nodes by type name
- A consistent snapshot of everything registered (drain)
- Schema fingerprinting for change detection
- Freeze mechanism to stop late registrations once the artifact is sealed

Invariants:
    - One registry per build; there is no process-wide instance
    - Registration is atomic per type name; the last write for a name wins
    - drain() never observes a half-applied registration
    - Once frozen, no new schemas can be registered until reset()

How to change safely:
    - Call reset() between independent builds that share an instance
    - Keep parsing out of the lock; only the snapshot copy happens under it

Example:
    >>> registry = SchemaRegistry()
    >>> registry.register("com.example.User", serialize_node(User))
    >>> schemas = registry.drain()
    >>> registry.freeze()
    'sha256:...'
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import DecodeError, RegistryFrozenError, SchemaModelError
from .codec import generate_fingerprint, parse_node, serialize_node
from .types import NamedSchemaSet, SchemaVersion, unresolved_references

logger = logging.getLogger(__name__)

_Entry = Tuple[str, Dict[str, str]]


class SchemaRegistry:
    """Concurrency-safe collection of a build's schemas.

    Thread-safety:
        - register() and drain() may be called from any thread
        - Each register() is applied atomically under an internal lock

    Attributes:
        frozen: Whether the registry is frozen
        fingerprint: SHA-256 fingerprint of the set (computed on freeze)
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        return self._fingerprint

    def register(
        self,
        type_name: str,
        encoded_node: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Register the serialized schema of a type.

        A second registration for the same type name overwrites the first.

        Args:
            type_name: Stable type identity
            encoded_node: Node in serialized form (see codec.serialize_node)
            metadata: Optional string metadata for the type

        Raises:
            RegistryFrozenError: If the registry is frozen
            SchemaModelError: If type_name is empty
        """
        if not type_name:
            raise SchemaModelError("type_name cannot be empty")
        entry = (encoded_node, dict(metadata or {}))
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register schema '{type_name}': registry is frozen"
                )
            replaced = type_name in self._entries
            self._entries[type_name] = entry
        if replaced:
            logger.debug(f"Replaced schema registration for {type_name}")
        else:
            logger.debug(f"Registered schema: {type_name}")

    def register_version(self, version: SchemaVersion) -> None:
        """Register an already-built SchemaVersion."""
        self.register(version.type_name, serialize_node(version.node), version.metadata)

    def _snapshot(self) -> Dict[str, _Entry]:
        with self._lock:
            return dict(self._entries)

    def drain(self) -> NamedSchemaSet:
        """Snapshot every registered schema as a NamedSchemaSet.

        The registry keeps its contents; use reset() to clear it.

        Raises:
            SchemaModelError: If a registered node cannot be parsed, a named
                type is defined twice with different shapes, or a reference
                does not resolve within the registered set
        """
        versions: List[SchemaVersion] = []
        for type_name, (encoded_node, metadata) in sorted(self._snapshot().items()):
            try:
                node = parse_node(encoded_node)
            except DecodeError as e:
                raise SchemaModelError(
                    f"Registered schema '{type_name}' is malformed: {e.message}"
                ) from e
            versions.append(SchemaVersion(type_name, node, metadata))

        schemas = NamedSchemaSet(versions)
        missing = unresolved_references((v.node for v in versions), schemas.named_types())
        if missing:
            raise SchemaModelError(
                f"Unresolved named type reference(s) in registry: {', '.join(missing)}"
            )
        return schemas

    def get(self, type_name: str) -> Optional[SchemaVersion]:
        """Get one registered schema, or None if the name is unknown."""
        with self._lock:
            entry = self._entries.get(type_name)
        if entry is None:
            return None
        encoded_node, metadata = entry
        try:
            node = parse_node(encoded_node)
        except DecodeError as e:
            raise SchemaModelError(
                f"Registered schema '{type_name}' is malformed: {e.message}"
            ) from e
        return SchemaVersion(type_name, node, metadata)

    def type_names(self) -> List[str]:
        """Registered type names in sorted order."""
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, type_name: object) -> bool:
        with self._lock:
            return type_name in self._entries

    def freeze(self) -> str:
        """Freeze the registry and compute the set fingerprint.

        After freezing, register() raises RegistryFrozenError until reset().

        Returns:
            The fingerprint ('sha256:<hash>')

        Raises:
            SchemaModelError: If the registered set is invalid
        """
        with self._lock:
            self._frozen = True
        try:
            fingerprint = generate_fingerprint(self.drain())
        except SchemaModelError:
            with self._lock:
                self._frozen = False
            raise
        self._fingerprint = fingerprint
        logger.info(f"Schema registry frozen with {len(self)} schema(s), fingerprint={fingerprint}")
        return fingerprint

    def reset(self) -> None:
        """Clear all registrations and unfreeze, ready for the next build."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._frozen = False
            self._fingerprint = None
        logger.debug(f"Schema registry reset ({count} schema(s) discarded)")
