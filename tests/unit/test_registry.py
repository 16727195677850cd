"""
Unit tests for SchemaRegistry.

Tests cover:
- Registration and draining
- Last-write-wins overwrites
- Freeze and reset
- Concurrent registration
"""

import threading

import pytest

from compat.schemacompat.errors import RegistryFrozenError, SchemaModelError
from compat.schemacompat.schema.codec import serialize_node
from compat.schemacompat.schema.registry import SchemaRegistry
from compat.schemacompat.schema.types import (
    INT64,
    STRING,
    SchemaVersion,
    field,
    record,
    ref,
)


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_register_and_drain(self):
        """Registered schemas are drained as a NamedSchemaSet."""
        registry = SchemaRegistry()
        user = record("User", field("id", INT64))
        registry.register("com.example.User", serialize_node(user), {"mode": "backward"})

        schemas = registry.drain()
        assert list(schemas) == ["com.example.User"]
        assert schemas["com.example.User"].node == user
        assert schemas["com.example.User"].metadata == {"mode": "backward"}

    def test_register_version(self):
        """SchemaVersion values can be registered directly."""
        registry = SchemaRegistry()
        version = SchemaVersion("Name", STRING, {"constraint": "non-empty"})
        registry.register_version(version)
        assert registry.get("Name") == version
        assert registry.get("Missing") is None

    def test_last_write_wins(self):
        """A second registration replaces the first."""
        registry = SchemaRegistry()
        registry.register("Id", serialize_node(STRING))
        registry.register("Id", serialize_node(INT64))
        assert len(registry) == 1
        assert registry.drain()["Id"].node == INT64

    def test_drain_does_not_clear(self):
        """drain() is a snapshot; reset() clears."""
        registry = SchemaRegistry()
        registry.register("Id", serialize_node(STRING))
        registry.drain()
        assert "Id" in registry
        registry.reset()
        assert len(registry) == 0
        assert len(registry.drain()) == 0

    def test_drain_sorted_by_type_name(self):
        """Drained sets are ordered by type name."""
        registry = SchemaRegistry()
        for name in ["c", "a", "b"]:
            registry.register(name, serialize_node(STRING))
        assert list(registry.drain()) == ["a", "b", "c"]
        assert registry.type_names() == ["a", "b", "c"]

    def test_malformed_node_raises(self):
        """Unparsable registered nodes surface as SchemaModelError."""
        registry = SchemaRegistry()
        registry.register("Bad", "{not json")
        with pytest.raises(SchemaModelError, match="Registered schema 'Bad' is malformed"):
            registry.drain()

    def test_unresolved_reference_raises(self):
        """References must resolve within the registered set."""
        registry = SchemaRegistry()
        registry.register("User", serialize_node(record("User", field("a", ref("Address")))))
        with pytest.raises(SchemaModelError, match="Unresolved"):
            registry.drain()

    def test_cross_entry_reference(self):
        """References may resolve to types registered by other entries."""
        registry = SchemaRegistry()
        registry.register("User", serialize_node(record("User", field("a", ref("Address")))))
        registry.register("Address", serialize_node(record("Address", field("s", STRING))))
        assert len(registry.drain()) == 2

    def test_empty_type_name_raises(self):
        """type_name is required."""
        with pytest.raises(SchemaModelError, match="type_name cannot be empty"):
            SchemaRegistry().register("", serialize_node(STRING))


class TestFreeze:
    """Tests for freezing the registry."""

    def test_freeze_returns_fingerprint(self):
        """freeze() computes a stable fingerprint."""
        registry = SchemaRegistry()
        registry.register("Id", serialize_node(STRING))
        fp = registry.freeze()
        assert fp.startswith("sha256:")
        assert registry.frozen
        assert registry.fingerprint == fp

    def test_register_after_freeze_raises(self):
        """Frozen registries reject registrations."""
        registry = SchemaRegistry()
        registry.freeze()
        with pytest.raises(RegistryFrozenError, match="registry is frozen"):
            registry.register("Id", serialize_node(STRING))

    def test_fingerprint_independent_of_order(self):
        """Registration order does not change the fingerprint."""
        a = SchemaRegistry()
        a.register("x", serialize_node(STRING))
        a.register("y", serialize_node(INT64))
        b = SchemaRegistry()
        b.register("y", serialize_node(INT64))
        b.register("x", serialize_node(STRING))
        assert a.freeze() == b.freeze()

    def test_reset_unfreezes(self):
        """reset() clears the fingerprint and allows registration again."""
        registry = SchemaRegistry()
        registry.freeze()
        registry.reset()
        assert not registry.frozen
        assert registry.fingerprint is None
        registry.register("Id", serialize_node(STRING))

    def test_failed_freeze_stays_open(self):
        """An invalid set does not leave the registry frozen."""
        registry = SchemaRegistry()
        registry.register("Bad", "{")
        with pytest.raises(SchemaModelError):
            registry.freeze()
        assert not registry.frozen


class TestConcurrency:
    """Tests for concurrent registration."""

    def test_no_lost_writes(self):
        """Parallel registrations of distinct names are all kept."""
        registry = SchemaRegistry()
        encoded = serialize_node(STRING)
        barrier = threading.Barrier(8)

        def worker(worker_id):
            barrier.wait()
            for i in range(50):
                registry.register(f"t{worker_id}.T{i}", encoded)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 400
        assert len(registry.drain()) == 400

    def test_same_name_writes_are_atomic(self):
        """Concurrent writes to one name leave exactly one intact entry."""
        registry = SchemaRegistry()
        nodes = [serialize_node(record("User", field(f"f{n}", INT64))) for n in range(8)]

        def worker(n):
            for _ in range(50):
                registry.register("User", nodes[n], {"writer": str(n)})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        version = registry.drain()["User"]
        writer = int(version.metadata["writer"])
        assert version.node.fields[0].name == f"f{writer}"
