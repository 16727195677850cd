"""
Unit tests for set-level compatibility checks.

Tests cover:
- Added and removed schemas
- Per-type mode overrides and opt-out
- Constraint drift between versions
- Deterministic ordering with a thread pool
"""

import pytest

from compat.schemacompat.schema.compat import (
    IssueKind,
    Severity,
    check_constraints,
    check_sets,
)
from compat.schemacompat.schema.types import (
    INT32,
    INT64,
    STRING,
    CheckConfig,
    Mode,
    NamedSchemaSet,
    SchemaVersion,
    enum,
    field,
    record,
    ref,
)


def schema_set(*versions):
    return NamedSchemaSet(versions)


USER_V1 = record("User", field("id", INT64), field("name", STRING))
USER_V2 = record("User", field("id", INT64), field("name", STRING), field("email", STRING))


class TestCheckSets:
    """Tests for check_sets."""

    def test_identical_sets(self):
        """Identical sets produce no issues."""
        current = schema_set(SchemaVersion("User", USER_V1))
        baseline = schema_set(SchemaVersion("User", USER_V1))
        assert check_sets(current, baseline, Mode.FULL) == []

    def test_empty_baseline_reports_additions_only(self):
        """No baseline means additions, never errors."""
        current = schema_set(SchemaVersion("User", USER_V1), SchemaVersion("Id", INT64))
        issues = check_sets(current, NamedSchemaSet(), Mode.FULL)
        assert [(i.kind, i.type_name) for i in issues] == [
            (IssueKind.SCHEMA_ADDED, "User"),
            (IssueKind.SCHEMA_ADDED, "Id"),
        ]
        assert all(i.severity is Severity.INFO for i in issues)

    def test_empty_sets(self):
        """Two empty sets produce no issues."""
        assert check_sets(NamedSchemaSet(), NamedSchemaSet(), Mode.FULL) == []

    def test_removed_schema_is_error(self):
        """A type dropped from the build is an error."""
        baseline = schema_set(SchemaVersion("User", USER_V1), SchemaVersion("Order", INT32))
        current = schema_set(SchemaVersion("User", USER_V1))
        issues = check_sets(current, baseline, Mode.BACKWARD)
        assert [(i.kind, i.type_name, i.path) for i in issues] == [
            (IssueKind.SCHEMA_REMOVED, "Order", "/")
        ]
        assert issues[0].is_error

    def test_issues_tagged_with_type_name(self):
        """Per-type issues carry the type name."""
        current = schema_set(SchemaVersion("com.example.User", USER_V2))
        baseline = schema_set(SchemaVersion("com.example.User", USER_V1))
        issues = check_sets(current, baseline, Mode.BACKWARD)
        assert [(i.type_name, i.kind, i.path) for i in issues] == [
            ("com.example.User", IssueKind.MISSING_DEFAULT_VALUE, "/fields/email")
        ]

    def test_ordering(self):
        """Shared types in current order, then additions, then removals."""
        current = schema_set(
            SchemaVersion("B", INT32),
            SchemaVersion("New", STRING),
            SchemaVersion("A", INT32),
        )
        baseline = schema_set(
            SchemaVersion("Gone2", STRING),
            SchemaVersion("A", INT64),
            SchemaVersion("B", INT64),
            SchemaVersion("Gone1", STRING),
        )
        issues = check_sets(current, baseline, Mode.BACKWARD, max_workers=4)
        assert [(i.type_name, i.kind) for i in issues] == [
            ("B", IssueKind.TYPE_MISMATCH),
            ("A", IssueKind.TYPE_MISMATCH),
            ("New", IssueKind.SCHEMA_ADDED),
            ("Gone2", IssueKind.SCHEMA_REMOVED),
            ("Gone1", IssueKind.SCHEMA_REMOVED),
        ]

    def test_sequential_matches_pooled(self):
        """Running without a pool gives the same result."""
        current = schema_set(*(SchemaVersion(f"T{i}", INT32) for i in range(20)))
        baseline = schema_set(*(SchemaVersion(f"T{i}", INT64) for i in range(20)))
        pooled = check_sets(current, baseline, Mode.FULL, max_workers=8)
        sequential = check_sets(current, baseline, Mode.FULL, max_workers=1)
        assert pooled == sequential
        assert len(pooled) == 20

    def test_refs_resolve_across_set(self):
        """Named types defined by another entry are visible to every entry."""
        status_v1 = enum("Status", ["Active", "Banned"])
        status_v2 = enum("Status", ["Active"])
        user = record("User", field("status", ref("Status")))
        current = schema_set(SchemaVersion("User", user), SchemaVersion("Status", status_v2))
        baseline = schema_set(SchemaVersion("User", user), SchemaVersion("Status", status_v1))
        issues = check_sets(current, baseline, Mode.BACKWARD)
        assert [(i.type_name, i.path) for i in issues] == [
            ("User", "/fields/status"),
            ("Status", "/"),
        ]


class TestCheckConfig:
    """Tests for per-type configuration."""

    def test_metadata_mode_overrides_default(self):
        """A type's metadata mode wins over the run's mode."""
        current = schema_set(SchemaVersion("User", USER_V2, {"mode": "forward"}))
        baseline = schema_set(SchemaVersion("User", USER_V1))
        issues = check_sets(current, baseline, Mode.BACKWARD)
        assert [i.kind for i in issues] == [IssueKind.FIELD_REMOVED]

    def test_config_overrides_metadata(self):
        """Explicit configs win over metadata."""
        current = schema_set(SchemaVersion("User", USER_V2, {"mode": "forward"}))
        baseline = schema_set(SchemaVersion("User", USER_V1))
        issues = check_sets(
            current, baseline, Mode.FULL,
            configs={"User": CheckConfig(mode=Mode.BACKWARD)},
        )
        assert [i.kind for i in issues] == [IssueKind.MISSING_DEFAULT_VALUE]

    def test_unchecked_type_skipped(self):
        """Opted-out types are skipped, including removal."""
        current = schema_set(SchemaVersion("User", USER_V2))
        baseline = schema_set(
            SchemaVersion("User", USER_V1),
            SchemaVersion("Legacy", STRING, {"checked": "false"}),
        )
        issues = check_sets(
            current, baseline, Mode.BACKWARD,
            configs={"User": CheckConfig(checked=False)},
        )
        assert issues == []

    def test_invalid_metadata_mode_falls_back(self, caplog):
        """A bad metadata mode is logged and the run's mode is used."""
        current = schema_set(SchemaVersion("User", USER_V2, {"mode": "sideways"}))
        baseline = schema_set(SchemaVersion("User", USER_V1))
        issues = check_sets(current, baseline, Mode.BACKWARD)
        assert [i.kind for i in issues] == [IssueKind.MISSING_DEFAULT_VALUE]
        assert "Ignoring invalid check metadata for 'User'" in caplog.text


class TestConstraintDrift:
    """Tests for metadata constraint checks."""

    def versions(self, old, new, key="constraint"):
        previous = SchemaVersion("Name", STRING, {key: old} if old is not None else {})
        current = SchemaVersion("Name", STRING, {key: new} if new is not None else {})
        return current, previous

    def test_unchanged_constraint(self):
        """Identical constraints produce nothing."""
        assert check_constraints(*self.versions("non-empty", "non-empty")) == []

    def test_tightened_length_is_error(self):
        """A stricter length rule with a counterexample is an error."""
        issues = check_constraints(*self.versions("length > 0", "length > 5"))
        assert [(i.kind, i.severity, i.path) for i in issues] == [
            (IssueKind.CONSTRAINT_TIGHTENED, Severity.ERROR, "/metadata/constraint")
        ]
        assert "'a'" in issues[0].message

    def test_relaxed_numeric_is_warning(self):
        """A looser rule finds no counterexample and stays a warning."""
        issues = check_constraints(*self.versions("> 10", "> 0"))
        assert [i.severity for i in issues] == [Severity.WARNING]
        assert "heuristic" in issues[0].message

    def test_tightened_pattern_is_error(self):
        """A narrower pattern is an error when a sample value proves it."""
        issues = check_constraints(*self.versions("[a-z]+", "[a-z]{1,3}", key="pattern"))
        assert [(i.severity, i.path) for i in issues] == [(Severity.ERROR, "/metadata/pattern")]

    def test_unrecognised_rule_is_warning(self):
        """Rules that cannot be evaluated only warn."""
        issues = check_constraints(*self.versions("custom(foo)", "custom(bar)"))
        assert [i.severity for i in issues] == [Severity.WARNING]

    def test_removed_constraint_is_warning(self):
        """Dropping a constraint is reported as a warning."""
        issues = check_constraints(*self.versions("positive", None))
        assert [(i.severity, i.kind) for i in issues] == [
            (Severity.WARNING, IssueKind.CONSTRAINT_TIGHTENED)
        ]
        assert "was removed" in issues[0].message

    def test_added_constraint_is_warning(self):
        """A constraint with no previous counterpart is reported as a warning."""
        issues = check_constraints(*self.versions(None, "positive"))
        assert [(i.kind, i.severity, i.path) for i in issues] == [
            (IssueKind.CONSTRAINT_TIGHTENED, Severity.WARNING, "/metadata/constraint")
        ]
        assert "was added" in issues[0].message

    def test_added_pattern_is_warning(self):
        """Adding a pattern is reported at its own metadata path."""
        issues = check_constraints(*self.versions(None, "[a-z]+", key="pattern"))
        assert [(i.severity, i.path) for i in issues] == [(Severity.WARNING, "/metadata/pattern")]

    def test_constraints_in_set_check(self):
        """check_sets includes constraint drift, tagged with the type."""
        current = schema_set(SchemaVersion("Name", STRING, {"constraint": "length >= 3"}))
        baseline = schema_set(SchemaVersion("Name", STRING, {"constraint": "non-empty"}))
        issues = check_sets(current, baseline, Mode.FULL)
        assert [(i.type_name, i.kind, i.severity) for i in issues] == [
            ("Name", IssueKind.CONSTRAINT_TIGHTENED, Severity.ERROR)
        ]


@pytest.mark.parametrize("mode", list(Mode))
def test_unchanged_set_is_clean_in_every_mode(mode):
    """A set compared with itself has no errors in any mode."""
    schemas = schema_set(
        SchemaVersion("User", USER_V2, {"constraint": "non-empty"}),
        SchemaVersion("Status", enum("Status", ["A", "B"])),
    )
    assert [i for i in check_sets(schemas, schemas, mode) if i.is_error] == []
