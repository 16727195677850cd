"""
Schema compatibility checking.

This module compares a reader schema (used to interpret data) against a
writer schema (that produced the data) and reports path-addressed issues:
- Primitive promotions (int32 -> int64 -> float32 -> float64, string <-> bytes)
- Logical types must keep the same tag
- Records match fields by name; reader-only fields need defaults
- Enum symbols written by the writer must be known to the reader
- Every writer union branch must resolve to a reader branch
- Fixed types must keep name and size

Modes:
    - BACKWARD: new code reads data written by old code
    - FORWARD: old code reads data written by new code
    - FULL: both directions, messages tagged with the direction

Invariants:
    - check() and check_sets() are pure; they never raise for incompatibility
    - Issue order is deterministic: reader fields/branches in document order,
      then writer-only removals, then set-level additions and removals
    - An empty baseline yields additions only, never an error

How to change safely:
    - Add new IssueKind values only together with a rule that emits them
    - Keep paths stable; reporters and golden tests key on them

Example:
    >>> issues = check_sets(current_schemas, baseline_schemas, Mode.BACKWARD)
    >>> enforce(issues)  # raises CompatibilityViolation on errors
"""

from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum as _Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import CompatibilityViolation
from .constraints import find_counterexample, parse_constraint, pattern_constraint
from .types import (
    Array,
    CheckConfig,
    Enum,
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
    collect_named_types,
)

logger = logging.getLogger(__name__)


class Severity(_Enum):
    """Issue severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueKind(_Enum):
    """Closed taxonomy of compatibility issues."""

    TYPE_MISMATCH = "TypeMismatch"
    MISSING_DEFAULT_VALUE = "MissingDefaultValue"
    FIELD_REMOVED = "FieldRemoved"
    FIELD_ADDED = "FieldAdded"
    ENUM_SYMBOL_MISSING = "EnumSymbolMissing"
    UNION_BRANCH_MISSING = "UnionBranchMissing"
    SIZE_MISMATCH = "SizeMismatch"
    CONSTRAINT_TIGHTENED = "ConstraintTightened"
    SCHEMA_ADDED = "SchemaAdded"
    SCHEMA_REMOVED = "SchemaRemoved"


@dataclass(frozen=True)
class Issue:
    """A single compatibility finding.

    Attributes:
        path: Slash-delimited location (e.g. "/fields/address/items")
        kind: What kind of incompatibility this is
        severity: ERROR, WARNING or INFO
        message: Human-readable description
        type_name: Type the issue belongs to (set by check_sets)
    """

    path: str
    kind: IssueKind
    severity: Severity
    message: str
    type_name: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """Whether this issue breaks compatibility."""
        return self.severity is Severity.ERROR

    def with_type_name(self, type_name: str) -> Issue:
        return dataclasses.replace(self, type_name=type_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for reporters."""
        return {
            "type_name": self.type_name,
            "path": self.path,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
        }

    def __str__(self) -> str:
        scope = f"{self.type_name}:" if self.type_name else ""
        return f"[{self.severity.name}] {self.kind.value}: {scope}{self.path} - {self.message}"


_NUMERIC_PROMOTIONS = (
    PrimitiveKind.INT32,
    PrimitiveKind.INT64,
    PrimitiveKind.FLOAT32,
    PrimitiveKind.FLOAT64,
)
_TEXT_KINDS = {PrimitiveKind.STRING, PrimitiveKind.BYTES}


def is_promotable(writer: PrimitiveKind, reader: PrimitiveKind) -> bool:
    """Whether a reader of kind `reader` can read values written as `writer`."""
    if writer is reader:
        return True
    if writer in _NUMERIC_PROMOTIONS and reader in _NUMERIC_PROMOTIONS:
        return _NUMERIC_PROMOTIONS.index(writer) < _NUMERIC_PROMOTIONS.index(reader)
    return writer in _TEXT_KINDS and reader in _TEXT_KINDS


def describe(node: SchemaNode) -> str:
    """Short human-readable name of a node for messages."""
    if isinstance(node, Primitive):
        return node.kind.value
    if isinstance(node, LogicalType):
        return f"{node.base.kind.value}({node.tag})"
    if isinstance(node, Record):
        return f"record '{node.name}'"
    if isinstance(node, Enum):
        return f"enum '{node.name}'"
    if isinstance(node, Fixed):
        return f"fixed '{node.name}'[{node.size}]"
    if isinstance(node, Ref):
        return f"reference '{node.name}'"
    return node.discriminant()


class _DirectionalCheck:
    """One reader/writer comparison pass.

    Named references are resolved through each side's own index. Records
    already being compared higher up the stack are assumed compatible, which
    terminates recursion through self-referencing types.
    """

    def __init__(
        self,
        reader_names: Mapping[str, SchemaNode],
        writer_names: Mapping[str, SchemaNode],
        label: Optional[str] = None,
    ) -> None:
        self._reader_names = reader_names
        self._writer_names = writer_names
        self._label = label
        self._in_progress: set[tuple[str, str]] = set()

    def run(self, reader: SchemaNode, writer: SchemaNode) -> List[Issue]:
        issues: List[Issue] = []
        self._compare(reader, writer, "", issues)
        return issues

    def _add(
        self,
        issues: List[Issue],
        path: str,
        kind: IssueKind,
        severity: Severity,
        message: str,
    ) -> None:
        if self._label:
            message = f"[{self._label}] {message}"
        issues.append(Issue(path=path or "/", kind=kind, severity=severity, message=message))

    @staticmethod
    def _resolve(node: SchemaNode, names: Mapping[str, SchemaNode]) -> SchemaNode:
        if isinstance(node, Ref):
            return names.get(node.name, node)
        return node

    def _compare(
        self,
        reader: SchemaNode,
        writer: SchemaNode,
        path: str,
        issues: List[Issue],
    ) -> None:
        reader = self._resolve(reader, self._reader_names)
        writer = self._resolve(writer, self._writer_names)

        if isinstance(reader, Ref) or isinstance(writer, Ref):
            if isinstance(reader, Ref) and isinstance(writer, Ref) and reader.name == writer.name:
                return
            unresolved = reader if isinstance(reader, Ref) else writer
            self._add(
                issues, path, IssueKind.TYPE_MISMATCH, Severity.ERROR,
                f"Unresolved named type reference '{unresolved.name}'",
            )
            return

        if isinstance(reader, Union) or isinstance(writer, Union):
            self._compare_unions(reader, writer, path, issues)
        elif isinstance(reader, Primitive) and isinstance(writer, Primitive):
            if not is_promotable(writer.kind, reader.kind):
                self._mismatch(reader, writer, path, issues)
        elif isinstance(reader, LogicalType) and isinstance(writer, LogicalType):
            if reader.tag != writer.tag or not is_promotable(writer.base.kind, reader.base.kind):
                self._mismatch(reader, writer, path, issues)
        elif isinstance(reader, Record) and isinstance(writer, Record):
            self._compare_records(reader, writer, path, issues)
        elif isinstance(reader, Enum) and isinstance(writer, Enum):
            self._compare_enums(reader, writer, path, issues)
        elif isinstance(reader, Array) and isinstance(writer, Array):
            self._compare(reader.items, writer.items, f"{path}/items", issues)
        elif isinstance(reader, Map) and isinstance(writer, Map):
            self._compare(reader.values, writer.values, f"{path}/values", issues)
        elif isinstance(reader, Fixed) and isinstance(writer, Fixed):
            if reader.size != writer.size or reader.name != writer.name:
                self._add(
                    issues, path, IssueKind.SIZE_MISMATCH, Severity.ERROR,
                    f"Reader expects {describe(reader)} but writer has {describe(writer)}",
                )
        else:
            self._mismatch(reader, writer, path, issues)

    def _mismatch(
        self,
        reader: SchemaNode,
        writer: SchemaNode,
        path: str,
        issues: List[Issue],
    ) -> None:
        self._add(
            issues, path, IssueKind.TYPE_MISMATCH, Severity.ERROR,
            f"Reader expects {describe(reader)} but writer has {describe(writer)}",
        )

    def _compare_records(
        self,
        reader: Record,
        writer: Record,
        path: str,
        issues: List[Issue],
    ) -> None:
        key = (reader.name, writer.name)
        if key in self._in_progress:
            return
        self._in_progress.add(key)
        try:
            writer_fields = {f.name: f for f in writer.fields}
            for f in reader.fields:
                field_path = f"{path}/fields/{f.name}"
                written = writer_fields.get(f.name)
                if written is not None:
                    self._compare(f.type, written.type, field_path, issues)
                elif f.has_default:
                    self._add(
                        issues, field_path, IssueKind.FIELD_ADDED, Severity.INFO,
                        f"Field '{f.name}' is not written by the writer; the reader uses its default",
                    )
                else:
                    self._add(
                        issues, field_path, IssueKind.MISSING_DEFAULT_VALUE, Severity.ERROR,
                        f"Field '{f.name}': reader expects a value the writer does not "
                        f"supply and has no default",
                    )

            reader_field_names = {f.name for f in reader.fields}
            for written in writer.fields:
                if written.name not in reader_field_names:
                    self._add(
                        issues, f"{path}/fields/{written.name}",
                        IssueKind.FIELD_REMOVED, Severity.INFO,
                        f"Field '{written.name}' written by the writer is ignored by the reader",
                    )
        finally:
            self._in_progress.discard(key)

    def _compare_enums(
        self,
        reader: Enum,
        writer: Enum,
        path: str,
        issues: List[Issue],
    ) -> None:
        known = set(reader.symbols)
        for symbol in writer.symbols:
            if symbol in known:
                continue
            if reader.default_symbol is not None:
                self._add(
                    issues, path, IssueKind.ENUM_SYMBOL_MISSING, Severity.WARNING,
                    f"Symbol '{symbol}' is unknown to the reader and will be read as "
                    f"'{reader.default_symbol}'",
                )
            else:
                self._add(
                    issues, path, IssueKind.ENUM_SYMBOL_MISSING, Severity.ERROR,
                    f"Symbol '{symbol}' written by the writer is missing from the reader",
                )

    def _compare_unions(
        self,
        reader: SchemaNode,
        writer: SchemaNode,
        path: str,
        issues: List[Issue],
    ) -> None:
        reader_branches = reader.branches if isinstance(reader, Union) else (reader,)
        writer_is_union = isinstance(writer, Union)
        writer_branches = writer.branches if isinstance(writer, Union) else (writer,)

        for index, branch in enumerate(writer_branches):
            branch_path = f"{path}/branches/{index}" if writer_is_union else path
            matched = self._match_branch(reader_branches, branch, branch_path)
            if matched is not None:
                issues.extend(matched)
            else:
                self._add(
                    issues, branch_path, IssueKind.UNION_BRANCH_MISSING, Severity.ERROR,
                    f"Writer branch {describe(branch)} has no compatible branch in the reader",
                )

    def _match_branch(
        self,
        reader_branches: Sequence[SchemaNode],
        writer_branch: SchemaNode,
        path: str,
    ) -> Optional[List[Issue]]:
        """Find the reader branch a writer branch resolves to.

        Returns the issues of the first error-free match, trying branches
        with the same discriminant first. If none is error-free but a
        same-discriminant branch exists, its issues are returned so the
        nested cause is reported. Otherwise None.
        """
        tag = self._resolve(writer_branch, self._writer_names).discriminant()
        same_tag = []
        others = []
        for candidate in reader_branches:
            resolved = self._resolve(candidate, self._reader_names)
            if resolved.discriminant() == tag:
                same_tag.append(candidate)
            else:
                others.append(candidate)

        closest: Optional[List[Issue]] = None
        for candidate in same_tag:
            scratch: List[Issue] = []
            self._compare(candidate, writer_branch, path, scratch)
            if not any(i.is_error for i in scratch):
                return scratch
            if closest is None:
                closest = scratch
        for candidate in others:
            scratch = []
            self._compare(candidate, writer_branch, path, scratch)
            if not any(i.is_error for i in scratch):
                return scratch
        return closest


def check_directional(
    reader: SchemaNode,
    writer: SchemaNode,
    *,
    reader_names: Optional[Mapping[str, SchemaNode]] = None,
    writer_names: Optional[Mapping[str, SchemaNode]] = None,
) -> List[Issue]:
    """Check that `reader` can read data written with `writer`.

    Args:
        reader: Schema used to interpret the data
        writer: Schema that produced the data
        reader_names: Named types visible to the reader (defaults to the
            types defined inside `reader`)
        writer_names: Named types visible to the writer

    Returns:
        Issues in deterministic order
    """
    if reader_names is None:
        reader_names = collect_named_types([reader])
    if writer_names is None:
        writer_names = collect_named_types([writer])
    return _DirectionalCheck(reader_names, writer_names).run(reader, writer)


def check(
    current: SchemaNode,
    previous: SchemaNode,
    mode: Mode | str = Mode.FULL,
    *,
    current_names: Optional[Mapping[str, SchemaNode]] = None,
    previous_names: Optional[Mapping[str, SchemaNode]] = None,
) -> List[Issue]:
    """Check a new schema against the previously published one.

    Args:
        current: The new schema
        previous: The previously published schema
        mode: BACKWARD (new reads old), FORWARD (old reads new) or FULL
        current_names: Named types visible to the new schema
        previous_names: Named types visible to the previous schema

    Returns:
        Issues in deterministic order. In FULL mode backward issues come
        first and every message is prefixed with its direction.

    Example:
        >>> issues = check(user_v2, user_v1, Mode.BACKWARD)
        >>> [i.kind for i in issues if i.is_error]
        [<IssueKind.MISSING_DEFAULT_VALUE: 'MissingDefaultValue'>]
    """
    if isinstance(mode, str):
        mode = Mode.from_str(mode)
    if current_names is None:
        current_names = collect_named_types([current])
    if previous_names is None:
        previous_names = collect_named_types([previous])

    if mode is Mode.BACKWARD:
        return _DirectionalCheck(current_names, previous_names).run(current, previous)
    if mode is Mode.FORWARD:
        return _DirectionalCheck(previous_names, current_names).run(previous, current)

    issues = _DirectionalCheck(current_names, previous_names, "backward").run(current, previous)
    issues.extend(
        _DirectionalCheck(previous_names, current_names, "forward").run(previous, current)
    )
    return issues


def check_constraints(current: SchemaVersion, previous: SchemaVersion) -> List[Issue]:
    """Compare value constraints declared in metadata.

    Looks at the "constraint" and "pattern" metadata keys. An added, removed
    or changed constraint is a WARNING; a changed one becomes an ERROR only
    when a sample value is found that the old constraint admits and the new
    one rejects. The search is a bounded heuristic (see constraints.py): no
    counterexample does not mean the new constraint is a superset.
    """
    issues: List[Issue] = []
    for key, parse in (("constraint", parse_constraint), ("pattern", pattern_constraint)):
        old_rule = previous.metadata.get(key)
        new_rule = current.metadata.get(key)
        if old_rule == new_rule:
            continue
        path = f"/metadata/{key}"
        if old_rule is None:
            issues.append(Issue(
                path=path,
                kind=IssueKind.CONSTRAINT_TIGHTENED,
                severity=Severity.WARNING,
                message=f"Constraint '{new_rule}' was added; previously valid values may be rejected",
            ))
            continue
        if new_rule is None:
            issues.append(Issue(
                path=path,
                kind=IssueKind.CONSTRAINT_TIGHTENED,
                severity=Severity.WARNING,
                message=f"Constraint '{old_rule}' was removed; old readers may reject new values",
            ))
            continue

        old_constraint = parse(old_rule)
        new_constraint = parse(new_rule)
        counterexample = None
        if old_constraint is not None and new_constraint is not None:
            counterexample = find_counterexample(old_constraint, new_constraint)
        if counterexample is not None:
            issues.append(Issue(
                path=path,
                kind=IssueKind.CONSTRAINT_TIGHTENED,
                severity=Severity.ERROR,
                message=(
                    f"Constraint changed from '{old_rule}' to '{new_rule}'; "
                    f"previously valid value {counterexample!r} is now rejected"
                ),
            ))
        else:
            issues.append(Issue(
                path=path,
                kind=IssueKind.CONSTRAINT_TIGHTENED,
                severity=Severity.WARNING,
                message=(
                    f"Constraint changed from '{old_rule}' to '{new_rule}'; "
                    f"may reject previously valid values (heuristic check, not a proof)"
                ),
            ))
    return issues


def _resolve_check_config(
    type_name: str,
    version: SchemaVersion,
    configs: Mapping[str, CheckConfig],
) -> CheckConfig:
    try:
        declared = version.check_config
    except ValueError as e:
        logger.warning(f"Ignoring invalid check metadata for '{type_name}': {e}")
        declared = CheckConfig()
    override = configs.get(type_name)
    if override is None:
        return declared
    return CheckConfig(checked=override.checked, mode=override.mode or declared.mode)


def check_sets(
    current_set: NamedSchemaSet,
    baseline_set: NamedSchemaSet,
    mode: Mode | str = Mode.FULL,
    *,
    configs: Optional[Mapping[str, CheckConfig]] = None,
    max_workers: Optional[int] = None,
) -> List[Issue]:
    """Compare every type of a build against a baseline build.

    Per-type mode comes from `configs`, then the type's "mode" metadata, then
    `mode`. Types configured with checked=False (or metadata "checked" set to
    "false") are skipped entirely.

    Args:
        current_set: Schemas of the current build
        baseline_set: Schemas of the baseline build
        mode: Default compatibility mode
        configs: Per-type check configuration
        max_workers: Thread pool size for per-type checks (1 disables the pool)

    Returns:
        Issues tagged with type_name: shared types in current-set order,
        then SCHEMA_ADDED (current order), then SCHEMA_REMOVED (baseline order)
    """
    if isinstance(mode, str):
        mode = Mode.from_str(mode)
    configs = configs or {}
    current_names = current_set.named_types()
    baseline_names = baseline_set.named_types()

    def check_one(type_name: str) -> List[Issue]:
        current = current_set[type_name]
        previous = baseline_set[type_name]
        config = _resolve_check_config(type_name, current, configs)
        if not config.checked:
            logger.debug(f"Skipping unchecked type '{type_name}'")
            return []
        issues = check(
            current.node,
            previous.node,
            config.mode or mode,
            current_names=current_names,
            previous_names=baseline_names,
        )
        issues.extend(check_constraints(current, previous))
        return [i.with_type_name(type_name) for i in issues]

    def is_checked(type_name: str, version: SchemaVersion) -> bool:
        return _resolve_check_config(type_name, version, configs).checked

    shared = [name for name in current_set if name in baseline_set]
    if len(shared) > 1 and (max_workers is None or max_workers > 1):
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            per_type = list(pool.map(check_one, shared))
    else:
        per_type = [check_one(name) for name in shared]

    issues: List[Issue] = [issue for group in per_type for issue in group]

    for type_name, version in current_set.items():
        if type_name not in baseline_set and is_checked(type_name, version):
            issues.append(Issue(
                path="/",
                kind=IssueKind.SCHEMA_ADDED,
                severity=Severity.INFO,
                message=f"Schema '{type_name}' was added",
                type_name=type_name,
            ))
    for type_name, version in baseline_set.items():
        if type_name not in current_set and is_checked(type_name, version):
            issues.append(Issue(
                path="/",
                kind=IssueKind.SCHEMA_REMOVED,
                severity=Severity.ERROR,
                message=f"Schema '{type_name}' was removed; consumers of the old type lose it",
                type_name=type_name,
            ))

    counts = count_by_severity(issues)
    logger.info(
        f"Checked {len(shared)} shared schema(s) in {mode.value} mode: "
        f"{counts[Severity.ERROR]} error(s), {counts[Severity.WARNING]} warning(s), "
        f"{counts[Severity.INFO]} info"
    )
    return issues


def count_by_severity(issues: Sequence[Issue]) -> Dict[Severity, int]:
    """Count issues per severity (all severities present, possibly zero)."""
    counts = {severity: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity] += 1
    return counts


def enforce(issues: Sequence[Issue], fail_on_break: bool = True) -> None:
    """Apply the build policy to a set of issues.

    The engine only reports; this is where a caller decides to fail.

    Args:
        issues: Issues from check() or check_sets()
        fail_on_break: Whether Error-severity issues fail the build

    Raises:
        CompatibilityViolation: If errors exist and fail_on_break is set
    """
    errors = [i for i in issues if i.is_error]
    if errors and fail_on_break:
        raise CompatibilityViolation(errors)
    if errors:
        logger.warning(f"Schema compatibility check found {len(errors)} error(s); not failing")
    else:
        logger.info(
            f"Schema compatibility check passed with {len(issues)} non-breaking issue(s)"
        )
