"""
Error types for the schema compatibility engine.

This module defines all exception types raised by the engine:
- SchemaCompatError: Base exception
- SchemaModelError: Malformed, cyclic or duplicate-name schema input
- DecodeError: Unparsable storage attributes or serialized nodes
- VersionParseError: Unparsable version string
- RegistryFrozenError: Registration attempted on a frozen registry
- CompatibilityViolation: One or more Error-severity issues, raised by policy

Invariants:
    - All errors inherit from SchemaCompatError
    - Errors include context for debugging
    - The engine only raises CompatibilityViolation through enforce()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from .schema.compat import Issue


class SchemaCompatError(Exception):
    """Base exception for all schema compatibility errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCHEMA_COMPAT_ERROR"
        self.details = details or {}


class SchemaModelError(SchemaCompatError, ValueError):
    """Schema model is malformed.

    Raised when:
    - A record has duplicate field names
    - A union is empty, nested or has indistinguishable branches
    - A set contains the same type name twice
    - A named type is defined twice with different shapes
    - A node graph contains a cycle not broken by a named reference
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SCHEMA_MODEL_ERROR",
            details={"path": path},
        )
        self.path = path


class DecodeError(SchemaCompatError):
    """Stored schema attributes could not be decoded.

    Callers treat this as "no schemas available" rather than aborting
    an unrelated build step.
    """

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"key": key},
        )
        self.key = key


class VersionParseError(SchemaCompatError, ValueError):
    """Version string does not follow MAJOR.MINOR.PATCH(-TAG)?."""

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Invalid version '{value}': expected MAJOR.MINOR.PATCH(-TAG)",
            code="VERSION_PARSE_ERROR",
            details={"value": value},
        )
        self.value = value


class RegistryFrozenError(SchemaCompatError):
    """Raised when attempting to modify a frozen registry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REGISTRY_FROZEN")


class CompatibilityViolation(SchemaCompatError):
    """Breaking schema changes were detected.

    Attributes:
        issues: Error-severity issues that caused the violation
    """

    def __init__(self, issues: Sequence[Issue]) -> None:
        self.issues: List[Issue] = list(issues)
        messages = [str(i) for i in self.issues]
        super().__init__(
            f"Schema compatibility check failed with {len(self.issues)} error(s):\n"
            + "\n".join(messages),
            code="COMPATIBILITY_VIOLATION",
            details={"error_count": len(self.issues)},
        )
