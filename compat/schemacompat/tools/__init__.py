"""
CLI tools for schema compatibility.

This module provides command-line tools for:
- encode: Build artifact attribute maps from schema definitions
- check: Compare schema sets between builds
- resolve: Select baseline versions

Invariants:
    - Tools work offline (inputs are local files and version strings)
    - Breaking changes are reported through the exit code
"""

from .schema_cli import SchemaCLI, main

__all__ = ["SchemaCLI", "main"]
