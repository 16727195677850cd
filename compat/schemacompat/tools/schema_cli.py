"""
Schema compatibility CLI.

This tool works on schema sets stored as artifact attribute maps:
- encode: Turn YAML/JSON schema definitions into an attribute map
- check: Compare a current set against a baseline set
- resolve: Pick baseline versions for the current version

Usage:
    schemacompat encode --file schemas.yaml > schemas.attrs.json
    schemacompat check --current schemas.attrs.json --baseline baseline.attrs.json
    schemacompat resolve --current 2.1.3 --known 2.1.0 2.1.2 2.0.5

Invariants:
    - Error-severity issues cause exit code 1 when fail-on-break is set
    - Unusable input (unreadable files, bad current set) exits with code 2
    - An undecodable baseline degrades to "no baseline", never a failure
    - Output is deterministic (sorted JSON, engine issue order)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, List, Optional, Sequence

import json_log_formatter
import yaml

from ..config import EngineConfig, ObservabilityConfig
from ..errors import CompatibilityViolation, DecodeError, SchemaCompatError
from ..schema import (
    COUNT_KEY,
    Issue,
    Mode,
    NamedSchemaSet,
    Strategy,
    Version,
    check_sets,
    count_by_severity,
    decode_set,
    encode_set,
    enforce,
    generate_fingerprint,
    load_schemas,
    resolve_baselines,
    versions_from_definitions,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BREAKING = 1
EXIT_USAGE = 2


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure root logging based on configuration.

    Args:
        config: Logging configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def _read_document(path: str) -> Any:
    """Read a YAML or JSON file (JSON is valid YAML)."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


class SchemaCLI:
    """CLI operations for schema compatibility.

    Example:
        >>> cli = SchemaCLI(EngineConfig())
        >>> attrs = cli.encode("schemas.yaml")
        >>> issues = cli.check("current.attrs.json", "baseline.attrs.json")
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config

    def load_set(self, path: str, *, degrade: bool = False) -> NamedSchemaSet:
        """Load a schema set from an attribute map or definitions file.

        Args:
            path: File holding either an encoded attribute map or definitions
            degrade: Return an empty set instead of raising on decode errors

        Raises:
            DecodeError: If the file content is not a valid schema set
        """
        data = _read_document(path)
        if isinstance(data, dict) and COUNT_KEY in data:
            attributes = {str(k): str(v) for k, v in data.items()}
            if degrade:
                return load_schemas(attributes, source=path)
            return decode_set(attributes)
        try:
            return versions_from_definitions(data)
        except (DecodeError, ValueError) as e:
            if not degrade:
                raise
            message = e.message if isinstance(e, DecodeError) else str(e)
            logger.warning(f"Failed to load schemas from {path}: {message}")
            return NamedSchemaSet()

    def encode(self, path: str) -> dict[str, str]:
        """Encode a definitions file into a storage attribute map."""
        schemas = versions_from_definitions(_read_document(path))
        logger.info(f"Encoding {len(schemas)} schema(s), fingerprint={generate_fingerprint(schemas)}")
        return encode_set(schemas)

    def check(
        self,
        current_path: str,
        baseline_path: str,
        mode: Optional[Mode] = None,
    ) -> List[Issue]:
        """Check the current set against a baseline set.

        Returns:
            All issues, in engine order
        """
        current = self.load_set(current_path)
        baseline = self.load_set(baseline_path, degrade=True)
        if not baseline:
            logger.info(f"No baseline schemas in {baseline_path}; nothing to compare")
        return check_sets(
            current,
            baseline,
            mode or self.config.compat.mode,
            max_workers=self.config.compat.max_workers,
        )

    def resolve(
        self,
        current: str,
        known: Sequence[str],
        strategy: Optional[Strategy] = None,
    ) -> List[Version]:
        return resolve_baselines(current, known, strategy or self.config.compat.strategy)


def _print_issues(issues: Sequence[Issue], output_format: str) -> None:
    if output_format == "json":
        counts = count_by_severity(issues)
        report = {
            "issues": [i.to_dict() for i in issues],
            "summary": {severity.value: count for severity, count in counts.items()},
        }
        print(json.dumps(report, indent=2, sort_keys=True))
        return

    if not issues:
        print("Schemas are compatible with baseline")
        return
    print(f"Found {len(issues)} issue(s):")
    for issue in issues:
        print(f"  {issue}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemacompat",
        description="Schema evolution compatibility checks",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    encode_parser = subparsers.add_parser(
        "encode", help="Encode schema definitions into an attribute map"
    )
    encode_parser.add_argument("--file", "-f", required=True, help="YAML/JSON definitions")
    encode_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    check_parser = subparsers.add_parser("check", help="Check compatibility with a baseline")
    check_parser.add_argument("--current", "-c", required=True, help="Current schema set")
    check_parser.add_argument("--baseline", "-b", required=True, help="Baseline schema set")
    check_parser.add_argument(
        "--mode", choices=[m.value for m in Mode], help="Compatibility mode (default: env/full)"
    )
    check_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )
    check_parser.add_argument(
        "--no-fail-on-break",
        dest="fail_on_break",
        action="store_false",
        default=None,
        help="Report breaking changes without a failing exit code",
    )

    resolve_parser = subparsers.add_parser("resolve", help="Select baseline versions")
    resolve_parser.add_argument("--current", required=True, help="Version being built")
    resolve_parser.add_argument("--known", nargs="*", default=[], help="Published versions")
    resolve_parser.add_argument(
        "--strategy",
        choices=[s.value for s in Strategy],
        help="Selection strategy (default: env/latestMinor)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    setup_logging(config.observability)
    config.log_config()
    cli = SchemaCLI(config)

    try:
        if args.command == "encode":
            output = json.dumps(cli.encode(args.file), indent=2, sort_keys=True)
            if args.output:
                with open(args.output, "w", encoding="utf-8") as f:
                    f.write(output + "\n")
                print(f"Schemas encoded to {args.output}", file=sys.stderr)
            else:
                print(output)
            sys.exit(EXIT_OK)

        elif args.command == "check":
            mode = Mode.from_str(args.mode) if args.mode else None
            issues = cli.check(args.current, args.baseline, mode)
            _print_issues(issues, args.format)
            fail_on_break = (
                config.compat.fail_on_break if args.fail_on_break is None else args.fail_on_break
            )
            try:
                enforce(issues, fail_on_break)
            except CompatibilityViolation as e:
                print(
                    f"Schema compatibility check FAILED with {len(e.issues)} error(s)",
                    file=sys.stderr,
                )
                sys.exit(EXIT_BREAKING)
            sys.exit(EXIT_OK)

        elif args.command == "resolve":
            strategy = Strategy.from_str(args.strategy) if args.strategy else None
            for version in cli.resolve(args.current, args.known, strategy):
                print(version)
            sys.exit(EXIT_OK)

    except (OSError, yaml.YAMLError, SchemaCompatError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)


if __name__ == "__main__":
    main()
