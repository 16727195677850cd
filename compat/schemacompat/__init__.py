"""
Schema Compatibility - schema evolution checks between builds.

This package compares the schemas a build publishes against the schemas of
earlier published builds and reports path-addressed compatibility issues:
- schema/: model, storage codec, compatibility engine, version resolver, registry
- config: environment-driven configuration
- errors: exception hierarchy
- tools/: the schemacompat CLI

Data flow:
    producers register schemas ──▶ SchemaRegistry.drain()
        ──▶ encode_set() ──▶ artifact attributes
    later build: decode_set(current), decode_set(baseline)
        ──▶ check_sets() ──▶ issues ──▶ enforce() / reporter
"""

__version__ = "0.1.0"
