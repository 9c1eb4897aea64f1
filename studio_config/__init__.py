"""
studio_config -- settings loading for the invoicing engine.

Reads YAML settings files (PyYAML ``safe_load``) and produces a validated
``InvoicingConfig``.  Services receive the config by injection and never
read files or environment variables themselves.
"""

from studio_config.loader import compute_checksum, load_config, load_yaml_file, parse_config

__all__ = [
    "compute_checksum",
    "load_config",
    "load_yaml_file",
    "parse_config",
]
