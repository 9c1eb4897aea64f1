"""
Configuration Loader (``studio_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into an ``InvoicingConfig``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the invoicing
config schema only; no dependency on engines or services.

Accepted shapes
---------------
Either a flat mapping of settings-store keys::

    tax_rate: 8.25
    tax_home_state: CA
    stripe_enabled: "true"

or the same keys nested under an ``invoicing:`` section.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level is not a mapping  -> ``ValueError``.
* Invalid values  -> ``ValueError`` from ``InvoicingConfig.__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from studio_kernel.logging_config import get_logger
from studio_modules.invoicing.config import InvoicingConfig

logger = get_logger("config.loader")

SECTION_KEY = "invoicing"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at top level of {path}")
    return data


def parse_config(data: dict[str, Any]) -> InvoicingConfig:
    """Parse an ``InvoicingConfig`` from a loaded mapping."""
    section = data.get(SECTION_KEY, data)
    if not isinstance(section, dict):
        raise ValueError(f"'{SECTION_KEY}' section must be a mapping")
    return InvoicingConfig.from_dict(section)


def load_config(path: Path | str) -> InvoicingConfig:
    """Load ``InvoicingConfig`` from a YAML settings file."""
    path = Path(path)
    data = load_yaml_file(path)
    config = parse_config(data)
    logger.info("invoicing_config_loaded", extra={
        "path": str(path),
        "checksum": compute_checksum(data),
    })
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical input, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
