"""
Configuration Loader (``rental_config.loader``).

Responsibility
--------------
Reads YAML into a ``BillingConfig``.  Layers, later wins:

1. ``defaults.yaml`` shipped with the package.
2. An optional YAML file (explicit path, else ``RENTAL_BILLING_CONFIG``).
3. Environment overrides: ``DATABASE_URL``, ``RENTAL_BILLING_LOG_LEVEL``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or non-mapping document  -> ``ValueError``.
* Invalid value  -> ``ValueError`` from ``BillingConfig.__post_init__``.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from rental_config.schema import BillingConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "RENTAL_BILLING_CONFIG"

# Environment variable -> config key.
ENV_OVERRIDES = {
    "DATABASE_URL": "database_url",
    "RENTAL_BILLING_LOG_LEVEL": "log_level",
}

_KNOWN_KEYS = frozenset(f.name for f in fields(BillingConfig))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its mapping.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: configuration must be a mapping, got {type(data).__name__}")
    return data


def _check_keys(data: Mapping[str, Any], source: str) -> None:
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"{source}: unknown configuration key(s): {', '.join(unknown)}")


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingConfig:
    """Build a BillingConfig from defaults, an optional file and the environment."""
    environ = os.environ if environ is None else environ

    values = load_yaml_file(DEFAULTS_PATH)
    _check_keys(values, str(DEFAULTS_PATH))

    override_path = path or environ.get(CONFIG_PATH_ENV)
    if override_path:
        overrides = load_yaml_file(Path(override_path))
        _check_keys(overrides, str(override_path))
        values.update(overrides)

    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[key] = environ[env_name]

    return BillingConfig(**values)
