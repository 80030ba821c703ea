"""Default config generation and typed accessors."""

from __future__ import annotations

import json
import logging
from typing import TypedDict

VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TrellisConfig(TypedDict, total=False):
    schema_version: int
    database: str
    list_default_limit: int
    list_max_limit: int
    batch_size: int
    traversal_limit: int
    traversal_page_size: int
    dashboard_port: int
    log_level: str


def default_config() -> TrellisConfig:
    """Return the default Trellis configuration.

    The returned dict, when serialized with
    ``json.dumps(data, sort_keys=True, indent=2) + "\\n"``,
    produces the canonical default config.json.
    """
    return {
        "schema_version": 1,
        "database": "trellis.db",
        "list_default_limit": 100,
        "list_max_limit": 500,
        "batch_size": 250,
        "traversal_limit": 5000,
        "traversal_page_size": 500,
        "dashboard_port": 8799,
        "log_level": "WARNING",
    }


def serialize_config(config: TrellisConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> TrellisConfig:
    """Parse a JSON config string and merge it over the defaults.

    Keys the file does not set fall back to :func:`default_config`;
    unknown keys are preserved untouched.
    """
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("config.json must contain a JSON object")
    merged: dict = dict(default_config())
    merged.update(parsed)
    return merged  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Typed accessors
# ---------------------------------------------------------------------------


def _positive_int(config: TrellisConfig | dict, key: str) -> int:
    value = config.get(key, default_config()[key])  # type: ignore[literal-required]
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"config.{key} must be a positive integer, got {value!r}")
    return value


def get_list_limits(config: TrellisConfig | dict) -> tuple[int, int]:
    """Return ``(default_limit, max_limit)`` for list queries."""
    default_limit = _positive_int(config, "list_default_limit")
    max_limit = _positive_int(config, "list_max_limit")
    return min(default_limit, max_limit), max_limit


def get_batch_size(config: TrellisConfig | dict) -> int:
    return _positive_int(config, "batch_size")


def get_traversal_settings(config: TrellisConfig | dict) -> tuple[int, int]:
    """Return ``(traversal_limit, traversal_page_size)``."""
    return _positive_int(config, "traversal_limit"), _positive_int(config, "traversal_page_size")


def resolve_log_level(config: TrellisConfig | dict) -> int:
    """Translate ``log_level`` into a :mod:`logging` level number."""
    name = str(config.get("log_level", "WARNING")).upper()
    if name not in VALID_LOG_LEVELS:
        raise ValueError(
            f"config.log_level must be one of {', '.join(VALID_LOG_LEVELS)}, got {name!r}"
        )
    return logging.getLevelName(name)
