"""
Settings Loader (``requisition_config.loader``).

Responsibility
--------------
Reads the engine's YAML settings file, applies ``RQ_*`` environment
overrides and parses the result into a validated ``EngineSettings``.

Architecture position
---------------------
**Config layer**.  Depends on PyYAML and on kernel domain enums for
validation only.  Services and orchestrators obtain settings through
``requisition_config.get_settings()``.

Invariants enforced
-------------------
* Files are parsed with ``yaml.safe_load`` only.
* Unknown top-level sections are rejected, so a typo cannot silently
  fall back to a default.
* Every problem raises ``SettingsError`` naming the offending setting.
* ``compute_checksum`` is deterministic for identical settings data.

Failure modes
-------------
* Missing file, malformed YAML, wrong types or out-of-range values
  -> ``SettingsError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from requisition_config.schema import EngineSettings
from requisition_kernel.domain.requisition import RequisitionCategory
from requisition_kernel.exceptions import SettingsError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

SETTINGS_FILE_ENV = "RQ_SETTINGS_FILE"

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RQ_DATABASE_URL": ("database", "url"),
    "RQ_LOG_LEVEL": ("logging", "level"),
    "RQ_UNFILLED_ALERT_DAYS": ("requisitions", "unfilled_alert_days"),
    "RQ_BULK_MAX_ITEMS": ("bulk", "max_items"),
}

_SECTIONS = frozenset({"database", "logging", "requisitions", "deletion", "bulk"})


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def read_settings_file(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except FileNotFoundError as exc:
        raise SettingsError("settings_file", f"not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise SettingsError("settings_file", f"malformed YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError("settings_file", f"{path} must contain a mapping")
    return data


def apply_env_overrides(
    data: Mapping[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """Copy of ``data`` with any ``RQ_*`` overrides applied (as strings)."""
    merged: dict[str, Any] = {
        k: dict(v) if isinstance(v, dict) else v for k, v in data.items()
    }
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            raise SettingsError(section, "must be a mapping")
        target[key] = value
    return merged


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise SettingsError(name, "must be a mapping")
    return value


def _positive_int(value: Any, setting: str) -> int:
    if isinstance(value, bool):
        raise SettingsError(setting, f"must be a positive integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(setting, f"must be a positive integer, got {value!r}") from exc
    if number < 1:
        raise SettingsError(setting, f"must be a positive integer, got {value!r}")
    return number


def _string_list(value: Any, setting: str, allow_empty: bool = False) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(v, str) and v.strip() for v in value
    ):
        raise SettingsError(setting, "must be a list of non-empty strings")
    if not value and not allow_empty:
        raise SettingsError(setting, "must not be empty")
    return tuple(v.strip() for v in value)


def parse_settings(data: Mapping[str, Any]) -> EngineSettings:
    """Validate a settings mapping and build ``EngineSettings``."""
    unknown = set(data) - _SECTIONS
    if unknown:
        raise SettingsError(sorted(unknown)[0], "unknown settings section")

    defaults = EngineSettings()
    database = _section(data, "database")
    logging_ = _section(data, "logging")
    requisitions = _section(data, "requisitions")
    deletion = _section(data, "deletion")
    bulk = _section(data, "bulk")

    database_url = database.get("url", defaults.database_url)
    if not isinstance(database_url, str) or not database_url.strip():
        raise SettingsError("database.url", "must be a non-empty string")

    log_level = str(logging_.get("level", defaults.log_level)).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise SettingsError("logging.level", f"unknown log level {log_level!r}")

    categories = _string_list(
        requisitions.get("auto_activate_categories", list(defaults.auto_activate_categories)),
        "requisitions.auto_activate_categories",
        allow_empty=True,
    )
    valid_categories = {c.value for c in RequisitionCategory}
    for category in categories:
        if category not in valid_categories:
            raise SettingsError(
                "requisitions.auto_activate_categories",
                f"unknown category {category!r}",
            )

    brand_codes = requisitions.get("brand_codes") or {}
    if not isinstance(brand_codes, dict) or not all(
        isinstance(k, str) and isinstance(v, str) and v.strip()
        for k, v in brand_codes.items()
    ):
        raise SettingsError("requisitions.brand_codes", "must map brand ids to codes")

    return EngineSettings(
        database_url=database_url.strip(),
        log_level=log_level,
        unfilled_alert_days=_positive_int(
            requisitions.get("unfilled_alert_days", defaults.unfilled_alert_days),
            "requisitions.unfilled_alert_days",
        ),
        auto_activate_categories=categories,
        deletion_approver_roles=_string_list(
            deletion.get("approver_roles", list(defaults.deletion_approver_roles)),
            "deletion.approver_roles",
        ),
        direct_delete_roles=_string_list(
            deletion.get("direct_delete_roles", list(defaults.direct_delete_roles)),
            "deletion.direct_delete_roles",
            allow_empty=True,
        ),
        brand_codes={k: v.strip().upper() for k, v in brand_codes.items()},
        bulk_max_items=_positive_int(
            bulk.get("max_items", defaults.bulk_max_items), "bulk.max_items",
        ),
        checksum=compute_checksum(data),
    )


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Load settings from ``path`` (or the configured/default file).

    ``environ`` defaults to ``os.environ``; tests pass a plain dict.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = env.get(SETTINGS_FILE_ENV) or DEFAULTS_PATH
    raw = read_settings_file(Path(path))
    return parse_settings(apply_env_overrides(raw, env))
