"""
EngineSettings schema.

The typed, frozen form of the engine's runtime settings.  The loader
parses YAML (plus environment overrides) into this type; bridges turn it
into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class EngineSettings:
    """Validated engine settings."""

    database_url: str = "sqlite:///requisitions.db"
    log_level: str = "INFO"

    # Days an active (or still pending) requisition may stay unfilled
    # before it is flagged.
    unfilled_alert_days: int = 7
    # Categories whose final approval opens recruiting immediately.
    auto_activate_categories: tuple[str, ...] = ("operational",)

    deletion_approver_roles: tuple[str, ...] = ("admin", "jefe_marca")
    direct_delete_roles: tuple[str, ...] = ("admin",)

    # brand id -> RQ number prefix
    brand_codes: dict[str, str] = field(default_factory=dict)

    bulk_max_items: int = 200

    checksum: str = ""
