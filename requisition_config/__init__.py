"""
requisition_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the runtime settings through ``get_settings()``.  No other
    component reads the settings file or ``RQ_*`` environment variables.

Architecture position:
    Configuration -- sits above ``requisition_kernel``.  The kernel MUST
    NEVER import from ``requisition_config``; bridges in this package
    translate settings into kernel-compatible inputs.

Failure modes:
    - ``SettingsError`` -- missing file, malformed YAML, or invalid values.

Audit relevance:
    Every load emits a ``REQUISITION_CONFIG_TRACE`` log entry with the
    settings checksum, so a run can be tied to the exact settings it used.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from requisition_config.loader import load_settings
from requisition_config.schema import EngineSettings

_logger = logging.getLogger("requisition_kernel.config")


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Load, validate and cache the process-wide settings.

    ``get_settings.cache_clear()`` forces a reload.
    """
    settings = load_settings()
    _logger.info(
        "REQUISITION_CONFIG_TRACE",
        extra={
            "trace_type": "REQUISITION_CONFIG_TRACE",
            "checksum": settings.checksum,
            "log_level": settings.log_level,
            "unfilled_alert_days": settings.unfilled_alert_days,
            "bulk_max_items": settings.bulk_max_items,
        },
    )
    return settings


__all__ = [
    "EngineSettings",
    "get_settings",
    "load_settings",
]
