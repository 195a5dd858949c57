"""
Config -> Kernel Bridges.

Functions that convert ``EngineSettings`` into kernel inputs.  They live in
requisition_config (the producer) because the kernel must NEVER import
requisition_config.

Usage:
    from requisition_config import get_settings
    from requisition_config.bridges import build_requisition_policy

    policy = build_requisition_policy(get_settings())
"""

from __future__ import annotations

from requisition_config.schema import EngineSettings
from requisition_kernel.domain.requisition import RequisitionCategory, RequisitionPolicy


def build_requisition_policy(settings: EngineSettings) -> RequisitionPolicy:
    """The state machine's policy knobs from loaded settings."""
    return RequisitionPolicy(
        auto_activate_categories=frozenset(
            RequisitionCategory(c) for c in settings.auto_activate_categories
        ),
        deletion_approver_roles=frozenset(settings.deletion_approver_roles),
        direct_delete_roles=frozenset(settings.direct_delete_roles),
        unfilled_alert_days=settings.unfilled_alert_days,
        brand_codes=dict(settings.brand_codes),
    )
