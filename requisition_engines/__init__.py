"""
Module: requisition_engines
Responsibility:
    Calculation layer for the requisition engine: approver resolution for
    dynamic, identity-based approval chains.

Architecture position:
    Engines -- no sessions, no clock.  May only import
    requisition_kernel/domain types and kernel logging.
    MUST NOT import requisition_services or requisition_config.

Audit relevance:
    Engine calls are traced via ``@traced_engine`` (see
    ``requisition_engines.tracer``), emitting REQUISITION_ENGINE_TRACE log
    records with an input fingerprint for replay checks.
"""

from requisition_engines.approver_resolver import (
    DEDUP_EXEMPT_TYPES,
    DIRECT_SUPERIOR_STEP_NAME,
    resolve_workflow_approvers,
)
from requisition_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DEDUP_EXEMPT_TYPES",
    "DIRECT_SUPERIOR_STEP_NAME",
    "compute_input_fingerprint",
    "resolve_workflow_approvers",
    "traced_engine",
]
