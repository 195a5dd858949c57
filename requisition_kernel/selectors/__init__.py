"""Selectors for the requisition kernel (read side)."""

from requisition_kernel.selectors.requisition_selector import RequisitionSelector

__all__ = [
    "RequisitionSelector",
]
