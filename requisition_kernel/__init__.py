"""
Requisition Kernel

The persistence and state-machine core of the requisition approval engine:
- Approval configuration access (role levels, workflow templates)
- Requisition lifecycle with ordered, append-only approval history
- Optimistic versioning so a level is never advanced twice
- Hash-chained audit trail for every lifecycle transition
"""

__version__ = "0.1.0"
