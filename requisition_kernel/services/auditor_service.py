"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every requisition
    lifecycle transition and every admin write to approval configuration.
    Provides chain validation and per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by RequisitionService
    and ApprovalConfigService.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Chain integrity: ``hash = H(entity_type, entity_id, action,
      payload_hash, prev_hash)``.
    - Audit events are append-only (ORM listeners on AuditEvent).

Failure modes:
    - AuditChainBrokenError from ``validate_chain()`` when a stored hash
      or a prev_hash link does not match.

Audit relevance:
    A permanently deleted requisition leaves its full trail behind: audit
    events reference the requisition id without a foreign key.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.exceptions import AuditChainBrokenError
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.audit_event import AuditAction, AuditEvent
from requisition_kernel.services.sequence_service import SequenceService
from requisition_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

REQUISITION_ENTITY = "Requisition"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one event to the chain and flush it."""
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.debug(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # Requisition lifecycle

    def record_requisition(
        self,
        requisition_id: UUID,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record a requisition lifecycle transition."""
        return self._create_audit_event(
            entity_type=REQUISITION_ENTITY,
            entity_id=requisition_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_config_saved(
        self,
        config_id: UUID,
        actor_id: str,
        tenant_id: str,
        brand_id: str | None,
        level_count: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="ApprovalConfig",
            entity_id=config_id,
            action=AuditAction.APPROVAL_CONFIG_SAVED,
            actor_id=actor_id,
            payload={
                "tenant_id": tenant_id,
                "brand_id": brand_id,
                "level_count": level_count,
            },
        )

    def record_workflow_saved(
        self,
        workflow_id: UUID,
        actor_id: str,
        tenant_id: str,
        name: str,
        step_count: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="ApprovalWorkflow",
            entity_id=workflow_id,
            action=AuditAction.WORKFLOW_SAVED,
            actor_id=actor_id,
            payload={"tenant_id": tenant_id, "name": name, "step_count": step_count},
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If any hash or link does not match.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=hash_payload(event.payload or {}),
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None",
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=AuditAction(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

    def requisition_trace(self, requisition_id: UUID) -> AuditTrace:
        return self.get_trace(REQUISITION_ENTITY, requisition_id)
