"""
Tests for requisition intake and approval chain selection.

Covers:
- Draft validation before anything is written
- Chain selection: default workflow > oldest active workflow > role levels
- NoApprovalChainError when a tenant has nothing configured
- Per-brand RQ numbering
- Splitting a multi-opening draft into numbered instances
- Auto-approval when every dynamic step is skipped
- Manual approver handling for both chain kinds
- Chain re-derivation before the first decision
"""

from uuid import UUID

import pytest

from requisition_kernel.domain.requisition import (
    ApprovalStatus,
    ChainKind,
    ManualApprover,
    RequisitionCategory,
    RequisitionStatus,
)
from requisition_kernel.domain.workflow import ApproverType, DirectoryIdentity, WorkflowStep
from requisition_kernel.exceptions import (
    ChainAlreadyStartedError,
    InvalidRequisitionDraftError,
    NoApprovalChainError,
)
from requisition_kernel.models.audit_event import AuditAction
from requisition_kernel.models.organization import OrgAreaModel
from tests.conftest import CREATOR_EMAIL, CREATOR_ID, TENANT


AREA_ONLY = (WorkflowStep(1, "Area manager", ApproverType.AREA_MANAGER),)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestDraftValidation:

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"position_name": "  "}, "position_name"),
            ({"quantity": 0}, "quantity"),
            ({"created_by_email": ""}, "created_by"),
            ({"tenant_id": ""}, "tenant_id"),
            ({"alert_days_threshold": 0}, "alert_days_threshold"),
            ({"category": "operational"}, "category"),
        ],
    )
    def test_invalid_drafts_are_refused(
        self, intake, selector, configure_levels, make_draft, overrides, field,
    ):
        configure_levels()
        with pytest.raises(InvalidRequisitionDraftError) as exc_info:
            intake.submit(make_draft(**overrides))
        assert exc_info.value.field == field
        assert selector.list_for_tenant(TENANT) == []


# ---------------------------------------------------------------------------
# Chain selection
# ---------------------------------------------------------------------------


class TestChainSelection:

    def test_no_chain_configured(self, intake, make_draft, captured_logs):
        with pytest.raises(NoApprovalChainError):
            intake.submit(make_draft())
        missing = [r for r in captured_logs() if r["message"] == "approval_chain_missing"]
        assert missing and missing[0]["level"] == "ERROR"

    def test_workflow_wins_over_role_levels(self, configure_levels, configure_workflow, submit_requisition):
        configure_levels()
        configure_workflow((WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),))
        assert submit_requisition().chain_kind == ChainKind.DYNAMIC_STEPS

    def test_inactive_workflow_is_ignored(self, configure_levels, configure_workflow, submit_requisition):
        configure_levels()
        configure_workflow(
            (WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),),
            is_active=False,
        )
        assert submit_requisition().chain_kind == ChainKind.ROLE_LEVELS

    def test_oldest_active_workflow_when_no_default(
        self, configure_workflow, submit_requisition, requisition_service, deterministic_clock,
    ):
        configure_workflow(
            (WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),),
            name="First", is_default=False,
        )
        deterministic_clock.tick()
        configure_workflow(
            (
                WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),
                WorkflowStep(
                    2, "HR", ApproverType.SPECIFIC_USER,
                    specific_user=DirectoryIdentity("u-hr", "hr@acme.pe"),
                ),
            ),
            name="Second", is_default=False,
        )
        created = submit_requisition()
        assert len(requisition_service.chain_for(created.id).gates()) == 1

    def test_brand_config_drives_role_levels(
        self, configure_levels, submit_requisition, requisition_service,
    ):
        from requisition_kernel.domain.approval_config import ApprovalLevel

        configure_levels()
        configure_levels(
            (ApprovalLevel(1, "Franchise owner", frozenset({"franquiciado"})),),
            brand_id="kfc",
        )
        kfc = submit_requisition(brand_id="kfc")
        assert [g.name for g in requisition_service.chain_for(kfc.id).gates()] == ["Franchise owner"]
        pj = submit_requisition()
        assert len(requisition_service.chain_for(pj.id).gates()) == 2


# ---------------------------------------------------------------------------
# Numbering and splitting
# ---------------------------------------------------------------------------


class TestNumbering:

    def test_numbers_are_sequential_per_brand(self, configure_levels, submit_requisition):
        configure_levels()
        assert submit_requisition().rq_number == "RQ-PJ-00001"
        assert submit_requisition().rq_number == "RQ-PJ-00002"
        assert submit_requisition(brand_id="kfc").rq_number == "RQ-KFC-00001"
        assert submit_requisition(brand_id="brand_wendys").rq_number == "RQ-WEN-00001"
        assert submit_requisition(brand_id=None).rq_number == "RQ-GEN-00001"
        assert submit_requisition().rq_number == "RQ-PJ-00003"


class TestSplitInstances:

    def test_split_creates_one_requisition_per_opening(
        self, intake, selector, configure_levels, make_draft, captured_logs,
    ):
        configure_levels()
        created = intake.submit(make_draft(quantity=3), split_instances=True)

        assert len(created) == 3
        assert {rq.quantity for rq in created} == {1}
        assert [rq.instance_number for rq in created] == [1, 2, 3]
        batch_ids = {rq.batch_id for rq in created}
        assert len(batch_ids) == 1 and None not in batch_ids
        assert len({rq.rq_number for rq in created}) == 3

        siblings = selector.list_by_batch(created[0].batch_id)
        assert [rq.id for rq in siblings] == [rq.id for rq in created]
        assert any(r["message"] == "requisition_batch_created" for r in captured_logs())

    def test_unsplit_keeps_quantity(self, intake, configure_levels, make_draft):
        configure_levels()
        created = intake.submit(make_draft(quantity=3))
        assert len(created) == 1
        assert created[0].quantity == 3
        assert created[0].batch_id is None

    def test_split_of_single_opening_is_not_a_batch(self, intake, configure_levels, make_draft):
        configure_levels()
        created = intake.submit(make_draft(quantity=1), split_instances=True)
        assert len(created) == 1
        assert created[0].batch_id is None


# ---------------------------------------------------------------------------
# Auto-approval and manual approvers
# ---------------------------------------------------------------------------


class TestAutoApproval:

    def test_all_steps_skipped_approves_immediately(
        self, configure_workflow, submit_requisition, auditor_service, captured_logs,
    ):
        configure_workflow(AREA_ONLY)
        rq = submit_requisition(area_id=None)
        assert rq.approval_status == ApprovalStatus.APPROVED
        assert rq.status == RequisitionStatus.ACTIVE
        assert rq.approval_records == ()

        trace = auditor_service.requisition_trace(rq.id)
        assert trace.actions == (
            AuditAction.REQUISITION_CREATED,
            AuditAction.REQUISITION_AUTO_APPROVED,
        )
        warnings = [r for r in captured_logs() if r["message"] == "requisition_auto_approved"]
        assert warnings and warnings[0]["level"] == "WARNING"

    def test_managerial_auto_approval_waits_for_start(self, configure_workflow, submit_requisition):
        configure_workflow(AREA_ONLY)
        rq = submit_requisition(area_id=None, category=RequisitionCategory.MANAGERIAL)
        assert rq.approval_status == ApprovalStatus.APPROVED
        assert rq.status == RequisitionStatus.DRAFT


class TestManualApprover:

    def test_dynamic_chain_puts_direct_superior_first(
        self, configure_workflow, submit_requisition, requisition_service,
    ):
        configure_workflow((WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),))
        rq = submit_requisition(
            manual_approver=ManualApprover("u-boss", "boss@acme.pe", "Bruno Boss"),
        )
        gates = requisition_service.chain_for(rq.id).gates()
        assert gates[0].approver_type == ApproverType.DIRECT_SUPERIOR
        assert gates[0].assignee.email == "boss@acme.pe"
        assert gates[1].assignee.email == CREATOR_EMAIL

    def test_role_levels_ignore_manual_approver(
        self, configure_levels, submit_requisition, captured_logs,
    ):
        configure_levels()
        rq = submit_requisition(manual_approver=ManualApprover("u-boss", "boss@acme.pe"))
        assert rq.chain_kind == ChainKind.ROLE_LEVELS
        assert any(r["message"] == "manual_approver_ignored" for r in captured_logs())


# ---------------------------------------------------------------------------
# Re-derivation
# ---------------------------------------------------------------------------


class TestRederiveChain:

    def test_rederive_picks_up_new_manager(
        self, session, intake, configure_workflow, create_area, submit_requisition,
        requisition_service, auditor_service,
    ):
        area_id = create_area(manager_email=None)
        configure_workflow((
            WorkflowStep(1, "Area manager", ApproverType.AREA_MANAGER),
            WorkflowStep(2, "Hiring manager", ApproverType.HIRING_MANAGER),
        ))
        rq = submit_requisition(
            area_id=area_id,
            manual_approver=ManualApprover("u-boss", "boss@acme.pe", "Bruno Boss"),
        )
        before = requisition_service.chain_for(rq.id).gates()
        assert [g.skipped for g in before] == [False, True, False]

        area = session.get(OrgAreaModel, UUID(area_id))
        area.manager_email = "new.area@acme.pe"
        area.manager_id = "u-new-area"
        session.flush()

        updated = intake.rederive_chain(rq.id, "u-admin")
        after = requisition_service.chain_for(rq.id).gates()
        assert [g.skipped for g in after] == [False, False, False]
        assert after[0].assignee.email == "boss@acme.pe"
        assert after[1].assignee.email == "new.area@acme.pe"
        assert updated.current_approval_level == 1
        assert auditor_service.requisition_trace(rq.id).last_action == AuditAction.CHAIN_REDERIVED

    def test_rederive_refused_once_decided(
        self, intake, configure_levels, submit_requisition, requisition_service,
    ):
        configure_levels()
        rq = submit_requisition()
        requisition_service.approve(
            rq.id, "u-sup", "sup@acme.pe", TENANT, approver_role="supervisor",
        )
        with pytest.raises(ChainAlreadyStartedError):
            intake.rederive_chain(rq.id, CREATOR_ID)
