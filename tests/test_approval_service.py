import threading
from datetime import date

import pytest

from orgflow.core.errors import InvalidTransition, NotFound, PermissionDenied, ValidationError
from orgflow.core.rbac import Role
from orgflow.models.request import (
    LeaveDetails,
    RequestStatus,
    RequestType,
)
from orgflow.services.approval_service import legal_successors, next_stage

from conftest import make_employee


LEAVE = {
    "startDate": "2026-11-02",
    "endDate": "2026-11-05",
    "leaveType": "Annual",
    "reason": "Family visit",
}


@pytest.fixture
def leave(approvals, staff):
    return approvals.create_request(staff["E3"].id, RequestType.LEAVE, LEAVE)


def _advance_to(approvals, staff, request_id, status):
    approver_for = {
        RequestStatus.PENDING_MANAGER: staff["E2"],
        RequestStatus.PENDING_GM: staff["E1"],
        RequestStatus.PENDING_HR: staff["ADMIN"],
    }
    request = approvals.get_request(request_id)
    while request.status != status:
        request = approvals.approve(approver_for[request.status], request_id)
    return request


# -- create_request ----------------------------------------------------------


def test_create_request_starts_pending_manager(leave, staff):
    assert leave.status is RequestStatus.PENDING_MANAGER
    assert leave.user_id == "10003"
    assert leave.user_name == "Employee 10003"
    assert isinstance(leave.details, LeaveDetails)
    assert leave.details.start_date == date(2026, 11, 2)
    assert leave.approver_id is None
    assert leave.created_at.tzinfo is not None


def test_create_request_accepts_model_payload(approvals, staff):
    details = LeaveDetails(
        start_date=date(2026, 12, 1),
        end_date=date(2026, 12, 1),
        leave_type="Sick",
        reason="Clinic appointment",
    )
    request = approvals.create_request(staff["E3"].id, "LEAVE", details)
    assert request.details == details


@pytest.mark.parametrize(
    "request_type, details",
    [
        (RequestType.ASSET, {"itemName": "Laptop", "assetType": "Electronics", "justification": "Old one broke"}),
        (RequestType.LOAN, {"amount": 5000, "installments": 10, "reason": "Car repair"}),
        (RequestType.PUNCH_CORRECTION, {"date": "2026-10-01", "correctTime": "08:05", "punchType": "IN", "reason": "Badge failed"}),
        (RequestType.CLEARANCE, {"lastWorkingDay": "2026-12-31", "reason": "End of assignment"}),
        (RequestType.RESIGNATION, {"lastWorkingDay": "2026-12-31", "reason": "Relocating"}),
        (RequestType.CONTRACT_NON_RENEWAL, {"contractEndDate": "2027-03-31", "reason": "Project ends"}),
        (RequestType.AUTHORIZATION, {"authorizedPerson": "Ali Hassan", "purpose": "Collect documents", "validUntil": "2026-11-30"}),
        (RequestType.LETTER, {"letterType": "Salary certificate", "addressee": "Bank"}),
        (RequestType.PERMISSION, {"date": "2026-10-20", "fromTime": "10:00", "toTime": "12:00", "reason": "Government office"}),
    ],
)
def test_every_request_type_has_a_payload_shape(approvals, staff, request_type, details):
    request = approvals.create_request(staff["E3"].id, request_type, details)
    assert request.type is request_type
    assert request.details.type == request_type.value


def test_missing_fields_are_rejected(approvals, request_store, staff):
    with pytest.raises(ValidationError, match="LOAN"):
        approvals.create_request(staff["E3"].id, RequestType.LOAN, {"amount": 100})
    assert request_store.list() == []


def test_fields_of_another_type_are_rejected(approvals, staff):
    with pytest.raises(ValidationError):
        approvals.create_request(
            staff["E3"].id,
            RequestType.LETTER,
            {"itemName": "Laptop", "assetType": "Electronics", "justification": "Need one"},
        )


def test_mismatched_tag_is_rejected(approvals, staff):
    with pytest.raises(ValidationError, match="tagged ASSET"):
        approvals.create_request(staff["E3"].id, RequestType.LEAVE, {**LEAVE, "type": "ASSET"})


def test_unknown_type_is_rejected(approvals, staff):
    with pytest.raises(ValidationError):
        approvals.create_request(staff["E3"].id, "OVERTIME", {})


def test_backwards_leave_range_is_rejected(approvals, staff):
    with pytest.raises(ValidationError):
        approvals.create_request(
            staff["E3"].id,
            RequestType.LEAVE,
            {**LEAVE, "startDate": "2026-11-05", "endDate": "2026-11-02"},
        )


def test_non_positive_loan_is_rejected(approvals, staff):
    with pytest.raises(ValidationError):
        approvals.create_request(
            staff["E3"].id, RequestType.LOAN, {"amount": 0, "installments": 2, "reason": "Nothing"}
        )


def test_unknown_requester(approvals, staff):
    with pytest.raises(NotFound):
        approvals.create_request("99999", RequestType.LEAVE, LEAVE)


# -- chain -------------------------------------------------------------------


def test_chain_helpers():
    assert next_stage(RequestStatus.PENDING_MANAGER) is RequestStatus.PENDING_GM
    assert next_stage(RequestStatus.PENDING_GM) is RequestStatus.PENDING_HR
    assert next_stage(RequestStatus.PENDING_HR) is RequestStatus.APPROVED
    assert next_stage(RequestStatus.APPROVED) is None
    assert legal_successors(RequestStatus.PENDING_GM) == {
        RequestStatus.PENDING_HR,
        RequestStatus.REJECTED,
    }
    assert legal_successors(RequestStatus.REJECTED) == frozenset()


def test_full_workflow_scenario(approvals, staff, leave):
    requester, manager, owner, admin = staff["E3"], staff["E2"], staff["E1"], staff["ADMIN"]

    with pytest.raises(InvalidTransition, match="own request"):
        approvals.update_status(leave.id, RequestStatus.PENDING_GM, requester.id)

    step1 = approvals.update_status(leave.id, RequestStatus.PENDING_GM, manager.id)
    assert step1.status is RequestStatus.PENDING_GM
    assert step1.approver_id == manager.id

    step2 = approvals.update_status(leave.id, RequestStatus.PENDING_HR, owner.id)
    assert step2.status is RequestStatus.PENDING_HR

    final = approvals.update_status(leave.id, RequestStatus.APPROVED, admin.id)
    assert final.status is RequestStatus.APPROVED
    assert final.approver_id == admin.id
    assert final.details == leave.details
    assert final.created_at == leave.created_at
    assert [(c.from_status, c.to_status, c.actor_id) for c in final.history] == [
        (RequestStatus.PENDING_MANAGER, RequestStatus.PENDING_GM, manager.id),
        (RequestStatus.PENDING_GM, RequestStatus.PENDING_HR, owner.id),
        (RequestStatus.PENDING_HR, RequestStatus.APPROVED, admin.id),
    ]


def test_owner_can_act_as_first_approver(approvals, staff, leave):
    assert approvals.update_status(leave.id, RequestStatus.PENDING_GM, staff["E1"].id).status is RequestStatus.PENDING_GM


@pytest.mark.parametrize(
    "target",
    [RequestStatus.PENDING_HR, RequestStatus.APPROVED, RequestStatus.CANCELLED, RequestStatus.PENDING_MANAGER],
)
def test_shortcuts_are_rejected(approvals, staff, leave, target):
    with pytest.raises(InvalidTransition):
        approvals.update_status(leave.id, target, staff["E1"].id)
    assert approvals.get_request(leave.id).status is RequestStatus.PENDING_MANAGER


def test_wrong_role_for_stage(approvals, staff, leave):
    with pytest.raises(InvalidTransition):
        approvals.update_status(leave.id, RequestStatus.PENDING_GM, staff["ADMIN"].id)

    _advance_to(approvals, staff, leave.id, RequestStatus.PENDING_GM)
    with pytest.raises(InvalidTransition):
        approvals.update_status(leave.id, RequestStatus.PENDING_HR, staff["E2"].id)

    _advance_to(approvals, staff, leave.id, RequestStatus.PENDING_HR)
    # The owner holds every permission but the HR stage belongs to the admin.
    with pytest.raises(InvalidTransition):
        approvals.update_status(leave.id, RequestStatus.APPROVED, staff["E1"].id)


def test_no_self_approval_for_any_role_or_status(approvals, directory, staff):
    for role in Role:
        requester = make_employee(f"2{role.value}", role)
        directory.put(requester)
        request = approvals.create_request(requester.id, RequestType.LETTER, {"letterType": "Experience", "addressee": "Embassy"})
        for status in RequestStatus:
            snapshot = request.model_copy(update={"status": status})
            assert approvals.can_approve(requester, snapshot) is False


def test_can_approve_by_stage(approvals, staff, leave):
    assert approvals.can_approve(staff["E2"], leave)
    assert approvals.can_approve(staff["E1"], leave)
    assert not approvals.can_approve(staff["ADMIN"], leave)
    assert not approvals.can_approve(staff["E5"], leave)


def test_reject_from_any_pending_stage(approvals, staff):
    for stop in (RequestStatus.PENDING_MANAGER, RequestStatus.PENDING_GM, RequestStatus.PENDING_HR):
        request = approvals.create_request(staff["E3"].id, RequestType.LEAVE, LEAVE)
        request = _advance_to(approvals, staff, request.id, stop)
        approver = {
            RequestStatus.PENDING_MANAGER: staff["E2"],
            RequestStatus.PENDING_GM: staff["E1"],
            RequestStatus.PENDING_HR: staff["ADMIN"],
        }[stop]
        rejected = approvals.reject(approver, request.id, note="Not this time")
        assert rejected.status is RequestStatus.REJECTED
        assert rejected.history[-1].note == "Not this time"


def test_terminal_requests_are_immutable(approvals, staff, leave):
    approvals.reject(staff["E2"], leave.id)
    for status in RequestStatus:
        with pytest.raises(InvalidTransition):
            approvals.update_status(leave.id, status, staff["E1"].id)
    with pytest.raises(InvalidTransition):
        approvals.cancel_request(staff["E3"], leave.id)
    assert approvals.get_request(leave.id).status is RequestStatus.REJECTED


def test_approve_walks_the_chain_one_step_at_a_time(approvals, staff, leave):
    assert approvals.approve(staff["E2"], leave.id).status is RequestStatus.PENDING_GM
    assert approvals.approve(staff["E1"], leave.id).status is RequestStatus.PENDING_HR
    assert approvals.approve(staff["ADMIN"], leave.id).status is RequestStatus.APPROVED
    with pytest.raises(InvalidTransition):
        approvals.approve(staff["ADMIN"], leave.id)


def test_unknown_status_and_ids(approvals, staff, leave):
    with pytest.raises(ValidationError):
        approvals.update_status(leave.id, "ESCALATED", staff["E2"].id)
    with pytest.raises(NotFound):
        approvals.update_status("REQ-missing", RequestStatus.PENDING_GM, staff["E2"].id)
    with pytest.raises(NotFound):
        approvals.update_status(leave.id, RequestStatus.PENDING_GM, "99999")


# -- cancel ------------------------------------------------------------------


def test_requester_can_cancel_pending(approvals, staff, leave):
    cancelled = approvals.cancel_request(staff["E3"], leave.id)
    assert cancelled.status is RequestStatus.CANCELLED
    assert cancelled.history[-1].actor_id == "10003"


def test_only_requester_can_cancel(approvals, staff, leave):
    with pytest.raises(InvalidTransition):
        approvals.cancel_request(staff["E1"], leave.id)


# -- listing -----------------------------------------------------------------


def test_list_requests_visibility(approvals, staff):
    own = approvals.create_request(staff["E3"].id, RequestType.LEAVE, LEAVE)
    teammate = approvals.create_request(staff["E5"].id, RequestType.LEAVE, LEAVE)
    sales = approvals.create_request(staff["SALES"].id, RequestType.LEAVE, LEAVE)

    assert {r.id for r in approvals.list_requests(staff["ADMIN"])} == {own.id, teammate.id, sales.id}
    assert {r.id for r in approvals.list_requests(staff["E2"])} == {own.id, teammate.id}
    assert [r.id for r in approvals.list_requests(staff["E3"])] == [own.id]

    with pytest.raises(PermissionDenied):
        approvals.view_request(staff["E3"], teammate.id)


def test_list_requests_newest_first_and_status_filter(approvals, staff):
    first = approvals.create_request(staff["E3"].id, RequestType.LEAVE, LEAVE)
    second = approvals.create_request(staff["E3"].id, RequestType.LEAVE, LEAVE)
    approvals.approve(staff["E2"], first.id)

    listed = approvals.list_requests(staff["E1"])
    assert {r.id for r in listed} == {first.id, second.id}
    assert listed[0].created_at >= listed[1].created_at
    assert [r.id for r in approvals.list_requests(staff["E1"], RequestStatus.PENDING_GM)] == [first.id]


def test_pending_for(approvals, staff, leave):
    assert [r.id for r in approvals.pending_for(staff["E2"])] == [leave.id]
    assert approvals.pending_for(staff["ADMIN"]) == []
    assert approvals.pending_for(staff["E3"]) == []

    approvals.approve(staff["E2"], leave.id)
    assert [r.id for r in approvals.pending_for(staff["E1"])] == [leave.id]
    assert approvals.pending_for(staff["E2"]) == []


def test_transitions_are_audited(approvals, event_logger, staff, leave):
    approvals.approve(staff["E2"], leave.id)
    actions = [e["details"]["action"] for e in event_logger.recent_events(event_type="workflow_action")]
    assert actions[-2:] == ["request_created", "request_status_changed"]


# -- concurrency -------------------------------------------------------------


def test_concurrent_approvals_advance_once(approvals, directory, staff, leave):
    second_manager = make_employee("10007", Role.DEPT_MANAGER, "10001", "Operations", "Shift Lead")
    directory.put(second_manager)

    barrier = threading.Barrier(2)
    outcomes = []

    def approve(actor_id):
        barrier.wait()
        try:
            approvals.update_status(leave.id, RequestStatus.PENDING_GM, actor_id)
            outcomes.append("ok")
        except InvalidTransition:
            outcomes.append("rejected")

    threads = [threading.Thread(target=approve, args=(a,)) for a in ("10002", "10007")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected"]
    request = approvals.get_request(leave.id)
    assert request.status is RequestStatus.PENDING_GM
    assert len(request.history) == 1
