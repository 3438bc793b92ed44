from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import uuid4

import pydantic
from pydantic import BaseModel

from orgflow.core.errors import InvalidTransition, NotFound, PermissionDenied, ValidationError
from orgflow.core.rbac import Permission, can_act_on_stage, has_permission
from orgflow.models.employee import Employee
from orgflow.models.request import (
    APPROVAL_CHAIN,
    RequestStatus,
    RequestType,
    ServiceRequest,
    StatusChange,
    request_details_adapter,
)
from orgflow.repositories.data_store import DirectoryStore, RequestStore
from orgflow.services.audit_service import EventLogger


logger = logging.getLogger(__name__)


def next_stage(status: RequestStatus) -> Optional[RequestStatus]:
    """The status an approval moves ``status`` to, or ``None`` when terminal."""
    status = RequestStatus(status)
    if status.is_terminal:
        return None
    return APPROVAL_CHAIN[APPROVAL_CHAIN.index(status) + 1]


def legal_successors(status: RequestStatus) -> frozenset[RequestStatus]:
    following = next_stage(status)
    if following is None:
        return frozenset()
    return frozenset({following, RequestStatus.REJECTED})


def _format_errors(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "type") or "details"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class ApprovalService:
    def __init__(
        self,
        requests: RequestStore,
        directory: DirectoryStore,
        event_logger: EventLogger,
    ) -> None:
        self.requests = requests
        self.directory = directory
        self.event_logger = event_logger

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _require_employee(self, employee_id: str) -> Employee:
        employee = self.directory.get(employee_id)
        if employee is None:
            raise NotFound(f"Employee {employee_id} not found")
        return employee

    def get_request(self, request_id: str) -> ServiceRequest:
        request = self.requests.get(request_id)
        if request is None:
            raise NotFound(f"Request {request_id} not found")
        return request

    def view_request(self, actor: Employee, request_id: str) -> ServiceRequest:
        request = self.get_request(request_id)
        if request.id not in {r.id for r in self.list_requests(actor)}:
            raise PermissionDenied(f"Not allowed to view request {request_id}")
        return request

    def create_request(
        self,
        user_id: str,
        request_type: Union[RequestType, str],
        details: Union[dict[str, Any], BaseModel],
    ) -> ServiceRequest:
        try:
            request_type = RequestType(request_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown request type: {request_type!r}") from exc

        if isinstance(details, BaseModel):
            details = details.model_dump(by_alias=True)
        if not isinstance(details, dict):
            raise ValidationError("details must be an object")

        declared = details.get("type", request_type.value)
        if declared != request_type.value:
            raise ValidationError(
                f"details are tagged {declared} but request type is {request_type.value}"
            )

        try:
            parsed = request_details_adapter.validate_python({**details, "type": request_type.value})
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Invalid {request_type.value} details: {_format_errors(exc)}"
            ) from exc

        requester = self._require_employee(user_id)
        request = ServiceRequest(
            id=f"REQ-{uuid4().hex[:10]}",
            user_id=requester.id,
            user_name=requester.full_name,
            type=request_type,
            status=RequestStatus.PENDING_MANAGER,
            details=parsed,
            created_at=self._now(),
        )
        self.requests.put(request)

        logger.info("REQUEST %s %s created by %s", request.id, request_type.value, requester.id)
        self.event_logger.log_event(
            event_type="workflow_action",
            actor_id=requester.id,
            actor_role=requester.role,
            details={
                "action": "request_created",
                "request_id": request.id,
                "type": request_type.value,
            },
        )
        return request

    def can_approve(self, actor: Employee, request: ServiceRequest) -> bool:
        if request.user_id == actor.id:
            return False
        if request.status.is_terminal:
            return False
        return can_act_on_stage(actor.role, request.status)

    def update_status(
        self,
        request_id: str,
        new_status: Union[RequestStatus, str],
        acting_employee_id: str,
        note: Optional[str] = None,
    ) -> ServiceRequest:
        """Move a request one step along the chain, or reject it.

        Each stage needs its own call; nothing is advanced automatically.
        """
        try:
            new_status = RequestStatus(new_status)
        except ValueError as exc:
            raise ValidationError(f"Unknown status: {new_status!r}") from exc

        actor = self._require_employee(acting_employee_id)

        with self.requests.row_lock(request_id):
            request = self.get_request(request_id)
            current = request.status

            if current.is_terminal:
                raise InvalidTransition(f"Request {request_id} is already {current.value}")
            if new_status not in legal_successors(current):
                logger.warning(
                    "Rejected transition of %s: %s -> %s", request_id, current.value, new_status.value
                )
                raise InvalidTransition(f"Cannot move request from {current.value} to {new_status.value}")
            if request.user_id == actor.id:
                logger.warning("Rejected self-approval of %s by %s", request_id, actor.id)
                raise InvalidTransition("Cannot approve or reject your own request")
            if not self.can_approve(actor, request):
                raise InvalidTransition(
                    f"Role {actor.role.value} cannot act on requests in {current.value}"
                )

            change = StatusChange(
                from_status=current,
                to_status=new_status,
                actor_id=actor.id,
                at=self._now(),
                note=note,
            )
            updated = request.model_copy(
                update={
                    "status": new_status,
                    "approver_id": actor.id,
                    "history": [*request.history, change],
                }
            )
            self.requests.put(updated)

        logger.info("REQUEST %s %s -> %s by %s", request_id, current.value, new_status.value, actor.id)
        self.event_logger.log_event(
            event_type="workflow_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={
                "action": "request_status_changed",
                "request_id": request_id,
                "from_status": current.value,
                "to_status": new_status.value,
            },
        )
        return updated

    def approve(self, actor: Employee, request_id: str, note: Optional[str] = None) -> ServiceRequest:
        request = self.get_request(request_id)
        following = next_stage(request.status)
        if following is None:
            raise InvalidTransition(f"Request {request_id} is already {request.status.value}")
        return self.update_status(request_id, following, actor.id, note=note)

    def reject(self, actor: Employee, request_id: str, note: Optional[str] = None) -> ServiceRequest:
        return self.update_status(request_id, RequestStatus.REJECTED, actor.id, note=note)

    def cancel_request(self, actor: Employee, request_id: str) -> ServiceRequest:
        with self.requests.row_lock(request_id):
            request = self.get_request(request_id)
            if request.user_id != actor.id:
                raise InvalidTransition("Only the requester can cancel a request")
            if request.status.is_terminal:
                raise InvalidTransition(f"Request {request_id} is already {request.status.value}")

            change = StatusChange(
                from_status=request.status,
                to_status=RequestStatus.CANCELLED,
                actor_id=actor.id,
                at=self._now(),
            )
            updated = request.model_copy(
                update={
                    "status": RequestStatus.CANCELLED,
                    "history": [*request.history, change],
                }
            )
            self.requests.put(updated)

        logger.info("REQUEST %s cancelled by %s", request_id, actor.id)
        self.event_logger.log_event(
            event_type="workflow_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={"action": "request_cancelled", "request_id": request_id},
        )
        return updated

    def list_requests(
        self,
        actor: Employee,
        status: Optional[RequestStatus] = None,
    ) -> list[ServiceRequest]:
        rows = self.requests.list()
        perms = actor.permissions

        if has_permission(perms, Permission.VIEW_ALL_EMPLOYEES):
            visible = rows
        elif has_permission(perms, Permission.MANAGE_DEPT_EMPLOYEES):
            team_ids = {
                e.id for e in self.directory.list() if e.department == actor.department
            } | {actor.id}
            visible = [r for r in rows if r.user_id in team_ids]
        else:
            visible = [r for r in rows if r.user_id == actor.id]

        if status is not None:
            visible = [r for r in visible if r.status == RequestStatus(status)]

        return sorted(visible, key=lambda r: r.created_at, reverse=True)

    def pending_for(self, actor: Employee) -> list[ServiceRequest]:
        return [r for r in self.list_requests(actor) if self.can_approve(actor, r)]
