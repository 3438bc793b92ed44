from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from orgflow.api.deps import get_current_employee
from orgflow.models.employee import Employee
from orgflow.models.request import (
    DecisionNote,
    RequestCreate,
    RequestStatus,
    ServiceRequest,
    StatusUpdate,
)
from orgflow.services.container import approval_service


router = APIRouter(prefix="/requests", tags=["Approval Workflow"])


@router.post("", response_model=ServiceRequest, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: RequestCreate,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    return approval_service.create_request(current_employee.id, payload.type, payload.details)


@router.get("", response_model=list[ServiceRequest])
def list_requests(
    status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
    current_employee: Employee = Depends(get_current_employee),
) -> list[ServiceRequest]:
    return approval_service.list_requests(current_employee, status_filter)


@router.get("/pending", response_model=list[ServiceRequest])
def list_pending_for_me(
    current_employee: Employee = Depends(get_current_employee),
) -> list[ServiceRequest]:
    return approval_service.pending_for(current_employee)


@router.post("/{request_id}/approve", response_model=ServiceRequest)
def approve_request(
    request_id: str,
    payload: Optional[DecisionNote] = None,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    note = payload.note if payload else None
    return approval_service.approve(current_employee, request_id, note=note)


@router.post("/{request_id}/reject", response_model=ServiceRequest)
def reject_request(
    request_id: str,
    payload: Optional[DecisionNote] = None,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    note = payload.note if payload else None
    return approval_service.reject(current_employee, request_id, note=note)


@router.post("/{request_id}/cancel", response_model=ServiceRequest)
def cancel_request(
    request_id: str,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    return approval_service.cancel_request(current_employee, request_id)


@router.put("/{request_id}/status", response_model=ServiceRequest)
def update_request_status(
    request_id: str,
    payload: StatusUpdate,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    return approval_service.update_status(
        request_id, payload.status, current_employee.id, note=payload.note
    )


@router.get("/{request_id}", response_model=ServiceRequest)
def get_request(
    request_id: str,
    current_employee: Employee = Depends(get_current_employee),
) -> ServiceRequest:
    return approval_service.view_request(current_employee, request_id)
