from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from orgflow.api.deps import get_current_employee, require_permission
from orgflow.core.rbac import Permission
from orgflow.models.employee import (
    Employee,
    EmployeeCreate,
    ManagerAssignment,
    OrgTreeNode,
    RoleChange,
)
from orgflow.services.container import hierarchy_service


router = APIRouter(prefix="/employees", tags=["Directory & Hierarchy"])


@router.get("", response_model=list[Employee])
def list_employees(
    current_employee: Employee = Depends(get_current_employee),
) -> list[Employee]:
    return hierarchy_service.list_employees(current_employee)


@router.get("/org-chart", response_model=Optional[OrgTreeNode])
def get_org_chart(
    current_employee: Employee = Depends(get_current_employee),
) -> Optional[OrgTreeNode]:
    return hierarchy_service.get_org_chart(current_employee)


@router.get("/next-id")
def get_next_employee_id(
    current_employee: Employee = Depends(require_permission(Permission.VIEW_ALL_EMPLOYEES)),
) -> dict[str, str]:
    _ = current_employee
    return {"id": hierarchy_service.next_employee_id()}


@router.post("", response_model=Employee, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    manager_id: Optional[str] = None,
    current_employee: Employee = Depends(get_current_employee),
) -> Employee:
    return hierarchy_service.create_under_manager(current_employee, payload, manager_id)


@router.get("/{employee_id}", response_model=Employee)
def get_employee(
    employee_id: str,
    current_employee: Employee = Depends(get_current_employee),
) -> Employee:
    return hierarchy_service.view_employee(current_employee, employee_id)


@router.get("/{employee_id}/chain", response_model=list[Employee])
def get_chain_of_command(
    employee_id: str,
    current_employee: Employee = Depends(require_permission(Permission.VIEW_ORG_CHART)),
) -> list[Employee]:
    _ = current_employee
    return hierarchy_service.chain_of_command(employee_id)


@router.put("/{employee_id}/manager", response_model=Employee)
def assign_manager(
    employee_id: str,
    payload: ManagerAssignment,
    current_employee: Employee = Depends(get_current_employee),
) -> Employee:
    return hierarchy_service.assign_manager(current_employee, employee_id, payload.manager_id)


@router.put("/{employee_id}/role", response_model=Employee)
def change_role(
    employee_id: str,
    payload: RoleChange,
    current_employee: Employee = Depends(get_current_employee),
) -> Employee:
    return hierarchy_service.change_role(current_employee, employee_id, payload.role)


@router.delete("/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    employee_id: str,
    current_employee: Employee = Depends(get_current_employee),
) -> Response:
    hierarchy_service.delete_node(current_employee, employee_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{employee_id}/reports", response_model=list[Employee])
def get_direct_reports(
    employee_id: str,
    current_employee: Employee = Depends(require_permission(Permission.VIEW_ORG_CHART)),
) -> list[Employee]:
    _ = current_employee
    return hierarchy_service.direct_reports(employee_id)
