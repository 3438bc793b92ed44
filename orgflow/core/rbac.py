from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    # The owner is stored as "MANAGER" in persisted directories.
    OWNER = "MANAGER"
    ADMIN = "ADMIN"
    DEPT_MANAGER = "DEPT_MANAGER"
    EMPLOYEE = "EMPLOYEE"


class Permission(str, Enum):
    VIEW_ALL_EMPLOYEES = "VIEW_ALL_EMPLOYEES"
    MANAGE_ALL_EMPLOYEES = "MANAGE_ALL_EMPLOYEES"
    MANAGE_DEPT_EMPLOYEES = "MANAGE_DEPT_EMPLOYEES"
    VIEW_SALARIES = "VIEW_SALARIES"
    MANAGE_PAYROLL = "MANAGE_PAYROLL"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
    VIEW_REPORTS = "VIEW_REPORTS"
    APPROVE_REQUESTS_FINAL = "APPROVE_REQUESTS_FINAL"
    APPROVE_REQUESTS_INITIAL = "APPROVE_REQUESTS_INITIAL"
    MANAGE_WARNINGS = "MANAGE_WARNINGS"
    VIEW_ORG_CHART = "VIEW_ORG_CHART"


PermissionSet = dict[Permission, bool]


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.OWNER: frozenset(Permission),
    Role.ADMIN: frozenset(
        {
            Permission.VIEW_ALL_EMPLOYEES,
            Permission.MANAGE_ALL_EMPLOYEES,
            Permission.VIEW_REPORTS,
            Permission.APPROVE_REQUESTS_INITIAL,
            Permission.MANAGE_WARNINGS,
            Permission.VIEW_ORG_CHART,
        }
    ),
    Role.DEPT_MANAGER: frozenset(
        {
            Permission.MANAGE_DEPT_EMPLOYEES,
            Permission.APPROVE_REQUESTS_INITIAL,
            Permission.VIEW_ORG_CHART,
        }
    ),
    Role.EMPLOYEE: frozenset({Permission.VIEW_ORG_CHART}),
}


def derive_permissions(role: Role) -> PermissionSet:
    """Return the full permission map for ``role``.

    Every flag is present; denied flags are ``False``. A new dict is returned
    on each call so callers can never mutate the shared table.
    """
    try:
        granted = ROLE_PERMISSIONS[Role(role)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown role: {role!r}") from exc
    return {permission: permission in granted for permission in Permission}


def has_permission(permissions: Optional[Mapping], permission: Permission) -> bool:
    if not permissions:
        return False
    return bool(permissions.get(permission, False))


def granted(permissions: Optional[Mapping]) -> set[Permission]:
    return {p for p in Permission if has_permission(permissions, p)}


# Broader flags that cover narrower ones when comparing privilege.
IMPLIED_PERMISSIONS: dict[Permission, frozenset[Permission]] = {
    Permission.MANAGE_ALL_EMPLOYEES: frozenset({Permission.MANAGE_DEPT_EMPLOYEES}),
}


def outranks(actor_permissions: Optional[Mapping], target_permissions: Optional[Mapping]) -> bool:
    """True when the actor holds (or covers) every permission the target holds."""
    actor = granted(actor_permissions)
    for permission in list(actor):
        actor |= IMPLIED_PERMISSIONS.get(permission, frozenset())
    return granted(target_permissions) <= actor


@dataclass(frozen=True)
class ApprovalStage:
    status: str
    required_permission: Permission
    eligible_roles: frozenset[Role]


# Status values mirror RequestStatus; kept as strings so the permission
# module does not depend on the request models.
APPROVAL_STAGES: dict[str, ApprovalStage] = {
    "PENDING_MANAGER": ApprovalStage(
        status="PENDING_MANAGER",
        required_permission=Permission.APPROVE_REQUESTS_INITIAL,
        eligible_roles=frozenset({Role.DEPT_MANAGER, Role.OWNER}),
    ),
    "PENDING_GM": ApprovalStage(
        status="PENDING_GM",
        required_permission=Permission.APPROVE_REQUESTS_FINAL,
        eligible_roles=frozenset({Role.OWNER}),
    ),
    "PENDING_HR": ApprovalStage(
        status="PENDING_HR",
        required_permission=Permission.APPROVE_REQUESTS_INITIAL,
        eligible_roles=frozenset({Role.ADMIN}),
    ),
}


def can_act_on_stage(role: Role, status: str) -> bool:
    stage = APPROVAL_STAGES.get(str(getattr(status, "value", status)))
    if stage is None:
        return False
    if not has_permission(derive_permissions(role), stage.required_permission):
        return False
    return Role(role) in stage.eligible_roles
