from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Optional

from orgflow.core.config import settings
from orgflow.core.errors import InvalidOperation, NotFound, PermissionDenied
from orgflow.core.rbac import (
    Permission,
    Role,
    derive_permissions,
    has_permission,
    outranks,
)
from orgflow.models.employee import (
    DirectoryIssue,
    Employee,
    EmployeeCreate,
    OrgNodeAttributes,
    OrgTreeNode,
)
from orgflow.repositories.data_store import DirectoryStore
from orgflow.services.audit_service import EventLogger
from orgflow.services.id_generator import next_employee_id, numeric_id


logger = logging.getLogger(__name__)

SELF_REPORT_MESSAGE = "cannot report to self"
CYCLE_MESSAGE = "would create a cycle"
HAS_SUBORDINATES_MESSAGE = "cannot delete employee with subordinates; move them first"


def id_sort_key(employee_id: str) -> tuple[int, int, str]:
    value = numeric_id(employee_id)
    if value is None:
        return (1, 0, employee_id)
    return (0, value, employee_id)


def children_index(employees: Iterable[Employee]) -> dict[Optional[str], list[Employee]]:
    """Map each manager id (``None`` for roots) to its direct reports, lowest id first."""
    index: dict[Optional[str], list[Employee]] = {}
    for employee in employees:
        index.setdefault(employee.manager_id, []).append(employee)
    for reports in index.values():
        reports.sort(key=lambda e: id_sort_key(e.id))
    return index


def iter_ancestors(by_id: dict[str, Employee], employee_id: str) -> Iterator[str]:
    """Yield manager ids walking upward from ``employee_id``.

    Stops at a root, at a dangling reference, or on revisiting a node, so a
    corrupted import cannot loop forever.
    """
    seen = {employee_id}
    current = by_id.get(employee_id)
    while current is not None and current.manager_id is not None:
        manager_id = current.manager_id
        if manager_id in seen:
            return
        yield manager_id
        seen.add(manager_id)
        current = by_id.get(manager_id)


def would_create_cycle(
    by_id: dict[str, Employee],
    employee_id: str,
    new_manager_id: Optional[str],
) -> bool:
    if new_manager_id is None:
        return False
    if new_manager_id == employee_id:
        return True
    return any(a == employee_id for a in iter_ancestors(by_id, new_manager_id))


def find_cycles(employees: Iterable[Employee]) -> list[list[str]]:
    by_id = {e.id: e for e in employees}
    done: set[str] = set()
    cycles: list[list[str]] = []

    for start in sorted(by_id, key=id_sort_key):
        path: list[str] = []
        on_path: set[str] = set()
        current: Optional[str] = start
        while current is not None and current in by_id and current not in done:
            if current in on_path:
                cycles.append(path[path.index(current):])
                break
            path.append(current)
            on_path.add(current)
            current = by_id[current].manager_id
        done.update(path)

    return cycles


def validate_directory(employees: list[Employee]) -> list[DirectoryIssue]:
    issues: list[DirectoryIssue] = []
    seen: set[str] = set()
    for employee in employees:
        if employee.id in seen:
            issues.append(DirectoryIssue(employee_id=employee.id, problem="duplicate id"))
        seen.add(employee.id)

    for employee in employees:
        if employee.manager_id is None:
            continue
        if employee.manager_id == employee.id:
            issues.append(DirectoryIssue(employee_id=employee.id, problem=SELF_REPORT_MESSAGE))
        elif employee.manager_id not in seen:
            issues.append(
                DirectoryIssue(
                    employee_id=employee.id,
                    problem=f"manager {employee.manager_id} does not exist",
                )
            )

    for cycle in find_cycles(employees):
        if len(cycle) > 1:
            issues.append(
                DirectoryIssue(employee_id=cycle[0], problem="cycle: " + " -> ".join(cycle))
            )
    return issues


def _to_node(employee: Employee) -> OrgTreeNode:
    return OrgTreeNode(
        name=employee.full_name,
        attributes=OrgNodeAttributes(
            id=employee.id,
            position=employee.position,
            department=employee.department,
            nationality=employee.nationality,
            role=employee.role,
            avatar_url=employee.avatar_url,
        ),
    )


def find_root(employees: list[Employee], top_position_marker: str) -> Optional[Employee]:
    roots = sorted((e for e in employees if e.manager_id is None), key=lambda e: id_sort_key(e.id))
    if roots:
        return roots[0]
    marker = top_position_marker.lower()
    tops = sorted(
        (e for e in employees if marker and marker in e.position.lower()),
        key=lambda e: id_sort_key(e.id),
    )
    return tops[0] if tops else None


def build_tree(
    employees: Iterable[Employee],
    top_position_marker: Optional[str] = None,
) -> Optional[OrgTreeNode]:
    """Derive the org chart from ``managerId`` pointers.

    With several roots the lowest id wins; with none, the first employee whose
    position carries ``top_position_marker`` is used. Returns ``None`` for an
    empty directory or when no root can be found.
    """
    employees = list(employees)
    if not employees:
        return None

    marker = settings.top_position_marker if top_position_marker is None else top_position_marker
    root = find_root(employees, marker)
    if root is None:
        return None

    index = children_index(employees)
    root_node = _to_node(root)
    visited = {root.id}
    queue: deque[tuple[Employee, OrgTreeNode]] = deque([(root, root_node)])
    while queue:
        employee, node = queue.popleft()
        for report in index.get(employee.id, []):
            if report.id in visited:
                continue
            visited.add(report.id)
            child = _to_node(report)
            node.children.append(child)
            queue.append((report, child))
    return root_node


class HierarchyService:
    def __init__(
        self,
        directory: DirectoryStore,
        event_logger: EventLogger,
        top_position_marker: Optional[str] = None,
    ) -> None:
        self.directory = directory
        self.event_logger = event_logger
        self.top_position_marker = top_position_marker or settings.top_position_marker

    # -- reads ---------------------------------------------------------------

    def get_employee(self, employee_id: str) -> Employee:
        employee = self.directory.get(employee_id)
        if employee is None:
            raise NotFound(f"Employee {employee_id} not found")
        return employee

    def list_employees(self, actor: Employee) -> list[Employee]:
        perms = actor.permissions
        employees = sorted(self.directory.list(), key=lambda e: id_sort_key(e.id))
        if has_permission(perms, Permission.VIEW_ALL_EMPLOYEES) or has_permission(
            perms, Permission.MANAGE_ALL_EMPLOYEES
        ):
            return employees
        if has_permission(perms, Permission.MANAGE_DEPT_EMPLOYEES):
            return [e for e in employees if e.department == actor.department or e.id == actor.id]
        return [e for e in employees if e.id == actor.id]

    def view_employee(self, actor: Employee, employee_id: str) -> Employee:
        employee = self.get_employee(employee_id)
        if employee.id not in {e.id for e in self.list_employees(actor)}:
            raise PermissionDenied(f"Not allowed to view employee {employee_id}")
        return employee

    def direct_reports(self, employee_id: str) -> list[Employee]:
        self.get_employee(employee_id)
        return children_index(self.directory.list()).get(employee_id, [])

    def chain_of_command(self, employee_id: str) -> list[Employee]:
        """Managers from the direct manager up to the root."""
        by_id = {e.id: e for e in self.directory.list()}
        if employee_id not in by_id:
            raise NotFound(f"Employee {employee_id} not found")
        return [by_id[a] for a in iter_ancestors(by_id, employee_id) if a in by_id]

    def build_tree(self) -> Optional[OrgTreeNode]:
        return build_tree(self.directory.list(), self.top_position_marker)

    def get_org_chart(self, actor: Employee) -> Optional[OrgTreeNode]:
        if not has_permission(actor.permissions, Permission.VIEW_ORG_CHART):
            raise PermissionDenied("Not allowed to view the org chart")
        return self.build_tree()

    def next_employee_id(self) -> str:
        return next_employee_id(self.directory.ids())

    # -- mutations -----------------------------------------------------------

    def assign_manager(
        self,
        actor: Employee,
        employee_id: str,
        new_manager_id: Optional[str],
    ) -> Employee:
        """Re-parent ``employee_id`` under ``new_manager_id`` (``None`` makes it a root).

        Used both for attaching a new hire and for moving a whole subtree; the
        subtree follows its root because only one parent pointer changes.
        """
        new_manager_id = new_manager_id or None

        with self.directory.locked():
            by_id = {e.id: e for e in self.directory.list()}
            employee = by_id.get(employee_id)
            if employee is None:
                raise NotFound(f"Employee {employee_id} not found")
            if new_manager_id == employee_id:
                logger.warning("Rejected move of %s: %s", employee_id, SELF_REPORT_MESSAGE)
                raise InvalidOperation(SELF_REPORT_MESSAGE)

            departments = [employee.department]
            if new_manager_id is not None:
                new_manager = by_id.get(new_manager_id)
                if new_manager is None:
                    raise NotFound(f"Manager {new_manager_id} not found")
                departments.append(new_manager.department)

            self._authorize_manage(actor, *departments)
            if not outranks(actor.permissions, employee.permissions):
                raise PermissionDenied(f"Not allowed to move employee {employee_id}")

            if would_create_cycle(by_id, employee_id, new_manager_id):
                logger.warning(
                    "Rejected move of %s under %s: %s", employee_id, new_manager_id, CYCLE_MESSAGE
                )
                raise InvalidOperation(CYCLE_MESSAGE)

            previous_manager_id = employee.manager_id
            updated = employee.model_copy(update={"manager_id": new_manager_id})
            self.directory.put(updated)

        logger.info("MOVE %s -> %s", employee_id, new_manager_id)
        self.event_logger.log_event(
            event_type="hierarchy_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={
                "action": "manager_assigned",
                "employee_id": employee_id,
                "from_manager_id": previous_manager_id,
                "to_manager_id": new_manager_id,
            },
        )
        return updated

    def create_under_manager(
        self,
        actor: Employee,
        payload: EmployeeCreate,
        manager_id: Optional[str],
    ) -> Employee:
        manager_id = manager_id or None

        with self.directory.locked():
            departments = [payload.department]
            if manager_id is not None:
                manager = self.directory.get(manager_id)
                if manager is None:
                    raise NotFound(f"Manager {manager_id} not found")
                departments.append(manager.department)

            self._authorize_manage(actor, *departments)
            if not outranks(actor.permissions, derive_permissions(payload.role)):
                raise PermissionDenied(f"Not allowed to create an employee with role {payload.role.value}")

            employee = Employee(
                id=next_employee_id(self.directory.ids()),
                manager_id=manager_id,
                **payload.model_dump(),
            )
            self.directory.put(employee)

        logger.info("CREATE %s under %s", employee.id, manager_id)
        self.event_logger.log_event(
            event_type="hierarchy_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={
                "action": "employee_created",
                "employee_id": employee.id,
                "manager_id": manager_id,
                "role": employee.role.value,
            },
        )
        return employee

    def delete_node(self, actor: Employee, employee_id: str) -> None:
        with self.directory.locked():
            employees = self.directory.list()
            target = next((e for e in employees if e.id == employee_id), None)
            if target is None:
                raise NotFound(f"Employee {employee_id} not found")
            if target.id == actor.id:
                raise InvalidOperation("cannot delete yourself")

            self._authorize_manage(actor, target.department)
            if not outranks(actor.permissions, target.permissions):
                raise PermissionDenied(f"Not allowed to delete employee {employee_id}")

            if any(e.manager_id == employee_id for e in employees):
                logger.warning("Rejected delete of %s: %s", employee_id, HAS_SUBORDINATES_MESSAGE)
                raise InvalidOperation(HAS_SUBORDINATES_MESSAGE)

            self.directory.remove(employee_id)

        logger.info("DELETE %s", employee_id)
        self.event_logger.log_event(
            event_type="hierarchy_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={"action": "employee_deleted", "employee_id": employee_id},
        )

    def change_role(self, actor: Employee, employee_id: str, role: Role) -> Employee:
        role = Role(role)
        if not has_permission(actor.permissions, Permission.MANAGE_ALL_EMPLOYEES):
            raise PermissionDenied("Not allowed to change roles")

        with self.directory.locked():
            target = self.get_employee(employee_id)
            if target.id == actor.id:
                raise InvalidOperation("cannot change your own role")
            if not outranks(actor.permissions, target.permissions) or not outranks(
                actor.permissions, derive_permissions(role)
            ):
                raise PermissionDenied(f"Not allowed to assign role {role.value}")

            previous_role = target.role
            updated = target.model_copy(update={"role": role})
            self.directory.put(updated)

        logger.info("ROLE %s %s -> %s", employee_id, previous_role.value, role.value)
        self.event_logger.log_event(
            event_type="hierarchy_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={
                "action": "role_changed",
                "employee_id": employee_id,
                "from_role": previous_role.value,
                "to_role": role.value,
            },
        )
        return updated

    def import_directory(self, actor: Employee, employees: list[Employee]) -> int:
        """Replace the whole directory after checking ids, references and acyclicity."""
        if not has_permission(actor.permissions, Permission.MANAGE_ALL_EMPLOYEES):
            raise PermissionDenied("Not allowed to import the directory")

        issues = validate_directory(employees)
        if issues:
            summary = "; ".join(f"{i.employee_id}: {i.problem}" for i in issues[:5])
            raise InvalidOperation(f"directory import rejected ({len(issues)} issues): {summary}")

        with self.directory.locked():
            self.directory.replace_all(employees)

        logger.info("IMPORT %d employees", len(employees))
        self.event_logger.log_event(
            event_type="hierarchy_action",
            actor_id=actor.id,
            actor_role=actor.role,
            details={"action": "directory_imported", "count": len(employees)},
        )
        return len(employees)

    @staticmethod
    def _authorize_manage(actor: Employee, *departments: str) -> None:
        perms = actor.permissions
        if has_permission(perms, Permission.MANAGE_ALL_EMPLOYEES):
            return
        if has_permission(perms, Permission.MANAGE_DEPT_EMPLOYEES) and all(
            d == actor.department for d in departments
        ):
            return
        raise PermissionDenied("Not allowed to manage these employees")
