import os
import tempfile

# Point the data directory somewhere disposable before orgflow reads its settings.
os.environ.setdefault("ORGFLOW_DATA_DIR", tempfile.mkdtemp(prefix="orgflow-tests-"))
os.environ.setdefault("ORGFLOW_PERSIST", "false")

import pytest  # noqa: E402

from orgflow.core.rbac import Role  # noqa: E402
from orgflow.models.employee import Employee  # noqa: E402
from orgflow.repositories.data_store import DirectoryStore, RequestStore  # noqa: E402
from orgflow.services.approval_service import ApprovalService  # noqa: E402
from orgflow.services.audit_service import EventLogger  # noqa: E402
from orgflow.services.hierarchy_service import HierarchyService  # noqa: E402


def make_employee(
    employee_id: str,
    role: Role = Role.EMPLOYEE,
    manager_id=None,
    department: str = "Operations",
    position: str = "Analyst",
) -> Employee:
    return Employee(
        id=employee_id,
        manager_id=manager_id,
        full_name=f"Employee {employee_id}",
        position=position,
        department=department,
        role=role,
    )


@pytest.fixture
def event_logger(tmp_path):
    return EventLogger(tmp_path / "events.jsonl")


@pytest.fixture
def directory():
    return DirectoryStore(lock_timeout=1.0)


@pytest.fixture
def request_store():
    return RequestStore(lock_timeout=1.0)


@pytest.fixture
def hierarchy(directory, event_logger):
    return HierarchyService(directory=directory, event_logger=event_logger)


@pytest.fixture
def approvals(request_store, directory, event_logger):
    return ApprovalService(requests=request_store, directory=directory, event_logger=event_logger)


@pytest.fixture
def org(directory):
    """E1 (owner, CEO) -> E2 (department manager) -> E3 (employee)."""
    people = {
        "E1": make_employee("10001", Role.OWNER, None, "Management", "CEO"),
        "E2": make_employee("10002", Role.DEPT_MANAGER, "10001", "Operations", "Operations Manager"),
        "E3": make_employee("10003", Role.EMPLOYEE, "10002", "Operations", "Analyst"),
    }
    for employee in people.values():
        directory.put(employee)
    return people


@pytest.fixture
def staff(directory, org):
    """The three-person org plus an HR admin and a second operations employee."""
    people = dict(org)
    people["ADMIN"] = make_employee("10004", Role.ADMIN, "10001", "Human Resources", "HR Director")
    people["E5"] = make_employee("10005", Role.EMPLOYEE, "10002", "Operations", "Supervisor")
    people["SALES"] = make_employee("10006", Role.EMPLOYEE, "10001", "Sales", "Account Executive")
    for key in ("ADMIN", "E5", "SALES"):
        directory.put(people[key])
    return people
