from __future__ import annotations

from datetime import timedelta
from threading import RLock
from typing import Optional

from orgflow.core.config import settings
from orgflow.core.errors import NotFound
from orgflow.core.rbac import Role
from orgflow.core.security import create_access_token, hash_password, verify_password
from orgflow.models.auth import Credential, Token
from orgflow.models.employee import Employee
from orgflow.repositories.data_store import DirectoryStore
from orgflow.services.audit_service import EventLogger


SEED_EMPLOYEES = [
    {
        "id": "10001",
        "manager_id": None,
        "full_name": "Fahad Aljaidi",
        "position": "CEO",
        "department": "Management",
        "email": "fahad@example.sa",
        "role": Role.OWNER,
        "username": "owner",
        "password": "owner123",
    },
    {
        "id": "10002",
        "manager_id": "10001",
        "full_name": "Noura Alharbi",
        "position": "HR Director",
        "department": "Human Resources",
        "email": "noura@example.sa",
        "role": Role.ADMIN,
        "username": "hr_admin",
        "password": "hr123",
    },
    {
        "id": "10003",
        "manager_id": "10001",
        "full_name": "Khalid Alqahtani",
        "position": "Operations Manager",
        "department": "Operations",
        "email": "khalid@example.sa",
        "role": Role.DEPT_MANAGER,
        "username": "ops_manager",
        "password": "manager123",
    },
    {
        "id": "10004",
        "manager_id": "10003",
        "full_name": "Sara Alotaibi",
        "position": "Operations Analyst",
        "department": "Operations",
        "email": "sara@example.sa",
        "role": Role.EMPLOYEE,
        "username": "emp_sara",
        "password": "employee123",
    },
    {
        "id": "10005",
        "manager_id": "10003",
        "full_name": "Omar Alshehri",
        "position": "Field Supervisor",
        "department": "Operations",
        "email": "omar@example.sa",
        "role": Role.EMPLOYEE,
        "username": "emp_omar",
        "password": "employee456",
    },
]


class AuthService:
    def __init__(
        self,
        directory: DirectoryStore,
        event_logger: EventLogger,
        seed: bool = True,
    ) -> None:
        self.directory = directory
        self.event_logger = event_logger
        self.lock = RLock()
        self.credentials: dict[str, Credential] = {}
        if seed:
            self._seed_directory()

    def _seed_directory(self) -> None:
        with self.directory.locked():
            seed_directory = len(self.directory) == 0
            for row in SEED_EMPLOYEES:
                if seed_directory:
                    employee = Employee(
                        **{k: v for k, v in row.items() if k not in {"username", "password"}}
                    )
                    self.directory.put(employee)
                if self.directory.get(row["id"]) is not None:
                    self.register(row["username"], row["id"], row["password"])

    def register(self, username: str, employee_id: str, password: str) -> Credential:
        credential = Credential(
            username=username,
            employee_id=employee_id,
            hashed_password=hash_password(password),
        )
        with self.lock:
            self.credentials[username] = credential
        return credential

    def authenticate(self, username: str, password: str) -> Optional[Employee]:
        with self.lock:
            credential = self.credentials.get(username)
        if not credential:
            return None
        if not verify_password(password, credential.hashed_password):
            return None
        return self.directory.get(credential.employee_id)

    def issue_token(self, employee: Employee) -> Token:
        token, expires_at = create_access_token(
            employee_id=employee.id,
            role=employee.role,
            department=employee.department,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        )
        self.event_logger.log_event(
            event_type="auth_login",
            actor_id=employee.id,
            actor_role=employee.role,
            details={"employee_id": employee.id},
        )
        return Token(access_token=token, expires_at=expires_at)

    def require_employee(self, employee_id: str) -> Employee:
        employee = self.directory.get(employee_id)
        if employee is None:
            raise NotFound(f"Employee {employee_id} not found")
        return employee
