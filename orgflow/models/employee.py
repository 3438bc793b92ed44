from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from orgflow.core.rbac import PermissionSet, Role, derive_permissions


class CamelModel(BaseModel):
    """Base for records persisted with the camelCase keys of the stored layout."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmployeeBase(CamelModel):
    company_id: str = "COMP-001"
    full_name: str = Field(min_length=2, max_length=120)
    position: str = Field(min_length=2, max_length=120)
    department: str = Field(min_length=2, max_length=80)
    nationality: str = "Saudi Arabia"
    email: Optional[str] = None
    join_date: Optional[date] = None
    phone_number: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Role = Role.EMPLOYEE


class EmployeeCreate(EmployeeBase):
    pass


class Employee(EmployeeBase):
    model_config = ConfigDict(extra="ignore")

    id: str
    manager_id: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def permissions(self) -> PermissionSet:
        return derive_permissions(self.role)


class ManagerAssignment(CamelModel):
    manager_id: Optional[str] = None


class RoleChange(CamelModel):
    role: Role


class OrgNodeAttributes(CamelModel):
    id: str
    position: str
    department: str
    nationality: str
    role: Role
    avatar_url: Optional[str] = None


class OrgTreeNode(CamelModel):
    name: str
    attributes: OrgNodeAttributes
    children: list[OrgTreeNode] = Field(default_factory=list)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


class DirectoryIssue(CamelModel):
    employee_id: str
    problem: str
