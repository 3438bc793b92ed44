from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from orgflow.core.rbac import Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class TokenData(BaseModel):
    employee_id: str
    role: Role
    department: Optional[str] = None


class Credential(BaseModel):
    username: str
    employee_id: str
    hashed_password: str
