from collections.abc import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from orgflow.core.errors import NotFound
from orgflow.core.rbac import Permission, has_permission
from orgflow.core.security import decode_access_token
from orgflow.models.employee import Employee
from orgflow.services.container import auth_service


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_employee(token: str = Depends(oauth2_scheme)) -> Employee:
    try:
        claims = decode_access_token(token)
    except ValueError as exc:
        raise _unauthorized("Could not validate credentials") from exc

    try:
        employee = auth_service.require_employee(claims.employee_id)
    except NotFound as exc:
        raise _unauthorized("Employee not found") from exc

    # Permissions always come from the directory; a token minted before a
    # role change is no longer honoured.
    if claims.role is not employee.role:
        raise _unauthorized("Token role is out of date")
    return employee


def require_permission(permission: Permission) -> Callable[[Employee], Employee]:
    def dependency(employee: Employee = Depends(get_current_employee)) -> Employee:
        if not has_permission(employee.permissions, permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return employee

    return dependency
