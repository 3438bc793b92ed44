from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from orgflow.api.deps import get_current_employee
from orgflow.models.auth import Token
from orgflow.models.employee import Employee
from orgflow.services.container import auth_service


router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/token", response_model=Token)
def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()) -> Token:
    employee = auth_service.authenticate(form_data.username, form_data.password)
    if not employee:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_service.issue_token(employee)


@router.get("/me", response_model=Employee)
def read_me(current_employee: Employee = Depends(get_current_employee)) -> Employee:
    return current_employee
