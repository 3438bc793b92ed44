from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from orgflow.core.config import settings
from orgflow.core.rbac import Role
from orgflow.models.auth import TokenData


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    employee_id: str,
    role: Role,
    department: Optional[str] = None,
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {
        "sub": employee_id,
        "role": Role(role).value,
        "iat": issued_at,
        "exp": expire,
    }
    if department:
        claims["dept"] = department
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm), expire


def decode_access_token(token: str) -> TokenData:
    """Verify the signature and expiry of ``token`` and return its claims.

    Raises ``ValueError`` for anything that is not a usable employee token.
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        return TokenData(
            employee_id=claims["sub"],
            role=claims["role"],
            department=claims.get("dept"),
        )
    except (KeyError, ValueError) as exc:
        raise ValueError("Malformed token claims") from exc
