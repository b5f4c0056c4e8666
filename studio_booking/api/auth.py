"""Staff authentication.

Tokens are issued by the admin portal; this service only verifies them.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from studio_booking.config import settings
from studio_booking.schemas.auth import StaffContext, TokenPayload

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = ("admin", "staff")


def create_access_token(staff_id: str, role: str = "staff", expires_in: timedelta = timedelta(hours=1)) -> str:
    """Create JWT access token the way the admin portal does"""
    payload = {
        "sub": staff_id,
        "role": role,
        "exp": datetime.utcnow() + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> StaffContext:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = TokenPayload(
            **jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        )
    except (JWTError, ValidationError):
        raise credentials_exception

    if payload.role not in STAFF_ROLES:
        raise credentials_exception

    return StaffContext(id=payload.sub, role=payload.role)


async def optional_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[StaffContext]:
    """Staff context when a bearer token is present, otherwise a customer request"""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


async def require_staff(
    staff: Optional[StaffContext] = Depends(optional_staff),
) -> StaffContext:
    if staff is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return staff


async def require_admin(staff: StaffContext = Depends(require_staff)) -> StaffContext:
    if not staff.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return staff
