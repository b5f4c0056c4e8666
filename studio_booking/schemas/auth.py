"""Authentication schemas"""

from datetime import datetime
from pydantic import BaseModel


class TokenPayload(BaseModel):
    """JWT token payload issued by the admin portal"""
    sub: str  # Staff ID
    role: str  # admin, staff
    exp: datetime


class StaffContext(BaseModel):
    """Authenticated staff member acting on a request"""
    id: str
    role: str = "staff"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
