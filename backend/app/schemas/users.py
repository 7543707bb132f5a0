from datetime import datetime
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from typing import Optional

from backend.app.models.models import UserRole

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    display_name: str = Field(..., min_length=1)  # This enforces non-empty strings

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserUpdate(BaseModel):
    display_name: str = Field(..., min_length=1)

class PasswordUpdate(BaseModel):
    new_password: str = Field(..., min_length=6)

class UserResponse(BaseModel):
    id: str
    email: str
    display_name: Optional[str] = None
    role: UserRole
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SessionResponse(BaseModel):
    """Returned by register and login: the bearer token plus the profile"""
    token: str
    token_type: str = "bearer"
    user: UserResponse
