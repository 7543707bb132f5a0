from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, ConfigDict, Field

class ChildCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    display_name: str = Field(..., min_length=1)

class ChildCreated(BaseModel):
    child_id: str

class ChildResponse(BaseModel):
    """A membership record under the parent"""
    child_id: str
    email: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
