from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.models import RequestStatus

class RequestDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

class MoneyRequestCreate(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=5)

class MoneyRequestResolve(BaseModel):
    decision: RequestDecision
    response_message: Optional[str] = None

class MoneyRequestResponse(BaseModel):
    id: str
    child_id: str
    child_name: Optional[str] = None
    parent_id: str
    amount: float
    reason: str
    status: RequestStatus
    response_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
