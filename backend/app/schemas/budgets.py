from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.models import BudgetPeriod

class BudgetBase(BaseModel):
    amount: float = Field(..., gt=0)
    period: BudgetPeriod
    start_date: date

class BudgetCreate(BudgetBase):
    child_id: str
    end_date: Optional[date] = None  # Derived from period when omitted

class BudgetUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class BudgetInDB(BudgetBase):
    id: str
    owner_parent_id: str
    child_id: str
    end_date: date
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ActiveBudgetResponse(BaseModel):
    child_id: str
    budget: Optional[BudgetInDB] = None
    total_spent: float = 0.0
    spend_ratio: Optional[float] = None
    percent_used: Optional[int] = None
    status: Optional[str] = None  # success, warning or danger
