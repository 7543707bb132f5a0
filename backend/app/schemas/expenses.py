from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.models.models import ExpenseCategory, ExpenseOwner

class ExpenseCreate(BaseModel):
    amount: float = Field(..., gt=0)
    category: ExpenseCategory
    description: Optional[str] = ""
    date: date
    child_id: Optional[str] = None  # Parents only: log the expense for one of their children

    @field_validator("category", mode="before")
    @classmethod
    def lower_category(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

class ExpenseResponse(BaseModel):
    id: str
    owner_id: str
    owner: ExpenseOwner  # {"kind": "parent"} or {"kind": "child", "child_id": ...}
    attributed_to_parent: bool
    attributed_to_child: bool
    on_behalf_of_parent_id: Optional[str] = None
    amount: float
    category: Optional[str] = None
    description: Optional[str] = None
    date: date
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total: float
    warnings: List[str] = []
