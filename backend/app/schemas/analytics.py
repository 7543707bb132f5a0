from datetime import date
from typing import List, Optional
from pydantic import BaseModel

from backend.app.models.models import Timeframe, UserRole
from backend.app.schemas.budgets import BudgetInDB
from backend.app.schemas.expenses import ExpenseResponse

class CategoryTotal(BaseModel):
    name: str
    value: float

class TimeSeriesPoint(BaseModel):
    date: str  # Bucket label, e.g. "Mon", "Jan 05" or "Jan 2024"
    amount: float

class AnalyticsResponse(BaseModel):
    timeframe: Timeframe
    range_start: Optional[date] = None
    range_end: Optional[date] = None
    expense_count: int
    total: float
    average_per_day: float
    category_breakdown: List[CategoryTotal]
    top_categories: List[CategoryTotal]
    time_series: List[TimeSeriesPoint]
    warnings: List[str] = []

class SpendingSummary(BaseModel):
    recent_expenses: List[ExpenseResponse] = []
    total_spent: float = 0.0
    active_budget: Optional[BudgetInDB] = None
    spend_ratio: Optional[float] = None
    percent_used: Optional[int] = None
    budget_status: Optional[str] = None

class ChildSummary(SpendingSummary):
    child_id: str
    email: str
    display_name: Optional[str] = None

class DashboardResponse(SpendingSummary):
    role: UserRole
    children: List[ChildSummary] = []
    pending_requests: int = 0
    warnings: List[str] = []
