from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.models.models import Timeframe
from backend.app.schemas.expenses import ExpenseCreate, ExpenseListResponse, ExpenseResponse
from backend.app.services.aggregation_service import filter_by_timeframe, load_expenses, total_amount
from backend.app.services.expense_service import delete_expense, log_expense
from backend.app.session import SessionContext

router = APIRouter()

@router.post("/", response_model=ExpenseResponse)
async def log_expense_route(
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Log an expense.

    - Children log their own expenses
    - Parents log their own, or set child_id to log for one of their children
    """
    return log_expense(db, ctx, expense_data)

@router.get("/", response_model=ExpenseListResponse)
async def list_expenses_route(
    timeframe: Timeframe = Query(Timeframe.ALL, description="week, month, year, custom or all"),
    start: Optional[date] = Query(None, description="Start of a custom range"),
    end: Optional[date] = Query(None, description="End of a custom range"),
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    List the expenses visible to the caller, newest first.

    - A parent sees its own expenses and all of its children's
    - Children whose expenses could not be loaded are listed in warnings
    """
    expense_set = await load_expenses(db, ctx)
    expenses = filter_by_timeframe(expense_set.expenses, timeframe, (start, end) if timeframe == Timeframe.CUSTOM else None)
    return {
        "expenses": expenses,
        "total": total_amount(expenses),
        "warnings": expense_set.warnings,
    }

@router.delete("/{expense_id}", status_code=204)
async def delete_expense_route(
    expense_id: str,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """Delete an expense"""
    delete_expense(db, ctx, expense_id)
