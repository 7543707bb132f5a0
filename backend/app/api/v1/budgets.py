from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.schemas.budgets import ActiveBudgetResponse, BudgetCreate, BudgetInDB, BudgetUpdate
from backend.app.services.budget_service import create_budget, get_active_budget, list_budgets, update_budget
from backend.app.session import SessionContext

router = APIRouter()

@router.post("/", response_model=BudgetInDB)
def create_budget_endpoint(
    budget_data: BudgetCreate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Create a budget for one of the parent's children
    """
    return create_budget(db, ctx, budget_data)

@router.get("/", response_model=List[BudgetInDB])
def list_budgets_endpoint(
    child_id: Optional[str] = Query(None, description="Only budgets of this child"),
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Get the budgets visible to the caller
    """
    return list_budgets(db, ctx, child_id)

@router.get("/active/{child_id}", response_model=ActiveBudgetResponse)
def get_active_budget_endpoint(
    child_id: str,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Get a child's active budget and how much of it is spent
    """
    return get_active_budget(db, ctx, child_id)

@router.patch("/{budget_id}", response_model=BudgetInDB)
def update_budget_endpoint(
    budget_id: str,
    budget_update: BudgetUpdate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Update an existing budget
    """
    return update_budget(db, ctx, budget_id, budget_update)
