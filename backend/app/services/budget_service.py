from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from backend.app.errors import NotAuthorized, NotFound, ValidationError
from backend.app.models.models import Budget, BudgetPeriod, UserRole
from backend.app.schemas.budgets import BudgetCreate, BudgetUpdate
from backend.app.services.aggregation_service import (
    active_budget_for, budget_status, percent_used, shift_months, spend_ratio, spent_in_budget_window
)
from backend.app.services.expense_service import fetch_owned_expenses
from backend.app.services.provisioning_service import is_child_of
from backend.app.services.store import commit, store_read
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)

def default_end_date(start_date: date, period: BudgetPeriod) -> date:
    """Last day of a budget period starting on ``start_date``"""
    period = BudgetPeriod(period)
    if period == BudgetPeriod.WEEKLY:
        return start_date + timedelta(days=6)
    if period == BudgetPeriod.MONTHLY:
        return shift_months(start_date, 1) - timedelta(days=1)
    return shift_months(start_date, 12) - timedelta(days=1)

def create_budget(db: Session, ctx: SessionContext, budget: BudgetCreate) -> Budget:
    """Create a budget for one of the calling parent's children"""
    parent = ctx.require_parent("create budgets")
    if not is_child_of(db, parent.id, budget.child_id):
        raise NotFound(f"Child with id {budget.child_id} not found")

    end_date = budget.end_date or default_end_date(budget.start_date, budget.period)
    if budget.start_date > end_date:
        raise ValidationError("Budget start date must not be after its end date")

    db_budget = Budget(
        owner_parent_id=parent.id,
        child_id=budget.child_id,
        amount=budget.amount,
        period=budget.period.value,
        start_date=budget.start_date,
        end_date=end_date
    )
    db.add(db_budget)
    commit(db)
    db.refresh(db_budget)

    logger.info("budget_created", budget_id=db_budget.id, child_id=budget.child_id, amount=budget.amount)
    return db_budget

def list_budgets(db: Session, ctx: SessionContext, child_id: Optional[str] = None) -> List[Budget]:
    """Budgets a parent owns (optionally for one child), or a child's own budgets"""
    principal = ctx.require_principal()

    query = db.query(Budget)
    if principal.role == UserRole.PARENT:
        query = query.filter(Budget.owner_parent_id == principal.id)
        if child_id:
            query = query.filter(Budget.child_id == child_id)
    elif principal.role == UserRole.CHILD:
        if child_id and child_id != principal.id:
            raise NotAuthorized("Children can only view their own budgets")
        query = query.filter(Budget.child_id == principal.id)
    else:
        raise NotAuthorized("Account has no profile")

    with store_read("budgets"):
        return query.order_by(Budget.start_date.desc(), Budget.id).all()

def update_budget(db: Session, ctx: SessionContext, budget_id: str, budget_update: BudgetUpdate) -> Budget:
    """
    Update a budget owned by the calling parent.

    No version check: concurrent updates from two devices race and the last
    write wins.
    """
    parent = ctx.require_parent("update budgets")
    with store_read("budget"):
        budget = db.query(Budget).filter(Budget.id == budget_id).first()
    if not budget or budget.owner_parent_id != parent.id:
        raise NotFound("Budget not found")

    previous_amount = budget.amount
    update_data = budget_update.model_dump(exclude_unset=True)
    start_date = update_data.get("start_date") or budget.start_date
    end_date = update_data.get("end_date") or budget.end_date
    if start_date > end_date:
        raise ValidationError("Budget start date must not be after its end date")

    for key, value in update_data.items():
        if value is None:
            continue
        if key == "period":
            value = BudgetPeriod(value).value
        setattr(budget, key, value)

    commit(db)
    db.refresh(budget)

    logger.info("budget_updated", budget_id=budget_id, previous_amount=previous_amount, new_amount=budget.amount)
    return budget

def fetch_current_budgets(db: Session, child_ids: Sequence[str], today: date) -> List[Budget]:
    """Budgets of the given children whose period contains ``today``"""
    if not child_ids:
        return []
    with store_read("budgets"):
        return db.query(Budget).filter(
            Budget.child_id.in_(list(child_ids)),
            Budget.start_date <= today,
            Budget.end_date >= today
        ).order_by(Budget.created_at, Budget.id).all()

def get_active_budget(db: Session, ctx: SessionContext, child_id: str, now: Optional[date] = None) -> Dict[str, Any]:
    """Active budget of a child with the spending counted against it"""
    principal = ctx.require_principal()
    if principal.role == UserRole.CHILD:
        if child_id != principal.id:
            raise NotAuthorized("Children can only view their own budget")
    elif not is_child_of(db, principal.id, child_id):
        raise NotFound(f"Child with id {child_id} not found")

    today = now or date.today()
    budget = active_budget_for(child_id, fetch_current_budgets(db, [child_id], today), today)
    spent = spent_in_budget_window(fetch_owned_expenses(db, child_id), budget, today)
    ratio = spend_ratio(spent, budget.amount) if budget else None

    return {
        "child_id": child_id,
        "budget": budget,
        "total_spent": spent,
        "spend_ratio": ratio,
        "percent_used": percent_used(ratio),
        "status": budget_status(ratio),
    }
