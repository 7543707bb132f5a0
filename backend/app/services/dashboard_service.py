from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.errors import NotAuthorized
from backend.app.models.models import Budget, Expense, UserRole
from backend.app.services.aggregation_service import (
    active_budget_for, budget_status, load_expenses, percent_used, spend_ratio, spent_in_budget_window
)
from backend.app.services.budget_service import fetch_current_budgets
from backend.app.services.provisioning_service import get_memberships
from backend.app.services.request_service import count_pending_requests
from backend.app.session import SessionContext

def _summarize(
    expenses: List[Expense],
    budget: Optional[Budget],
    today: date,
    limit: int
) -> Dict[str, Any]:
    spent = spent_in_budget_window(expenses, budget, today)
    ratio = spend_ratio(spent, budget.amount) if budget else None
    return {
        "recent_expenses": expenses[:limit],
        "total_spent": spent,
        "active_budget": budget,
        "spend_ratio": ratio,
        "percent_used": percent_used(ratio),
        "budget_status": budget_status(ratio),
    }

def _owned_by(expenses: Iterable[Expense], owner_id: str) -> List[Expense]:
    return [expense for expense in expenses if expense.owner_id == owner_id]

async def build_dashboard(db: Session, ctx: SessionContext, now: Optional[date] = None) -> Dict[str, Any]:
    """
    Dashboard data for the caller.

    - Child: recent expenses, its active budget and the spending against it
    - Parent: the same summary for every child, the parent's own spending
      this month, and the number of pending money requests
    """
    principal = ctx.require_principal()
    today = now or date.today()
    limit = get_settings().recent_expenses_limit

    expense_set = await load_expenses(db, ctx)

    if principal.role == UserRole.CHILD:
        budgets = fetch_current_budgets(db, [principal.id], today)
        summary = _summarize(expense_set.expenses, active_budget_for(principal.id, budgets, today), today, limit)
        return {"role": principal.role, **summary, "warnings": expense_set.warnings}

    if principal.role != UserRole.PARENT:
        raise NotAuthorized("Account has no profile")

    memberships = get_memberships(db, principal.id)
    budgets = fetch_current_budgets(db, [m.child_id for m in memberships], today)

    children = []
    for membership in memberships:
        child_expenses = [e for e in _owned_by(expense_set, membership.child_id) if e.attributed_to_child]
        budget = active_budget_for(membership.child_id, budgets, today)
        children.append({
            "child_id": membership.child_id,
            "email": membership.email,
            "display_name": membership.display_name,
            **_summarize(child_expenses, budget, today, limit),
        })

    own = [e for e in _owned_by(expense_set, principal.id) if e.attributed_to_parent]
    summary = _summarize(own, None, today, limit)
    summary["recent_expenses"] = expense_set.expenses[:limit]

    return {
        "role": principal.role,
        **summary,
        "children": children,
        "pending_requests": count_pending_requests(db, principal.id),
        "warnings": expense_set.warnings,
    }
