from typing import List

import structlog
from sqlalchemy.orm import Session

from backend.app.errors import NotAuthorized, NotFound
from backend.app.models.models import Attribution, Expense, UserRole
from backend.app.schemas.expenses import ExpenseCreate
from backend.app.services.provisioning_service import is_child_of
from backend.app.services.store import commit, store_read
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)

def log_expense(db: Session, ctx: SessionContext, expense_data: ExpenseCreate) -> Expense:
    """
    Record an expense for the caller.

    - A child always records against itself
    - A parent records against itself, or against one of its children when
      ``child_id`` is given (the parent is kept as on_behalf_of_parent_id)
    """
    principal = ctx.require_principal()

    if principal.role == UserRole.CHILD:
        if expense_data.child_id and expense_data.child_id != principal.id:
            raise NotAuthorized("Children can only log their own expenses")
        owner_id, attribution, on_behalf_of = principal.id, Attribution.CHILD, None
    elif principal.role == UserRole.PARENT:
        if expense_data.child_id:
            if not is_child_of(db, principal.id, expense_data.child_id):
                raise NotFound(f"Child with id {expense_data.child_id} not found")
            owner_id, attribution, on_behalf_of = expense_data.child_id, Attribution.CHILD, principal.id
        else:
            owner_id, attribution, on_behalf_of = principal.id, Attribution.PARENT, None
    else:
        raise NotAuthorized("Account has no profile")

    expense = Expense(
        owner_id=owner_id,
        attribution=attribution.value,
        on_behalf_of_parent_id=on_behalf_of,
        amount=expense_data.amount,
        category=expense_data.category.value,
        description=expense_data.description or "",
        date=expense_data.date,
    )
    db.add(expense)
    commit(db)
    db.refresh(expense)

    logger.info("expense_logged", expense_id=expense.id, owner_id=owner_id, attribution=attribution.value)
    return expense

def delete_expense(db: Session, ctx: SessionContext, expense_id: str) -> None:
    """Delete an expense owned by the caller or by one of the caller's children"""
    principal = ctx.require_principal()

    with store_read("expense"):
        expense = db.query(Expense).filter(Expense.id == expense_id).first()

    allowed = expense is not None and (
        expense.owner_id == principal.id
        or (principal.role == UserRole.PARENT and is_child_of(db, principal.id, expense.owner_id))
    )
    if not allowed:
        raise NotFound("Expense not found")

    db.delete(expense)
    commit(db)
    logger.info("expense_deleted", expense_id=expense_id, user_id=principal.id)

def fetch_owned_expenses(db: Session, owner_id: str) -> List[Expense]:
    """All expenses whose owner is ``owner_id``"""
    with store_read("expenses"):
        return db.query(Expense).filter(Expense.owner_id == owner_id).all()

def fetch_parent_attributed_expenses(db: Session, parent_id: str) -> List[Expense]:
    """A parent's own expenses, excluding anything it logged for a child"""
    with store_read("expenses"):
        return db.query(Expense).filter(
            Expense.owner_id == parent_id,
            Expense.attribution == Attribution.PARENT.value
        ).all()
