"""
Expense/budget aggregation.

Assembles the expense set a principal may see, then filters and summarizes
it for dashboards and analytics. Everything past ``load_expenses`` is a pure
function over request-scoped copies of the records.
"""

import asyncio
import calendar
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.orm import Session, sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from backend.app.config import get_settings
from backend.app.errors import (
    ChildFetchFailure, NotAuthorized, PartialAggregationFailure, UpstreamUnavailable, ValidationError
)
from backend.app.models.models import Budget, Expense, Timeframe, UserRole
from backend.app.services.expense_service import fetch_owned_expenses, fetch_parent_attributed_expenses
from backend.app.services.provisioning_service import get_memberships
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)

OTHER_CATEGORY = "Other"

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

DateRange = Tuple[date, date]


class ExpenseSet:
    """Expenses visible to a principal, plus any per-child fetch failures"""

    def __init__(self, expenses: List[Expense], failures: Optional[List[ChildFetchFailure]] = None):
        self.expenses = expenses
        self.failures = failures or []

    @property
    def partial_failure(self) -> Optional[PartialAggregationFailure]:
        if not self.failures:
            return None
        return PartialAggregationFailure(self.failures)

    @property
    def warnings(self) -> List[str]:
        return [failure.message for failure in self.failures]

    def __iter__(self):
        return iter(self.expenses)

    def __len__(self):
        return len(self.expenses)


# --- Loading ---

# Reads are idempotent, so a transient failure earns exactly one more attempt.
_retry_read_once = retry(
    stop=stop_after_attempt(2),
    retry=retry_if_exception_type(UpstreamUnavailable),
    reraise=True,
)


@_retry_read_once
async def _read_owned_expenses(db: Session, owner_id: str) -> List[Expense]:
    return fetch_owned_expenses(db, owner_id)


@_retry_read_once
async def _read_parent_expenses(db: Session, parent_id: str) -> List[Expense]:
    return fetch_parent_attributed_expenses(db, parent_id)


def _fetch_in_own_session(bind, owner_id: str) -> List[Expense]:
    # A Session must not cross threads; each worker reads through its own.
    session = sessionmaker(bind=bind)()
    try:
        return fetch_owned_expenses(session, owner_id)
    finally:
        session.close()


@_retry_read_once
async def _read_child_expenses(bind, child_id: str) -> List[Expense]:
    return await asyncio.to_thread(_fetch_in_own_session, bind, child_id)


async def load_expenses(db: Session, ctx: SessionContext, max_concurrency: Optional[int] = None) -> ExpenseSet:
    """
    Return the expenses the caller may see, newest first.

    A child sees every expense it owns. A parent sees its own parent-attributed
    expenses plus every expense owned by each child in its membership records.
    Child queries run in worker threads, at most ``max_concurrency`` at a
    time, each with its own Session on the same engine. A child whose query
    still fails after one retry is reported in ``ExpenseSet.failures``
    instead of failing the whole load.
    """
    principal = ctx.require_principal()

    if principal.role == UserRole.CHILD:
        return ExpenseSet(sort_expenses(await _read_owned_expenses(db, principal.id)))

    if principal.role != UserRole.PARENT:
        raise NotAuthorized("Account has no profile")

    own = await _read_parent_expenses(db, principal.id)
    child_ids = [membership.child_id for membership in get_memberships(db, principal.id)]

    bind = db.get_bind()
    limit = max_concurrency or get_settings().max_concurrent_child_queries
    semaphore = asyncio.Semaphore(max(1, limit))

    async def fetch_child(child_id: str):
        async with semaphore:
            try:
                return await _read_child_expenses(bind, child_id), None
            except Exception as exc:
                logger.warning("child_expenses_fetch_failed", parent_id=principal.id, child_id=child_id, error=str(exc))
                return [], ChildFetchFailure(child_id, exc)

    results = await asyncio.gather(*(fetch_child(child_id) for child_id in child_ids))

    by_id: Dict[str, Expense] = {expense.id: expense for expense in own}
    failures: List[ChildFetchFailure] = []
    for expenses, failure in results:
        if failure:
            failures.append(failure)
        for expense in expenses:
            by_id[expense.id] = expense

    logger.debug("expenses_loaded", user_id=principal.id, count=len(by_id), failed_children=len(failures))
    return ExpenseSet(sort_expenses(by_id.values()), failures)


def sort_expenses(expenses: Iterable[Expense]) -> List[Expense]:
    """Most recent first; ties ordered by id so pagination stays stable"""
    return sorted(sorted(expenses, key=lambda e: e.id), key=lambda e: _day(e.date), reverse=True)


# --- Timeframes ---

def _day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _today(now=None) -> date:
    if now is None:
        return date.today()
    return _day(now)


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole months, clamping to the last day of the target month"""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def timeframe_window(timeframe: Timeframe, custom_range: Optional[DateRange] = None, now=None) -> Optional[DateRange]:
    """
    Inclusive ``(start, end)`` for a timeframe; None for ``all``.

    ``week`` is the last 7 calendar days including today (one bucket per
    weekday), ``month`` goes 30 days back from today and ``year`` 12 calendar
    months back.
    """
    timeframe = Timeframe(timeframe)
    today = _today(now)

    if timeframe == Timeframe.ALL:
        return None
    if timeframe == Timeframe.CUSTOM:
        if not custom_range or custom_range[0] is None or custom_range[1] is None:
            raise ValidationError("A custom timeframe requires both a start and an end date")
        start, end = _day(custom_range[0]), _day(custom_range[1])
        if start > end:
            raise ValidationError("Custom range start must not be after its end")
        return start, end
    if timeframe == Timeframe.WEEK:
        return today - timedelta(days=6), today
    if timeframe == Timeframe.MONTH:
        return today - timedelta(days=30), today
    return shift_months(today, -12), today


def filter_by_timeframe(
    expenses: Sequence[Expense],
    timeframe: Timeframe,
    custom_range: Optional[DateRange] = None,
    now=None,
) -> List[Expense]:
    """Expenses whose date lies inside the timeframe window, bounds included"""
    window = timeframe_window(timeframe, custom_range, now)
    if window is None:
        return list(expenses)
    start, end = window
    return [expense for expense in expenses if start <= _day(expense.date) <= end]


def average_per_day(total: float, timeframe: Timeframe, custom_range: Optional[DateRange] = None) -> float:
    timeframe = Timeframe(timeframe)
    if timeframe == Timeframe.WEEK:
        days = 7
    elif timeframe == Timeframe.MONTH:
        days = 30
    elif timeframe == Timeframe.YEAR:
        days = 365
    elif custom_range:
        days = max(1, (_day(custom_range[1]) - _day(custom_range[0])).days)
    else:
        days = 1
    return total / days


# --- Summaries ---

def total_amount(expenses: Iterable[Expense]) -> float:
    return sum(expense.amount for expense in expenses)


def aggregate_by_category(expenses: Iterable[Expense]) -> Dict[str, float]:
    """Summed amount per category label; a missing category counts as "Other" """
    totals: Dict[str, float] = {}
    for expense in expenses:
        label = expense.category or OTHER_CATEGORY
        totals[label] = totals.get(label, 0.0) + expense.amount
    return totals


def top_categories(totals: Dict[str, float], limit: int = 3) -> List[Tuple[str, float]]:
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)[:limit]


def bucket_key(day: date, timeframe: Timeframe) -> str:
    timeframe = Timeframe(timeframe)
    if timeframe == Timeframe.WEEK:
        return _WEEKDAYS[day.weekday()]
    if timeframe == Timeframe.MONTH:
        return f"{_MONTHS[day.month - 1]} {day.day:02d}"
    return f"{_MONTHS[day.month - 1]} {day.year}"


def aggregate_by_time_bucket(
    expenses: Sequence[Expense],
    timeframe: Timeframe,
    zero_fill: bool = False,
    custom_range: Optional[DateRange] = None,
    now=None,
) -> Dict[str, float]:
    """
    Summed amount per time bucket, keys in chronological order.

    Buckets without expenses are left out unless ``zero_fill`` is set, in
    which case every bucket of the timeframe window appears (for ``all``, the
    span between the oldest and newest expense).
    """
    buckets: Dict[str, float] = {}

    if zero_fill:
        window = timeframe_window(timeframe, custom_range, now)
        if window is None and expenses:
            days = [_day(expense.date) for expense in expenses]
            window = min(days), max(days)
        if window is not None:
            day, end = window
            while day <= end:
                buckets.setdefault(bucket_key(day, timeframe), 0.0)
                day += timedelta(days=1)

    for expense in sorted(expenses, key=lambda e: _day(e.date)):
        key = bucket_key(_day(expense.date), timeframe)
        buckets[key] = buckets.get(key, 0.0) + expense.amount
    return buckets


# --- Budgets ---

def active_budget_for(child_id: str, budgets: Iterable[Budget], now=None) -> Optional[Budget]:
    """First budget of the child whose period contains today, else None"""
    today = _today(now)
    for budget in budgets:
        if budget.child_id == child_id and _day(budget.start_date) <= today <= _day(budget.end_date):
            return budget
    return None


def spend_ratio(total_spent: float, budget_amount: float) -> Optional[float]:
    """Spent / budget; None when there is no budget amount to divide by"""
    if not budget_amount:
        return None
    return total_spent / budget_amount


def budget_status(ratio: Optional[float]) -> Optional[str]:
    if ratio is None:
        return None
    if ratio > 0.9:
        return "danger"
    if ratio > 0.7:
        return "warning"
    return "success"


def percent_used(ratio: Optional[float]) -> Optional[int]:
    if ratio is None:
        return None
    return round(ratio * 100)


def spent_in_budget_window(expenses: Iterable[Expense], budget: Optional[Budget], now=None) -> float:
    """
    Spending counted against a budget.

    With a budget, the expenses inside its period; without one, the current
    calendar month.
    """
    if budget is not None:
        start, end = _day(budget.start_date), _day(budget.end_date)
    else:
        today = _today(now)
        start = today.replace(day=1)
        end = shift_months(start, 1) - timedelta(days=1)
    return total_amount(e for e in expenses if start <= _day(e.date) <= end)


# --- Analytics ---

async def build_analytics(
    db: Session,
    ctx: SessionContext,
    timeframe: Timeframe = Timeframe.MONTH,
    custom_range: Optional[DateRange] = None,
    zero_fill: bool = False,
    now=None,
) -> Dict:
    """Totals, category breakdown and time series for the caller's expenses"""
    timeframe = Timeframe(timeframe)
    window = timeframe_window(timeframe, custom_range, now)

    expense_set = await load_expenses(db, ctx)
    filtered = filter_by_timeframe(expense_set.expenses, timeframe, custom_range, now)

    total = total_amount(filtered)
    categories = aggregate_by_category(filtered)
    series = aggregate_by_time_bucket(filtered, timeframe, zero_fill=zero_fill, custom_range=custom_range, now=now)

    return {
        "timeframe": timeframe,
        "range_start": window[0] if window else None,
        "range_end": window[1] if window else None,
        "expense_count": len(filtered),
        "total": total,
        "average_per_day": average_per_day(total, timeframe, window),
        "category_breakdown": [{"name": name, "value": value} for name, value in categories.items()],
        "top_categories": [{"name": name, "value": value} for name, value in top_categories(categories)],
        "time_series": [{"date": key, "amount": amount} for key, amount in series.items()],
        "warnings": expense_set.warnings,
    }
