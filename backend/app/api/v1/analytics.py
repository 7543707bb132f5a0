from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.models.models import Timeframe
from backend.app.schemas.analytics import AnalyticsResponse
from backend.app.services.aggregation_service import build_analytics
from backend.app.session import SessionContext

router = APIRouter()

@router.get("/", response_model=AnalyticsResponse)
async def get_analytics(
    timeframe: Timeframe = Query(Timeframe.MONTH, description="week, month, year, custom or all"),
    start: Optional[date] = Query(None, description="Start of a custom range"),
    end: Optional[date] = Query(None, description="End of a custom range"),
    zero_fill: bool = Query(False, description="Include empty time buckets in the series"),
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Spending analytics for the caller over a timeframe:
    - Total and average per day
    - Breakdown by category, with the top three
    - Time series bucketed by weekday, day or month depending on the timeframe

    Partial results are returned with warnings when some children's
    expenses could not be loaded.
    """
    custom_range = (start, end) if timeframe == Timeframe.CUSTOM else None
    return await build_analytics(db, ctx, timeframe, custom_range, zero_fill)
