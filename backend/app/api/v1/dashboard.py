from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.schemas.analytics import DashboardResponse
from backend.app.services.dashboard_service import build_dashboard
from backend.app.session import SessionContext

router = APIRouter()

@router.get("/", response_model=DashboardResponse)
async def get_dashboard(
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Dashboard for the signed-in user.

    Children get their recent expenses and active budget; parents get a
    summary per child plus their own spending and pending request count.
    """
    return await build_dashboard(db, ctx)
