from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.models.models import MoneyRequest, RequestStatus
from backend.app.schemas.requests import MoneyRequestCreate, MoneyRequestResolve, MoneyRequestResponse
from backend.app.services.request_service import list_requests, resolve_request, send_request
from backend.app.session import SessionContext

router = APIRouter()

def _to_response(request: MoneyRequest, child_name: Optional[str] = None) -> MoneyRequestResponse:
    response = MoneyRequestResponse.model_validate(request)
    return response.model_copy(update={"child_name": child_name})

@router.post("/", response_model=MoneyRequestResponse)
async def send_request_route(
    request_data: MoneyRequestCreate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Send a money request to the signed-in child's parent.

    - Returns 403 when the caller is not a child linked to a parent
    - The request starts as "pending"
    """
    request = send_request(db, ctx, request_data.amount, request_data.reason)
    return _to_response(request, ctx.principal.display_name)

@router.get("/", response_model=List[MoneyRequestResponse])
async def list_requests_route(
    status: Optional[RequestStatus] = Query(None, description="Only requests with this status"),
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    List money requests, newest first.

    - Parents see requests addressed to them, with the child's name
    - Children see their own requests
    """
    return [_to_response(request, name) for request, name in list_requests(db, ctx, status)]

@router.put("/{request_id}", response_model=MoneyRequestResponse)
async def resolve_request_route(
    request_id: str,
    resolution: MoneyRequestResolve,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Approve or reject a pending request.

    - Returns 404 when the request is not from one of the caller's children
    - Returns 409 when the request was already resolved
    """
    request = resolve_request(db, ctx, request_id, resolution.decision, resolution.response_message)
    return _to_response(request)
