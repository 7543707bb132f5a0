from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from backend.app.errors import InvalidState, NotAuthorized, NotFound, ValidationError
from backend.app.models.models import MoneyRequest, RequestStatus, UserRole
from backend.app.schemas.requests import RequestDecision
from backend.app.services.provisioning_service import get_memberships, is_child_of
from backend.app.services.store import commit, store_read
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)

MIN_REASON_LENGTH = 5
UNKNOWN_CHILD = "Unknown Child"

_DECISION_STATUS = {
    RequestDecision.APPROVE: RequestStatus.APPROVED,
    RequestDecision.REJECT: RequestStatus.REJECTED,
}

# Create a new money request
def send_request(db: Session, ctx: SessionContext, amount: float, reason: str) -> MoneyRequest:
    """Create a pending request from the calling child to its parent"""
    principal = ctx.require_principal()
    if not principal.parent_id:
        raise NotAuthorized("Only child accounts linked to a parent can send money requests")

    if amount is None or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    if not reason or len(reason.strip()) < MIN_REASON_LENGTH:
        raise ValidationError(f"Reason must be at least {MIN_REASON_LENGTH} characters")

    request = MoneyRequest(
        child_id=principal.id,
        parent_id=principal.parent_id,
        amount=amount,
        reason=reason.strip(),
        status=RequestStatus.PENDING.value,
    )
    db.add(request)
    commit(db)
    db.refresh(request)

    logger.info("money_request_sent", request_id=request.id, child_id=principal.id, amount=amount)
    return request

# Approve or reject
def resolve_request(
    db: Session,
    ctx: SessionContext,
    request_id: str,
    decision: RequestDecision,
    response_message: Optional[str] = None
) -> MoneyRequest:
    """
    Approve or reject a pending request addressed to the calling parent.

    The transition happens once: the update only matches while the row is
    still pending, so a repeated or concurrent resolution gets InvalidState
    instead of overwriting the first decision.
    """
    parent = ctx.require_parent("resolve money requests")
    new_status = _DECISION_STATUS[RequestDecision(decision)]

    with store_read("money request"):
        request = db.query(MoneyRequest).filter(MoneyRequest.id == request_id).first()
    if not request or request.parent_id != parent.id or not is_child_of(db, parent.id, request.child_id):
        raise NotFound("Money request not found")

    if request.status != RequestStatus.PENDING.value:
        raise InvalidState(f"This request has already been {request.status}")

    updated = db.query(MoneyRequest).filter(
        MoneyRequest.id == request_id,
        MoneyRequest.status == RequestStatus.PENDING.value
    ).update(
        {
            MoneyRequest.status: new_status.value,
            MoneyRequest.response_message: response_message,
            MoneyRequest.updated_at: datetime.utcnow(),
        },
        synchronize_session=False
    )
    if updated == 0:
        db.rollback()
        raise InvalidState("This request has already been resolved")

    commit(db)
    db.refresh(request)

    logger.info("money_request_resolved", request_id=request_id, parent_id=parent.id, status=new_status.value)
    return request

# List requests visible to the caller
def list_requests(
    db: Session,
    ctx: SessionContext,
    status: Optional[RequestStatus] = None
) -> List[Tuple[MoneyRequest, Optional[str]]]:
    """
    Requests visible to the caller, newest first, each paired with the
    requesting child's display name.
    """
    principal = ctx.require_principal()

    query = db.query(MoneyRequest)
    if principal.role == UserRole.PARENT:
        query = query.filter(MoneyRequest.parent_id == principal.id)
        names: Dict[str, Optional[str]] = {
            membership.child_id: membership.display_name for membership in get_memberships(db, principal.id)
        }
    elif principal.role == UserRole.CHILD:
        query = query.filter(MoneyRequest.child_id == principal.id)
        names = {principal.id: principal.display_name}
    else:
        raise NotAuthorized("Account has no profile")

    if status:
        query = query.filter(MoneyRequest.status == RequestStatus(status).value)

    with store_read("money requests"):
        requests = query.order_by(MoneyRequest.created_at.desc(), MoneyRequest.id).all()

    return [(request, names.get(request.child_id) or UNKNOWN_CHILD) for request in requests]

def count_pending_requests(db: Session, parent_id: str) -> int:
    with store_read("money requests"):
        return db.query(MoneyRequest).filter(
            MoneyRequest.parent_id == parent_id,
            MoneyRequest.status == RequestStatus.PENDING.value
        ).count()
