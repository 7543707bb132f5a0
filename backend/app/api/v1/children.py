from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from backend.app.api.v1.deps import get_session_context
from backend.app.database import get_db_session
from backend.app.schemas.children import ChildCreate, ChildCreated, ChildResponse
from backend.app.services.provisioning_service import create_child_account, list_children
from backend.app.session import SessionContext

router = APIRouter()

@router.post("/", response_model=ChildCreated)
async def create_child_route(
    child_data: ChildCreate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Create a child account under the signed-in parent.

    - Only parents may call this (403 otherwise)
    - 502 when creation failed and was rolled back
    - 500 when the account may be partially created
    - The caller stays signed in as the parent
    """
    child_id = create_child_account(db, ctx, child_data.email, child_data.password, child_data.display_name)
    return {"child_id": child_id}

@router.get("/", response_model=List[ChildResponse])
async def list_children_route(
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """List the signed-in parent's children"""
    return list_children(db, ctx)
