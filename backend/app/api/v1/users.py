from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.v1.deps import get_session_context
from backend.app.schemas.users import (
    LoginRequest, PasswordUpdate, RegisterRequest, SessionResponse, UserResponse, UserUpdate
)
from backend.app.services.user_service import (
    get_profile, login, logout, register_parent, update_password, update_profile
)
from backend.app.database import get_db_session
from backend.app.session import SessionContext

router = APIRouter()

@router.post("/register", response_model=SessionResponse)
async def register_route(
    user_data: RegisterRequest,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Register a parent account.

    - Checks if a user with this email already exists
    - Creates the parent's identity and profile
    - Returns a session token; the new parent is signed in
    """
    token = register_parent(db, ctx, user_data)
    return {"token": token, "user": get_profile(db, ctx)}

@router.post("/login", response_model=SessionResponse)
async def login_route(
    credentials: LoginRequest,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Sign in with email and password.

    - Returns 401 for unknown email or wrong password
    """
    token = login(db, ctx, credentials)
    return {"token": token, "user": get_profile(db, ctx)}

@router.post("/logout", status_code=204)
async def logout_route(
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """End the current session"""
    logout(db, ctx)

@router.get("/me", response_model=UserResponse)
async def get_me_route(
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """Get the signed-in user's profile"""
    return get_profile(db, ctx)

@router.patch("/me", response_model=UserResponse)
async def update_me_route(
    user_data: UserUpdate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """
    Update the signed-in user's display name.

    - Returns the updated profile
    """
    return update_profile(db, ctx, user_data)

@router.put("/me/password", status_code=204)
async def update_password_route(
    password_data: PasswordUpdate,
    db: Session = Depends(get_db_session),
    ctx: SessionContext = Depends(get_session_context)
):
    """Change the signed-in user's password"""
    update_password(db, ctx, password_data)
