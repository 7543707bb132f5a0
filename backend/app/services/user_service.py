import structlog
from sqlalchemy.orm import Session

from backend.app.errors import NotFound
from backend.app.models.models import ChildMembership, User, UserRole
from backend.app.schemas.users import LoginRequest, PasswordUpdate, RegisterRequest, UserUpdate
from backend.app.services.identity_service import IdentityProvider
from backend.app.services.store import commit, store_read
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)

def register_parent(db: Session, ctx: SessionContext, user_data: RegisterRequest) -> str:
    """Service function to register a parent account and sign it in"""
    identity = IdentityProvider(db)
    principal_id = identity.create_principal(ctx, user_data.email, user_data.password)

    try:
        identity.set_display_name(principal_id, user_data.display_name)
        db.add(User(
            id=principal_id,
            email=user_data.email.lower(),
            display_name=user_data.display_name,
            role=UserRole.PARENT.value,
        ))
        commit(db)
    except Exception:
        db.rollback()
        ctx.clear()
        identity.delete_principal(principal_id)
        raise

    logger.info("parent_registered", user_id=principal_id)
    return identity.sign_in(ctx, user_data.email, user_data.password)

def login(db: Session, ctx: SessionContext, credentials: LoginRequest) -> str:
    """Service function to sign a user in; returns the session token"""
    return IdentityProvider(db).sign_in(ctx, credentials.email, credentials.password)

def logout(db: Session, ctx: SessionContext) -> None:
    """Service function to end the caller's session"""
    ctx.require_principal()
    IdentityProvider(db).sign_out(ctx)

def get_user_by_id(db: Session, user_id: str) -> User:
    """Service function to get a user by ID"""
    with store_read("user"):
        user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User with id {user_id} not found")
    return user

def get_profile(db: Session, ctx: SessionContext) -> User:
    """Service function to get the caller's own profile"""
    return get_user_by_id(db, ctx.require_principal().id)

def update_profile(db: Session, ctx: SessionContext, user_data: UserUpdate) -> User:
    """
    Service function to update the caller's display name.

    The name is copied to the identity record, the profile, and for a child
    also the parent's membership record, which is a denormalized copy. All
    copies are written in one commit, so a failed write leaves every one of
    them unchanged.
    """
    principal = ctx.require_principal()
    user = get_user_by_id(db, principal.id)

    IdentityProvider(db).stage_display_name(principal.id, user_data.display_name)
    user.display_name = user_data.display_name

    if user.parent_id:
        membership = db.query(ChildMembership).filter(
            ChildMembership.parent_id == user.parent_id,
            ChildMembership.child_id == user.id
        ).first()
        if membership:
            membership.display_name = user_data.display_name

    commit(db)
    db.refresh(user)

    ctx.switch(principal.model_copy(update={"display_name": user_data.display_name}))
    return user

def update_password(db: Session, ctx: SessionContext, password_data: PasswordUpdate) -> None:
    """Service function to change the caller's password"""
    principal = ctx.require_principal()
    IdentityProvider(db).update_password(principal.id, password_data.new_password)
    logger.info("password_updated", user_id=principal.id)
