"""
Child account provisioning.

Creating a child touches two systems that share no transaction: the identity
provider (the principal and its credentials) and the document store (the
child's profile row and the parent's membership record). The workflow runs
as a saga: once the principal exists, any later failure triggers a
compensating rollback that removes what was written and deletes the
principal. Only when that rollback also fails is the caller told the account
may be partially created.
"""

from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from backend.app.errors import AccountPartiallyCreated, ProvisioningFailed
from backend.app.models.models import ChildMembership, User, UserRole
from backend.app.services.identity_service import IdentityProvider
from backend.app.services.store import commit, store_read
from backend.app.session import SessionContext

logger = structlog.get_logger(__name__)


def create_child_account(
    db: Session,
    ctx: SessionContext,
    email: str,
    password: str,
    display_name: str,
    identity: Optional[IdentityProvider] = None,
) -> str:
    """
    Create a child principal owned by the calling parent.

    - Only a parent session may call this; otherwise NotAuthorized and no
      principal is created
    - Writes the child's profile (role=child, parent_id=caller) and the
      membership record under the parent
    - The caller's session is the parent's again when this returns or raises
    - Returns the new child's id
    """
    parent = ctx.require_parent("create child accounts")
    parent_token = ctx.token
    identity = identity or IdentityProvider(db)
    email = email.lower()

    try:
        child_id = identity.create_principal(ctx, email, password)
        try:
            identity.set_display_name(child_id, display_name)
            _write_child_profile(db, child_id, email, display_name, parent.id)
            _write_membership(db, parent.id, child_id, email, display_name)
        except Exception as exc:
            _roll_back(db, identity, parent.id, child_id, exc)
    finally:
        # Creating the principal signed it in on ctx; hand the session back.
        if ctx.principal != parent:
            ctx.switch(parent, token=parent_token)

    logger.info("child_account_created", parent_id=parent.id, child_id=child_id)
    return child_id


def _write_child_profile(db: Session, child_id: str, email: str, display_name: str, parent_id: str) -> None:
    db.add(User(
        id=child_id,
        email=email,
        display_name=display_name,
        role=UserRole.CHILD.value,
        parent_id=parent_id,
    ))
    commit(db)


def _write_membership(db: Session, parent_id: str, child_id: str, email: str, display_name: str) -> None:
    db.add(ChildMembership(
        parent_id=parent_id,
        child_id=child_id,
        email=email,
        display_name=display_name,
    ))
    commit(db)


def _roll_back(db: Session, identity: IdentityProvider, parent_id: str, child_id: str, cause: Exception) -> None:
    """Compensate a failed provisioning; always raises"""
    reason = getattr(cause, "detail", None) or str(cause) or type(cause).__name__
    logger.warning("child_provisioning_failed", parent_id=parent_id, child_id=child_id, error=reason)

    try:
        db.rollback()
        db.query(ChildMembership).filter(
            ChildMembership.parent_id == parent_id,
            ChildMembership.child_id == child_id
        ).delete()
        db.query(User).filter(User.id == child_id).delete()
        commit(db)
        identity.delete_principal(child_id)
    except Exception as exc:
        logger.error("child_provisioning_rollback_failed", parent_id=parent_id, child_id=child_id, error=str(exc))
        raise AccountPartiallyCreated(child_id) from exc

    raise ProvisioningFailed(f"Failed to create child account: {reason}. No account was created.") from cause


def list_children(db: Session, ctx: SessionContext) -> List[ChildMembership]:
    """Membership records under the calling parent, oldest first"""
    parent = ctx.require_parent("list children")
    return get_memberships(db, parent.id)


def get_memberships(db: Session, parent_id: str) -> List[ChildMembership]:
    with store_read("children"):
        return db.query(ChildMembership).filter(
            ChildMembership.parent_id == parent_id
        ).order_by(ChildMembership.created_at, ChildMembership.child_id).all()


def is_child_of(db: Session, parent_id: str, child_id: str) -> bool:
    with store_read("children"):
        membership = db.query(ChildMembership).filter(
            ChildMembership.parent_id == parent_id,
            ChildMembership.child_id == child_id
        ).first()
    return membership is not None
