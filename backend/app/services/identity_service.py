import secrets
from typing import Optional

import structlog
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.errors import Conflict, NotAuthenticated, NotFound
from backend.app.models.models import AuthPrincipal, AuthToken, User, UserRole
from backend.app.services.store import commit, store_read
from backend.app.session import Principal, SessionContext

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class IdentityProvider:
    """
    Authenticates principals and owns their credentials.

    Principal records are kept apart from the ``users`` profile rows: a
    principal can exist without a profile (e.g. half-way through child
    provisioning), which is exactly the window the provisioning saga guards.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_principal(self, ctx: SessionContext, email: str, password: str) -> str:
        """
        Create a principal and make it the active one on ``ctx``.

        Like hosted identity providers, creating an account signs it in. The
        new session is transient (no token is issued) so callers provisioning
        on someone else's behalf can switch back without a store round trip.
        """
        email = email.lower()
        with store_read("principals"):
            existing = self.db.query(AuthPrincipal).filter(AuthPrincipal.email == email).first()
        if existing:
            raise Conflict("Email already registered")

        principal = AuthPrincipal(email=email, password_hash=pwd_context.hash(password))
        self.db.add(principal)
        commit(self.db)
        self.db.refresh(principal)

        logger.info("principal_created", principal_id=principal.id)
        ctx.switch(Principal(id=principal.id, email=principal.email))
        return principal.id

    def stage_display_name(self, principal_id: str, display_name: str) -> AuthPrincipal:
        """Rename a principal in the current unit of work; the caller commits"""
        principal = self._get(principal_id)
        principal.display_name = display_name
        return principal

    def set_display_name(self, principal_id: str, display_name: str) -> None:
        self.stage_display_name(principal_id, display_name)
        commit(self.db)

    def update_password(self, principal_id: str, new_password: str) -> None:
        principal = self._get(principal_id)
        principal.password_hash = pwd_context.hash(new_password)
        commit(self.db)

    def delete_principal(self, principal_id: str) -> None:
        """Remove a principal and any sessions it holds"""
        self.db.query(AuthToken).filter(AuthToken.principal_id == principal_id).delete()
        self.db.query(AuthPrincipal).filter(AuthPrincipal.id == principal_id).delete()
        commit(self.db)
        logger.info("principal_deleted", principal_id=principal_id)

    def sign_in(self, ctx: SessionContext, email: str, password: str) -> str:
        """Verify credentials, issue a session token and switch ``ctx`` to it"""
        with store_read("principals"):
            principal = self.db.query(AuthPrincipal).filter(AuthPrincipal.email == email.lower()).first()
        if not principal or not pwd_context.verify(password, principal.password_hash):
            raise NotAuthenticated("Invalid email or password")

        token = secrets.token_urlsafe(get_settings().session_token_bytes)
        self.db.add(AuthToken(token=token, principal_id=principal.id))
        commit(self.db)

        ctx.switch(self.load_principal(principal.id), token=token)
        logger.info("signed_in", principal_id=principal.id)
        return token

    def sign_out(self, ctx: SessionContext) -> None:
        if ctx.token:
            self.db.query(AuthToken).filter(AuthToken.token == ctx.token).delete()
            commit(self.db)
        principal = ctx.principal
        ctx.clear()
        if principal:
            logger.info("signed_out", principal_id=principal.id)

    def current_principal(self, ctx: SessionContext) -> Optional[Principal]:
        return ctx.principal

    def resolve_token(self, token: str) -> Optional[Principal]:
        """Return the principal a session token belongs to, or None"""
        with store_read("session"):
            session = self.db.query(AuthToken).filter(AuthToken.token == token).first()
        if not session:
            return None
        return self.load_principal(session.principal_id)

    def load_principal(self, principal_id: str) -> Principal:
        """Build a Principal from the identity record and its profile, if any"""
        principal = self._get(principal_id)
        with store_read("profile"):
            profile = self.db.query(User).filter(User.id == principal_id).first()
        return Principal(
            id=principal.id,
            email=principal.email,
            display_name=principal.display_name,
            role=UserRole(profile.role) if profile else None,
            parent_id=profile.parent_id if profile else None,
        )

    def _get(self, principal_id: str) -> AuthPrincipal:
        with store_read("principals"):
            principal = self.db.query(AuthPrincipal).filter(AuthPrincipal.id == principal_id).first()
        if not principal:
            raise NotFound(f"Principal with id {principal_id} not found")
        return principal
