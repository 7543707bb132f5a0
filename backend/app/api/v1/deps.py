from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.app.database import get_db_session
from backend.app.errors import NotAuthenticated
from backend.app.services.identity_service import IdentityProvider
from backend.app.session import SessionContext

bearer_scheme = HTTPBearer(auto_error=False)

def get_session_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db_session)
) -> SessionContext:
    """
    Resolve the bearer token into a SessionContext.

    Requests without a token get an empty context; services decide whether
    that is acceptable. An unknown token is always rejected.
    """
    if credentials is None:
        return SessionContext()

    principal = IdentityProvider(db).resolve_token(credentials.credentials)
    if principal is None:
        raise NotAuthenticated("Invalid or expired session")
    return SessionContext(principal, token=credentials.credentials)
