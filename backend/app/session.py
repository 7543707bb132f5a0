from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from backend.app.errors import NotAuthenticated, NotAuthorized
from backend.app.models.models import UserRole


class Principal(BaseModel):
    """The authenticated identity a request acts as"""
    id: str
    email: str
    display_name: Optional[str] = None
    role: Optional[UserRole] = None
    parent_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


Listener = Callable[[Optional[Principal]], None]


class SessionContext:
    """
    Explicit holder of the active principal for one caller.

    Passed into every workflow and aggregation call instead of living in
    global state. Only the auth service (login/logout), the identity
    provider's create_principal, and the provisioning workflow's restore
    step may switch the principal.
    """

    def __init__(self, principal: Optional[Principal] = None, token: Optional[str] = None):
        self._principal = principal
        self.token = token
        self._listeners: List[Listener] = []

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def is_authenticated(self) -> bool:
        return self._principal is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def switch(self, principal: Principal, token: Optional[str] = None) -> None:
        self._principal = principal
        if token is not None:
            self.token = token
        self._notify()

    def clear(self) -> None:
        self._principal = None
        self.token = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._principal)

    def require_principal(self) -> Principal:
        if self._principal is None:
            raise NotAuthenticated()
        return self._principal

    def require_parent(self, action: str = "perform this action") -> Principal:
        principal = self.require_principal()
        if principal.role != UserRole.PARENT:
            raise NotAuthorized(f"Only parent accounts can {action}")
        return principal

    def require_child(self, action: str = "perform this action") -> Principal:
        principal = self.require_principal()
        if principal.role != UserRole.CHILD:
            raise NotAuthorized(f"Only child accounts can {action}")
        return principal
