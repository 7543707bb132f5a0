from typing import List, Optional

from fastapi import HTTPException


class NotAuthorized(HTTPException):
    """Caller lacks the role or ownership required for the operation"""

    def __init__(self, detail: str = "Not authorized to perform this action", status_code: int = 403, headers=None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotAuthenticated(NotAuthorized):
    """No session, or the session token is unknown"""

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail, status_code=401, headers={"WWW-Authenticate": "Bearer"})


class NotFound(HTTPException):
    """Entity does not exist or lies outside the caller's household"""

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class ValidationError(HTTPException):
    """Malformed input that passed schema validation"""

    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class InvalidState(HTTPException):
    """Lifecycle transition not allowed from the entity's current state"""

    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class UpstreamUnavailable(HTTPException):
    """Identity provider or document store failed for transient reasons"""

    def __init__(self, detail: str = "Storage temporarily unavailable"):
        super().__init__(status_code=503, detail=detail)


class ProvisioningFailed(HTTPException):
    """Child provisioning failed and every partial write was rolled back"""

    def __init__(self, detail: str):
        super().__init__(status_code=502, detail=detail)


class AccountPartiallyCreated(HTTPException):
    """Child provisioning failed and the rollback failed too"""

    def __init__(self, principal_id: str, detail: Optional[str] = None):
        self.principal_id = principal_id
        super().__init__(
            status_code=500,
            detail=detail or (
                f"Child account may be partially created (principal {principal_id}). "
                "Contact support before retrying with the same email."
            ),
        )


class ChildFetchFailure:
    """One failed sub-query of a multi-child aggregation"""

    def __init__(self, child_id: str, error: Exception):
        self.child_id = child_id
        self.error = error

    @property
    def message(self) -> str:
        detail = getattr(self.error, "detail", None) or str(self.error) or type(self.error).__name__
        return f"Expenses for child {self.child_id} could not be loaded: {detail}"


class PartialAggregationFailure(Exception):
    """
    Some per-child queries failed while others succeeded.

    Never raised out of the aggregation engine; it travels next to the
    partial result so callers can render a non-blocking warning.
    """

    def __init__(self, failures: List[ChildFetchFailure]):
        self.failures = failures
        super().__init__(self.warnings)

    @property
    def warnings(self) -> List[str]:
        return [failure.message for failure in self.failures]
