"""Domain errors.

Services raise these directly; each one is an ``HTTPException`` so the
routers can let them propagate unchanged. ``ConflictLost`` means a
conditional update matched zero rows because someone else already moved
the row; callers that drive background transitions treat it as handled.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class PermissionDenied(HTTPException):
    def __init__(self, detail: Any = "Permission denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: Any = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConstraintViolation(HTTPException):
    def __init__(self, detail: Any = "Constraint violation"):
        super().__init__(status_code=422, detail=detail)


class AlreadyConsumed(HTTPException):
    """Verification code missing its window: already used or expired."""

    def __init__(self, detail: Any = "Code already used"):
        super().__init__(status_code=status.HTTP_410_GONE, detail=detail)


class ConflictLost(HTTPException):
    def __init__(self, detail: Any = "Row changed concurrently. Re-fetch and retry."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class OfferExpired(ConflictLost):
    def __init__(self, detail: Any = "Your offer has expired. The spot has been offered to the next person."):
        super().__init__(detail=detail)


class VersionConflict(ConflictLost):
    pass


class Locked(HTTPException):
    def __init__(self, retry_after: int, detail: Any = "Too many failed attempts. Please try again later."):
        self.retry_after = retry_after
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"message": detail, "retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


class RateLimited(HTTPException):
    def __init__(self, retry_after: int, detail: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"message": detail or "Too many requests", "retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )
