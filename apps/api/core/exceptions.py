"""
Service-level errors for the habit analytics API.

Services raise these directly and never return error values. main.py
renders every APIException as {"detail": ..., "error_code": ...} so clients
can branch on the code rather than the message.

Insufficient data is not an error anywhere in this package: empty streaks,
no correlations and missing cache rows are normal results.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """HTTPException carrying a machine-readable error_code."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, "error_code": self.error_code}


class NotFoundError(APIException):
    """Unknown habit or habit event id."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """
    Rejected input (bad date, unknown status, missing value for a quantity
    habit). The offending field is folded into the code, e.g.
    VALIDATION_ERROR_DATE.
    """

    def __init__(self, detail: str, field: Optional[str] = None):
        self.field = field
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        )


class UnauthorizedError(APIException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """The habit or event belongs to another user."""

    def __init__(self, detail: str = "Resource belongs to another user"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """A (habit, date) pair that already has an event."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )
