from typing import Dict, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for errors the API reports to callers.

    Each subclass fixes the HTTP status and a stable machine-readable
    ``code``; ``detail`` carries the human-readable message.
    """

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code_default = "APPLICATION_ERROR"
    label = "Application Error"

    def __init__(
        self,
        detail: Optional[str] = None,
        code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.label,
            headers=headers,
        )
        self.code = code or self.code_default


class ValidationError(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = "VALIDATION_ERROR"
    label = "Validation Error"


class UnauthorizedError(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = "UNAUTHORIZED"
    label = "Unauthorized"

    def __init__(self, detail: str = "Could not validate credentials", code: Optional[str] = None):
        super().__init__(detail, code, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code_default = "FORBIDDEN"
    label = "Forbidden"

    def __init__(self, detail: str = "Not enough permissions", code: Optional[str] = None):
        super().__init__(detail, code)


class NotFoundError(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code_default = "NOT_FOUND"
    label = "Not Found"

    def __init__(self, resource: str = "Resource", detail: Optional[str] = None):
        super().__init__(detail or f"{resource} not found")


class ConflictError(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    code_default = "CONFLICT"
    label = "Conflict"


class RateLimitError(AppError):
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
    code_default = "RATE_LIMITED"
    label = "Too Many Requests"

    def __init__(self, detail: str = "Too many requests. Please try again later.", retry_after: Optional[int] = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(detail, headers=headers)
