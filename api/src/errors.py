"""
Typed HTTP errors.

Every error raised on purpose by services and repositories derives from
BaseError. The exception handlers in main.py turn them into JSON bodies of
the form {"success": false, "message", "statusCode", "name"}.
Non-operational errors (programming or infrastructure faults) are logged
with a traceback and masked as a generic 500.
"""

from typing import Any, Dict, Optional

from fastapi import status

from api.src.constants import ERROR_MESSAGES


class BaseError(Exception):
    """
    Base class for application errors.

    Attributes:
        name: Error class name exposed to clients
        http_code: HTTP status code of the response
        message: Human readable message
        is_operational: True for expected errors safe to show to clients
        details: Optional structured details (e.g. validation errors)
        headers: Extra response headers (e.g. Retry-After)
    """

    http_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = ERROR_MESSAGES.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        http_code: Optional[int] = None,
        is_operational: bool = True,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.name = self.__class__.__name__
        self.message = message or self.default_message
        if http_code is not None:
            self.http_code = http_code
        self.is_operational = is_operational
        self.details = details
        self.headers = headers or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error to the JSON error body."""
        body: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "statusCode": self.http_code,
            "name": self.name,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(BaseError):
    http_code = status.HTTP_400_BAD_REQUEST
    default_message = ERROR_MESSAGES.BAD_REQUEST


class UnauthorizedError(BaseError):
    http_code = status.HTTP_401_UNAUTHORIZED
    default_message = ERROR_MESSAGES.UNAUTHORIZED


class ForbiddenError(BaseError):
    http_code = status.HTTP_403_FORBIDDEN
    default_message = ERROR_MESSAGES.FORBIDDEN


class NotFoundError(BaseError):
    http_code = status.HTTP_404_NOT_FOUND
    default_message = ERROR_MESSAGES.RESOURCE_NOT_FOUND


class ConflictError(BaseError):
    http_code = status.HTTP_409_CONFLICT
    default_message = ERROR_MESSAGES.EMAIL_ALREADY_EXISTS


class TooManyRequestsError(BaseError):
    """Raised when a rate limit is exceeded.

    Attributes:
        retry_after: Seconds until the client may retry
    """

    http_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = ERROR_MESSAGES.TOO_MANY_ATTEMPTS

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        headers = dict(headers or {})
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        super().__init__(message, headers=headers)
        self.retry_after = retry_after


class DatabaseError(BaseError):
    http_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, is_operational=False)


class InternalServerError(BaseError):
    http_code = status.HTTP_500_INTERNAL_SERVER_ERROR
