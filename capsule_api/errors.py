"""Error taxonomy shared by the capsule operations and the HTTP layer."""

from fastapi import status


class CapsuleError(Exception):
    """Base class for failures reported to clients with a stable code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadInput(CapsuleError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"


class Unauthorized(CapsuleError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class Forbidden(CapsuleError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFound(CapsuleError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class LimitExceeded(CapsuleError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    code = "LIMIT_EXCEEDED"


class ServerError(CapsuleError):
    pass
