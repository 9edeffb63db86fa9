"""Error taxonomy shared by the relay and the HTTP layer.

Every failure the service reports is a ``ServiceError`` tagged with an
``ErrorKind``. Only the API boundary turns them into HTTP responses, and only
the relay orchestrator turns them into in-stream ``Failed`` events.
"""

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    INPUT = "input"
    AUTHENTICATION = "authentication"
    AUTHZ = "authz"
    UPSTREAM = "upstream"
    STORAGE = "storage"


class ServiceError(Exception):
    kind: ErrorKind
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, public_message: str | None = None):
        self.message = message or self.default_message
        self.public_message = public_message or self.message
        super().__init__(self.message)


class InputError(ServiceError):
    kind = ErrorKind.INPUT
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Message is required"


class AuthenticationError(ServiceError):
    kind = ErrorKind.AUTHENTICATION
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class AuthzError(ServiceError):
    """Missing or foreign resource. Always reported as not found."""

    kind = ErrorKind.AUTHZ
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Chat not found"


class UpstreamError(ServiceError):
    kind = ErrorKind.UPSTREAM
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The model provider failed to respond"


class StorageError(ServiceError):
    kind = ErrorKind.STORAGE
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage failure"

    def __init__(self, message: str | None = None, public_message: str | None = None):
        # Never leak driver messages to clients
        super().__init__(message, public_message or "Internal server error")
