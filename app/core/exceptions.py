from typing import List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class Unauthenticated(ServiceError):
    """Missing, malformed, revoked or expired credentials."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class InvalidToken(Unauthenticated):
    """Token failed signature, expiry, type or session checks."""

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(message)


class Forbidden(ServiceError):
    """Role or tenant-scope violation."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFound(ServiceError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ValidationFailed(ServiceError):
    def __init__(self, message: str = "Validation failed", details: Optional[List[str]] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class Conflict(ServiceError):
    """Referential invariant violation, e.g. deleting a record that still has dependents."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class CapacityExceeded(ServiceError):
    def __init__(self, message: str = "Classroom at full capacity") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidReference(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class RateLimitExceeded(ServiceError):
    def __init__(self, message: str = "Too many requests") -> None:
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)
