"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from loguru import logger


class NotificationEngineException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(NotificationEngineException):
    """Data validation errors."""
    pass


class AuthenticationError(NotificationEngineException):
    """Authentication and authorization errors."""
    pass


class PushTransportError(NotificationEngineException):
    """Push transport misuse, e.g. sending without VAPID credentials."""
    pass


class SchedulingError(NotificationEngineException):
    """Scheduled task creation or processing errors."""
    pass


def handle_database_error(error: Exception) -> HTTPException:
    """Handle database errors and return appropriate HTTP response."""
    logger.error("Database error", error=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database operation failed. Please try again later."
    )


def handle_validation_error(error: ValidationError) -> HTTPException:
    """Handle validation errors."""
    logger.warning("Validation error", reason=error.message, details=error.details)
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "message": error.message,
            "details": error.details
        }
    )


def handle_authentication_error(error: AuthenticationError) -> HTTPException:
    """Handle authentication errors."""
    logger.warning("Authentication error", reason=error.message)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def handle_push_transport_error(error: PushTransportError) -> HTTPException:
    """Handle push transport configuration errors.

    The response body never echoes the underlying message.
    """
    logger.error("Push transport error", reason=error.message, details=error.details)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Push notifications are not configured on this server."
    )
