"""
Custom exceptions for the moderation and appeals pipeline.

This module defines specific exception types for different error scenarios,
enabling better error handling and more informative error responses.
"""

from typing import Optional, Dict, Any


class ModerationPipelineException(Exception):
    """Base exception for all moderation pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "MODERATION_PIPELINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ClassifierUnavailable(ModerationPipelineException):
    """
    Raised (or carried in a ClassificationResult) when the generated-content
    classifier cannot be reached or returns something unusable.

    The moderation flow always recovers from this locally.
    """

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CLASSIFIER_UNAVAILABLE",
            details={**(details or {}), "provider": provider}
        )


class SimilarityTimeout(ModerationPipelineException):
    """Raised when a duplicate-corpus scan runs past the evaluation budget."""

    def __init__(
        self,
        message: str = "Similarity check exceeded its time budget",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SIMILARITY_TIMEOUT",
            details=details
        )


class InvalidTargetState(ModerationPipelineException):
    """Exception raised when a transition is not allowed from the current status."""

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="INVALID_TARGET_STATE",
            details={**(details or {}), "current_status": current_status}
        )


class Unauthorized(ModerationPipelineException):
    """
    Exception raised when the caller may not act on a target.

    The message never reveals whether the target exists.
    """

    def __init__(
        self,
        message: str = "Target not found or access forbidden",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="FORBIDDEN",
            details=details
        )


class AuthenticationRequired(ModerationPipelineException):
    """Exception raised when no caller identity accompanies the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, error_code="AUTHENTICATION_REQUIRED")


class NotFoundException(ModerationPipelineException):
    """Exception raised when an appeal or content item does not exist."""

    def __init__(
        self,
        message: str,
        resource: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            details={**(details or {}), "resource": resource}
        )


class DatabaseException(ModerationPipelineException):
    """Exception raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details={**(details or {}), "operation": operation}
        )


class ValidationException(ModerationPipelineException):
    """Exception raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={**(details or {}), "field": field}
        )


class ContentTooLargeException(ModerationPipelineException):
    """Exception raised when content exceeds size limits."""

    def __init__(
        self,
        message: str = "Content size exceeds limit",
        max_size: int = 0,
        actual_size: int = 0,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONTENT_TOO_LARGE",
            details={
                **(details or {}),
                "max_size": max_size,
                "actual_size": actual_size
            }
        )


# Exception to HTTP status code mapping
EXCEPTION_STATUS_MAPPING = {
    ClassifierUnavailable: 503,  # Service Unavailable
    SimilarityTimeout: 503,  # Service Unavailable
    InvalidTargetState: 409,  # Conflict
    Unauthorized: 403,  # Forbidden
    AuthenticationRequired: 401,  # Unauthorized
    NotFoundException: 404,  # Not Found
    DatabaseException: 500,  # Internal Server Error
    ValidationException: 400,  # Bad Request
    ContentTooLargeException: 413,  # Payload Too Large
}
