"""
Error Handling Module

Defines domain exceptions and error categories for the application.
Domain exceptions are pure and have no external dependencies.
Application exceptions translate them into user-facing messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Error category enumeration for structured error handling."""

    TOKEN_MALFORMED = "token_malformed"
    TOKEN_INVALID_SIGNATURE = "token_invalid_signature"
    TOKEN_EXPIRED = "token_expired"
    METADATA_MISSING = "metadata_missing"
    BLOB_MISSING = "blob_missing"
    OWNERSHIP_VIOLATION = "ownership_violation"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INCOMPLETE_PART_SET = "incomplete_part_set"
    INVALID_REQUEST = "invalid_request"
    ADAPTER_FAILURE = "adapter_failure"
    AUTHENTICATION_FAILED = "authentication_failed"
    SYSTEM_ERROR = "system_error"


# User-friendly error messages with actionable guidance
ERROR_MESSAGES: Dict[ErrorCategory, Dict[str, str]] = {
    ErrorCategory.TOKEN_MALFORMED: {
        "title": "Invalid Link",
        "message": "This link is not a valid SunnyCloud link.",
        "action": "Check that the whole link was copied and try again.",
    },
    ErrorCategory.TOKEN_INVALID_SIGNATURE: {
        "title": "Invalid Link",
        "message": "This link could not be verified.",
        "action": "Ask the owner to share a new link.",
    },
    ErrorCategory.TOKEN_EXPIRED: {
        "title": "Link Expired",
        "message": "This link has expired.",
        "action": "Ask the owner to share a new link.",
    },
    ErrorCategory.METADATA_MISSING: {
        "title": "File Not Found",
        "message": "The requested file could not be found or has been deleted.",
        "action": "Ask the owner whether the file is still available.",
    },
    ErrorCategory.BLOB_MISSING: {
        "title": "File Data Missing",
        "message": "The file is registered but its content is no longer stored.",
        "action": "Ask the owner to upload the file again.",
    },
    ErrorCategory.OWNERSHIP_VIOLATION: {
        "title": "Access Denied",
        "message": "You do not own this resource.",
        "action": "Sign in with the account that uploaded it.",
    },
    ErrorCategory.PAYLOAD_TOO_LARGE: {
        "title": "File Too Large",
        "message": "The upload exceeds the maximum allowed size for a single request.",
        "action": "Use chunked upload for large files.",
    },
    ErrorCategory.INCOMPLETE_PART_SET: {
        "title": "Upload Incomplete",
        "message": "Some chunks of the upload are missing.",
        "action": "Upload the missing chunks and complete the upload again.",
    },
    ErrorCategory.INVALID_REQUEST: {
        "title": "Invalid Request",
        "message": "The request is missing required information or contains invalid data.",
        "action": "Please check your input and try again.",
    },
    ErrorCategory.ADAPTER_FAILURE: {
        "title": "Storage Unavailable",
        "message": "The storage backend could not complete the operation.",
        "action": "Please try again. Retrying a chunk upload is safe.",
    },
    ErrorCategory.AUTHENTICATION_FAILED: {
        "title": "Authentication Failed",
        "message": "Your credentials or session are not valid.",
        "action": "Please sign in again.",
    },
    ErrorCategory.SYSTEM_ERROR: {
        "title": "System Error",
        "message": "An unexpected error occurred while processing your request.",
        "action": "Please try again later. If the problem persists, contact support.",
    },
}


# ============================================================================
# Domain Exceptions (Pure - No External Dependencies)
# ============================================================================

class DomainError(Exception):
    """
    Base exception for all domain errors.

    Domain exceptions are pure and have no external dependencies.
    They can optionally wrap original errors for context.
    """

    category = ErrorCategory.SYSTEM_ERROR

    def __init__(self, message: str, original_error: Exception = None):
        """
        Initialize domain error.

        Args:
            message: Error message
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error


class TokenMalformedError(DomainError):
    """Raised when a capability token does not have the expected structure."""

    category = ErrorCategory.TOKEN_MALFORMED


class TokenInvalidSignatureError(DomainError):
    """Raised when a capability token's signature does not match."""

    category = ErrorCategory.TOKEN_INVALID_SIGNATURE


class TokenExpiredError(DomainError):
    """Raised when a correctly signed capability token is past its expiry."""

    category = ErrorCategory.TOKEN_EXPIRED


class ResourceNotFoundError(DomainError):
    """
    Raised when a referenced resource cannot be served.

    ``reason`` distinguishes a missing metadata row from a row whose
    backing blob is gone.
    """

    METADATA_MISSING = "metadata-missing"
    BLOB_MISSING = "blob-missing"

    def __init__(self, message: str, reason: str = METADATA_MISSING,
                 original_error: Exception = None):
        if reason not in (self.METADATA_MISSING, self.BLOB_MISSING):
            raise ValueError(f"Unknown not-found reason: {reason}")
        super().__init__(message, original_error)
        self.reason = reason

    @property
    def category(self) -> ErrorCategory:
        if self.reason == self.BLOB_MISSING:
            return ErrorCategory.BLOB_MISSING
        return ErrorCategory.METADATA_MISSING


class OwnershipViolationError(DomainError):
    """Raised when a principal mutates or shares a resource it does not own."""

    category = ErrorCategory.OWNERSHIP_VIOLATION


class PayloadTooLargeError(DomainError):
    """Raised when a request body or chunk exceeds its size ceiling."""

    category = ErrorCategory.PAYLOAD_TOO_LARGE

    def __init__(self, message: str, limit: int, actual: int):
        super().__init__(message)
        self.limit = limit
        self.actual = actual


class IncompletePartSetError(DomainError):
    """Raised when completing a chunked upload without exactly parts 1..N."""

    category = ErrorCategory.INCOMPLETE_PART_SET

    def __init__(self, message: str, missing=(), unexpected=(), duplicated=()):
        super().__init__(message)
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        self.duplicated = sorted(duplicated)


class ValidationError(DomainError):
    """Raised when input fails validation (e.g. an empty name)."""

    category = ErrorCategory.INVALID_REQUEST


class AdapterFailureError(DomainError):
    """Raised when the object store backend fails an operation."""

    category = ErrorCategory.ADAPTER_FAILURE


class AuthenticationError(DomainError):
    """Raised when credentials or a session token are rejected."""

    category = ErrorCategory.AUTHENTICATION_FAILED


# ============================================================================
# Application Layer Exceptions (Can have infrastructure concerns)
# ============================================================================

class ApplicationError(Exception):
    """
    Base application error with category and user-friendly messaging.

    This is an application-layer concern that bridges domain errors
    with user-facing error messages and HTTP responses.
    """

    def __init__(
        self,
        category: ErrorCategory,
        technical_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize application error.

        Args:
            category: Error category
            technical_message: Technical error details for logging
            context: Additional context information
        """
        self.category = category
        self.technical_message = technical_message or ""
        self.context = context or {}

        error_info = ERROR_MESSAGES.get(
            category, ERROR_MESSAGES[ErrorCategory.SYSTEM_ERROR]
        )
        self.title = error_info["title"]
        self.message = error_info["message"]
        self.action = error_info["action"]

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for API response.

        Returns:
            Dictionary with error information
        """
        payload = {
            "error": self.category.value,
            "title": self.title,
            "message": self.message,
            "action": self.action,
        }
        if self.context:
            payload["details"] = self.context
        return payload


def create_error_response(
    category: ErrorCategory,
    technical_message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 400,
) -> tuple[Dict[str, Any], int]:
    """
    Create a structured error response for API endpoints.

    Args:
        category: Error category
        technical_message: Technical error details for logging
        context: Additional context information
        status_code: HTTP status code

    Returns:
        Tuple of (error_dict, status_code)
    """
    error = ApplicationError(category, technical_message, context)
    return error.to_dict(), status_code
