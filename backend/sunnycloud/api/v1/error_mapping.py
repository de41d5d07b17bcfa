"""
Domain error to HTTP response mapping.
"""

from typing import Any, Dict, Optional

from flask import current_app

from sunnycloud.domain.errors import (
    DomainError,
    ErrorCategory,
    IncompletePartSetError,
    PayloadTooLargeError,
    ResourceNotFoundError,
    create_error_response,
)

STATUS_BY_CATEGORY: Dict[ErrorCategory, int] = {
    ErrorCategory.TOKEN_MALFORMED: 400,
    ErrorCategory.TOKEN_INVALID_SIGNATURE: 401,
    ErrorCategory.TOKEN_EXPIRED: 410,
    ErrorCategory.METADATA_MISSING: 404,
    ErrorCategory.BLOB_MISSING: 404,
    ErrorCategory.OWNERSHIP_VIOLATION: 403,
    ErrorCategory.PAYLOAD_TOO_LARGE: 413,
    ErrorCategory.INCOMPLETE_PART_SET: 409,
    ErrorCategory.INVALID_REQUEST: 400,
    ErrorCategory.ADAPTER_FAILURE: 502,
    ErrorCategory.AUTHENTICATION_FAILED: 401,
    ErrorCategory.SYSTEM_ERROR: 500,
}


def _error_context(error: DomainError) -> Optional[Dict[str, Any]]:
    if isinstance(error, ResourceNotFoundError):
        return {"reason": error.reason}
    if isinstance(error, PayloadTooLargeError):
        return {"limit": error.limit, "actual": error.actual}
    if isinstance(error, IncompletePartSetError):
        return {
            "missing": error.missing,
            "unexpected": error.unexpected,
            "duplicated": error.duplicated,
        }
    return None


def domain_error_response(error: DomainError, where: str = "API"):
    """
    Build the ``(body, status)`` pair for a domain error.

    Server-side failures are logged as errors, client mistakes as warnings.
    """
    status_code = STATUS_BY_CATEGORY.get(error.category, 500)
    if status_code >= 500:
        current_app.logger.error(f"[{where}] {error.category.value}: {error}")
    else:
        current_app.logger.warning(f"[{where}] {error.category.value}: {error}")
    return create_error_response(
        error.category, str(error), _error_context(error), status_code=status_code
    )


def unexpected_error_response(error: Exception, where: str = "API"):
    current_app.logger.exception(f"[{where}] Unexpected error: {error}")
    return create_error_response(
        ErrorCategory.SYSTEM_ERROR, f"Internal server error: {error}", status_code=500
    )
