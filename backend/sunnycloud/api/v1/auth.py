"""
Authentication Decorators

Owner endpoints require ``Authorization: Bearer <session token>``; the
cleanup trigger requires the configured ``X-Admin-Key``. Download
redemption is deliberately left undecorated.
"""

import hmac
from functools import wraps

from flask import current_app, g, request

from sunnycloud.application.auth_service import AuthService
from sunnycloud.domain.errors import AuthenticationError, ErrorCategory, create_error_response

from .error_mapping import domain_error_response


def _bearer_token(header_value: str):
    scheme, _, token = (header_value or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_owner(f):
    """
    Decorator that authenticates the session token and stores the
    principal id in ``g.owner_id``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token(request.headers.get("Authorization", ""))
        if token is None:
            return create_error_response(
                ErrorCategory.AUTHENTICATION_FAILED,
                "Missing bearer token",
                status_code=401,
            )

        auth_service = current_app.container.resolve(AuthService)
        try:
            g.owner_id = auth_service.authenticate_token(token)
        except AuthenticationError as e:
            return domain_error_response(e, "AUTH")

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Decorator that checks ``X-Admin-Key`` against ``ADMIN_KEY``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_KEY") or ""
        provided = request.headers.get("X-Admin-Key", "")
        # An unset ADMIN_KEY disables the endpoint entirely
        if not expected or not hmac.compare_digest(
            provided.encode("utf-8"), expected.encode("utf-8")
        ):
            current_app.logger.warning(
                f"[ADMIN] Rejected admin request from {request.remote_addr}"
            )
            return create_error_response(
                ErrorCategory.AUTHENTICATION_FAILED,
                "Invalid admin key",
                status_code=401,
            )
        return f(*args, **kwargs)

    return decorated_function
