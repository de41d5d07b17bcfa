"""
Auth Service

Owner login and session token verification. Sessions are capability tokens
with the ``session`` purpose whose reference is the principal id.
"""

import logging
from typing import Tuple

from sunnycloud.domain.access_tokens import CapabilityTokenService, TokenPurpose
from sunnycloud.domain.errors import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidSignatureError,
    TokenMalformedError,
)
from sunnycloud.domain.identity import CredentialDirectory

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = 7 * 24 * 60 * 60


class AuthService:
    """Application service for owner authentication."""

    def __init__(
        self,
        credential_directory: CredentialDirectory,
        token_service: CapabilityTokenService,
        session_ttl: int = SESSION_TTL_SECONDS,
    ):
        self.credential_directory = credential_directory
        self.token_service = token_service
        self.session_ttl = session_ttl

    def login(self, identifier: str, secret: str) -> Tuple[str, int]:
        """
        Exchange credentials for a session token.

        Returns:
            Tuple of (session token, expiry epoch)

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        principal = self.credential_directory.authenticate(identifier, secret)
        token, claims = self.token_service.issue_claims(
            principal.principal_id, TokenPurpose.SESSION, self.session_ttl
        )
        logger.info(f"Principal {principal.principal_id} logged in")
        return token, claims.expires_at

    def authenticate_token(self, token: str) -> str:
        """
        Verify a session token.

        Returns:
            The principal id the session belongs to

        Raises:
            AuthenticationError: If the token is invalid, expired, or not a session token
        """
        try:
            claims = self.token_service.verify(token)
        except (TokenMalformedError, TokenInvalidSignatureError, TokenExpiredError) as e:
            raise AuthenticationError(f"Session rejected: {e}", e) from e

        if claims.purpose is not TokenPurpose.SESSION:
            raise AuthenticationError("Token is not a session token")
        return claims.resource_ref
