"""
Capability Token Service

Issues and verifies self-contained signed bearer tokens. A token grants
access to one resource for one purpose until its expiry; no server-side
state is consulted, so possession of a valid token is the whole check.

Tokens are compact HS256 JWTs produced and checked with python-jose.
"""

import hmac
import logging
import os
import re
import secrets
import time
from typing import Callable, Optional, Tuple

from jose import jwk, jwt
from jose.exceptions import JWTError
from jose.utils import base64url_encode

from sunnycloud.domain.errors import (
    TokenExpiredError,
    TokenInvalidSignatureError,
    TokenMalformedError,
    ValidationError,
)

from .value_objects import CapabilityClaims, TokenPurpose

logger = logging.getLogger(__name__)

# Roughly a century; used for "permanent" share links.
PERMANENT_TTL_SECONDS = 60 * 60 * 24 * 365 * 100

ALGORITHM = "HS256"

# Header and payload segments: unpadded URL-safe base64
_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


class CapabilityTokenService:
    """
    Service for issuing and verifying capability tokens.

    Tokens have the form ``header.payload.signature`` where each segment is
    URL-safe base64 without padding and the signature is HMAC-SHA256 over
    ``header.payload`` keyed with the server secret.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize CapabilityTokenService.

        Args:
            secret_key: Secret key for HMAC signing (uses SECRET_KEY env var
                or generates a per-process key if not provided)
            clock: Callable returning the current Unix epoch in seconds
        """
        secret_key = secret_key or os.getenv("SECRET_KEY")
        if not secret_key:
            logger.warning(
                "SECRET_KEY not set; generated an ephemeral signing key. "
                "Issued links will stop working on restart."
            )
            secret_key = self._generate_secret_key()
        self._secret = secret_key.encode("utf-8")
        self._clock = clock or (lambda: int(time.time()))

    @staticmethod
    def _generate_secret_key(length: int = 32) -> str:
        """Generate a cryptographically secure secret key."""
        return secrets.token_hex(length)

    def now(self) -> int:
        """Current Unix epoch in seconds, as seen by this service."""
        return int(self._clock())

    def issue(self, resource_ref: str, purpose: TokenPurpose, ttl_seconds: int) -> str:
        """
        Issue a signed token.

        Args:
            resource_ref: Storage key, group id or principal id
            purpose: What the token may be redeemed for
            ttl_seconds: Lifetime in seconds; may be as large as a century

        Returns:
            Compact ``header.payload.signature`` token

        Raises:
            ValidationError: If the reference is empty or the TTL is not positive
        """
        return self.issue_claims(resource_ref, purpose, ttl_seconds)[0]

    def issue_claims(
        self, resource_ref: str, purpose: TokenPurpose, ttl_seconds: int
    ) -> Tuple[str, CapabilityClaims]:
        """Like ``issue`` but also returns the signed claims (for the expiry)."""
        if not resource_ref:
            raise ValidationError("Token resource reference cannot be empty")
        if ttl_seconds <= 0:
            raise ValidationError("Token TTL must be positive")

        claims = CapabilityClaims(
            resource_ref=str(resource_ref),
            purpose=purpose,
            expires_at=self.now() + int(ttl_seconds),
        )
        return self.encode(claims), claims

    def encode(self, claims: CapabilityClaims) -> str:
        """
        Sign arbitrary claims.

        Exposed separately from ``issue`` so callers can mint tokens with an
        explicit expiry epoch.
        """
        return jwt.encode(claims.to_payload(), self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> CapabilityClaims:
        """
        Verify a token and return its claims.

        Args:
            token: Token produced by ``issue``

        Returns:
            The claims encoded in the token

        Raises:
            TokenMalformedError: If the structure or encoding is wrong
            TokenInvalidSignatureError: If the signature does not match
            TokenExpiredError: If the expiry is at or before the current time
        """
        if not isinstance(token, str):
            raise TokenMalformedError("Token must be a string")

        # Anything after the second dot is the signature, however garbled
        parts = token.split(".", 2)
        if len(parts) != 3:
            raise TokenMalformedError("Token must have exactly three segments")
        header_b64, payload_b64, signature_b64 = parts
        if not (_SEGMENT.match(header_b64) and _SEGMENT.match(payload_b64)):
            raise TokenMalformedError("Token segment is not unpadded base64url")

        # Header and claims are read from the signing input alone so a damaged
        # signature can never be reported as a malformed token
        signing_input = f"{header_b64}.{payload_b64}"
        try:
            header = jwt.get_unverified_header(f"{signing_input}.")
            payload = jwt.get_unverified_claims(f"{signing_input}.")
        except JWTError as e:
            raise TokenMalformedError(f"Token is not decodable: {e}") from e

        if header.get("alg") != ALGORITHM:
            raise TokenMalformedError("Unsupported token header")

        claims = CapabilityClaims.from_payload(payload)

        # Expiry is decided before the signature: a past token is expired
        # whether or not it was signed by us. No leeway at the boundary.
        if claims.expires_at <= self.now():
            raise TokenExpiredError(
                f"Token expired at {claims.expires_at}"
            )

        if not signature_b64.isascii():
            raise TokenInvalidSignatureError("Token signature does not match")
        try:
            jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"verify_exp": False})
        except JWTError as e:
            raise TokenInvalidSignatureError("Token signature does not match") from e

        # The decoder tolerates stray bits in the final character; only the
        # exact segment this service would emit is accepted
        if not hmac.compare_digest(signature_b64.encode("utf-8"), self._sign(signing_input)):
            raise TokenInvalidSignatureError("Token signature does not match")

        return claims

    def _sign(self, signing_input: str) -> bytes:
        key = jwk.construct(self._secret, ALGORITHM)
        return base64url_encode(key.sign(signing_input.encode("ascii")))
