"""
Access Token Value Objects

Immutable value objects carried inside capability tokens.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from sunnycloud.domain.errors import TokenMalformedError


class TokenPurpose(Enum):
    """Closed set of purposes a capability token may be issued for."""

    FILE_DOWNLOAD = "file-download"
    GROUP_DOWNLOAD = "group-download"
    SESSION = "session"

    @classmethod
    def parse(cls, value: Any) -> "TokenPurpose":
        """
        Parse a wire value into a purpose.

        Raises:
            TokenMalformedError: If the value is not a known purpose
        """
        if not isinstance(value, str):
            raise TokenMalformedError("Token purpose must be a string")
        try:
            return cls(value)
        except ValueError as e:
            raise TokenMalformedError(f"Unknown token purpose: {value!r}") from e


@dataclass(frozen=True)
class CapabilityClaims:
    """
    What a capability token grants: a resource, a purpose and an expiry.

    ``resource_ref`` is a storage key for file downloads, a group id for
    group downloads and a principal id for sessions. ``expires_at`` is a
    Unix epoch in seconds.
    """

    resource_ref: str
    purpose: TokenPurpose
    expires_at: int

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the token payload dictionary."""
        return {
            "ref": self.resource_ref,
            "purpose": self.purpose.value,
            "exp": self.expires_at,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "CapabilityClaims":
        """
        Build claims from a decoded token payload.

        Raises:
            TokenMalformedError: If a field is missing or has the wrong type
        """
        if not isinstance(payload, dict):
            raise TokenMalformedError("Token payload must be a JSON object")

        ref = payload.get("ref")
        exp = payload.get("exp")
        if not isinstance(ref, str) or not ref:
            raise TokenMalformedError("Token payload has no resource reference")
        # bool is an int subclass; reject it explicitly
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise TokenMalformedError("Token expiry must be an integer epoch")

        return cls(
            resource_ref=ref,
            purpose=TokenPurpose.parse(payload.get("purpose")),
            expires_at=exp,
        )
