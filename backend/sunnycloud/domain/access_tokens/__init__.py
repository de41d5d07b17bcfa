"""
Access Tokens Domain

Stateless signed capability tokens for share links and owner sessions.
"""

from .services import PERMANENT_TTL_SECONDS, CapabilityTokenService
from .value_objects import CapabilityClaims, TokenPurpose

__all__ = [
    "CapabilityClaims",
    "CapabilityTokenService",
    "PERMANENT_TTL_SECONDS",
    "TokenPurpose",
]
