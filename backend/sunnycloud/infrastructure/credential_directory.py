"""
Configured Credential Directory

CredentialDirectory backed by a list of entries from configuration.
Secrets are stored as bcrypt hashes, never in plain text.
"""

import functools
import json
import logging
import os
from typing import Dict, Iterable, Optional

import bcrypt

from sunnycloud.domain.errors import AuthenticationError
from sunnycloud.domain.identity import CredentialDirectory, Principal

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12


def hash_secret(secret: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash a secret with bcrypt for storage in ``CREDENTIALS_JSON``.

    Args:
        secret: Plain text secret
        rounds: bcrypt cost factor

    Returns:
        Bcrypt hash of the secret
    """
    hashed = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds))
    return hashed.decode("utf-8")


@functools.lru_cache(maxsize=1)
def _decoy_hash() -> bytes:
    # Checked against when the identifier is unknown so timing does not reveal it
    return bcrypt.hashpw(os.urandom(16), bcrypt.gensalt(DEFAULT_ROUNDS))


def _check(secret: str, hashed: bytes) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed)
    except ValueError:
        # Secrets beyond bcrypt's 72-byte input limit can never match
        return False


class ConfiguredCredentialDirectory(CredentialDirectory):
    """
    In-memory credential directory.

    Each entry is ``{"identifier", "principal_id", "secret_bcrypt"}``.
    """

    def __init__(self, entries: Iterable[dict]):
        self._entries: Dict[str, dict] = {}
        for entry in entries:
            identifier = entry["identifier"]
            hashed = entry["secret_bcrypt"]
            if not hashed.startswith("$2"):
                raise ValueError(f"Credential for {identifier} is not a bcrypt hash")
            self._entries[identifier] = {
                "principal_id": str(entry.get("principal_id") or identifier),
                "secret_bcrypt": hashed.encode("utf-8"),
            }

    @classmethod
    def from_json(cls, raw: str) -> "ConfiguredCredentialDirectory":
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"CREDENTIALS_JSON is not valid JSON: {e}") from e
        if not isinstance(entries, list):
            raise ValueError("CREDENTIALS_JSON must be a list of credential entries")
        return cls(entries)

    @classmethod
    def from_env(cls, variable: str = "CREDENTIALS_JSON") -> "ConfiguredCredentialDirectory":
        raw: Optional[str] = os.getenv(variable)
        if not raw:
            logger.warning(f"{variable} not set; no owner can log in")
            return cls([])
        return cls.from_json(raw)

    def __len__(self) -> int:
        return len(self._entries)

    def authenticate(self, identifier: str, secret: str) -> Principal:
        entry = self._entries.get(identifier or "")
        hashed = entry["secret_bcrypt"] if entry else _decoy_hash()

        if not _check(secret or "", hashed) or entry is None:
            raise AuthenticationError("Invalid identifier or secret")

        return Principal(principal_id=entry["principal_id"], identifier=identifier)
