"""
Identity Repositories

Interface to the directory that checks owner credentials.
"""

from abc import ABC, abstractmethod

from .entities import Principal


class CredentialDirectory(ABC):
    """Abstract directory of owner credentials."""

    @abstractmethod
    def authenticate(self, identifier: str, secret: str) -> Principal:
        """
        Check a credential pair.

        Args:
            identifier: Login name
            secret: Plain-text password

        Returns:
            The matching Principal

        Raises:
            AuthenticationError: If the identifier is unknown or the secret is wrong
        """
        pass  # pragma: no cover
