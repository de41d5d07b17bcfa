"""
Identity Domain

Owners and the credential directory that authenticates them.
"""

from .entities import Principal
from .repositories import CredentialDirectory

__all__ = ['CredentialDirectory', 'Principal']
