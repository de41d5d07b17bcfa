"""
Identity Entities

The authenticated principal that owns files and groups.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """An authenticated owner."""
    principal_id: str
    identifier: str
