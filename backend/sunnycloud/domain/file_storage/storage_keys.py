"""
Storage key derivation.

Keys are derived from the owner, a millisecond timestamp, a random suffix
and a sanitized form of the display name, so two uploads of the same file
never collide.
"""

import re
import time
import uuid
from typing import Callable, Optional

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")

FILE_KEY_ROOT = "uploads"
GROUP_KEY_ROOT = "groups"


def sanitize_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


def _suffix(
    name: str,
    clock: Optional[Callable[[], float]] = None,
    random_hex: Optional[Callable[[], str]] = None,
) -> str:
    millis = int((clock or time.time)() * 1000)
    rand = (random_hex or (lambda: uuid.uuid4().hex))()[:8]
    return f"{millis}-{rand}-{sanitize_name(name)}"


def file_key(owner_id: str, name: str, **kwargs) -> str:
    """Key for a standalone file."""
    return f"{FILE_KEY_ROOT}/{sanitize_name(str(owner_id))}/{_suffix(name, **kwargs)}"


def group_prefix(owner_id: str, group_id: int) -> str:
    """Namespace holding every blob of a group; ends with a slash."""
    return f"{GROUP_KEY_ROOT}/{sanitize_name(str(owner_id))}/{int(group_id)}/"


def group_item_key(owner_id: str, group_id: int, name: str, **kwargs) -> str:
    """Key for an item inside a group's namespace."""
    return f"{group_prefix(owner_id, group_id)}{_suffix(name, **kwargs)}"
