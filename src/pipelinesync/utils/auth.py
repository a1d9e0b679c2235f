"""
Credential helpers.
"""
from __future__ import annotations

from typing import Tuple

from ..core.errors import ConfigError


def parse_two_part_id(value: str, left: str = "username", right: str = "password") -> Tuple[str, str]:
    """Split ``left:right`` on the first colon.

    Passwords may contain colons, usernames may not.

    Raises:
        ConfigError: If the value has no colon.
    """
    parts = (value or "").split(":", 1)
    if len(parts) != 2:
        # never echo the raw value, it is a secret
        raise ConfigError(f"Unexpected credentials format. Expected {left}:{right}")
    return parts[0], parts[1]
