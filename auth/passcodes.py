"""
auth/passcodes.py -- Random passcodes for out-of-band reset/verify flows.

Passcodes are drawn with the secrets module (OS CSPRNG). The random module
must never be used here: its Mersenne Twister state can be recovered from
observed outputs, which would make future passcodes predictable.

A passcode is only ever stored as a tagged hash (auth.hashing.hash_secret).
The plaintext leaves this process once, inside the passcode-sent event.
"""

from __future__ import annotations

import secrets
import string

from core.config import get_settings

# 62 symbols: digits, upper, lower.
CHARSET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def generate_passcode(length: int | None = None) -> str:
    """Return a new passcode of length characters (default Settings.passcode_length)."""
    size = length if length is not None else get_settings().passcode_length
    if size <= 0:
        raise ValueError("Passcode length must be positive.")
    return "".join(secrets.choice(CHARSET) for _ in range(size))
