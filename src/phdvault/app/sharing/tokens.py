"""Share token and PIN generation.

Tokens are UUIDv4 strings (122 random bits from ``os.urandom``). PINs are
five decimal digits drawn with ``secrets`` so short-lived PINs cannot be
predicted from earlier ones.
"""

from __future__ import annotations

import re
import secrets
import uuid

PIN_LENGTH = 5
_PIN_SPACE = 10 ** PIN_LENGTH
_PIN_PATTERN = re.compile(r'[0-9]{%d}' % PIN_LENGTH)


def new_token() -> str:
    """Return a fresh, practically unguessable share token."""
    return str(uuid.uuid4())


def new_pin() -> str:
    """Return a uniformly random PIN in ``00000``-``99999``."""
    return f'{secrets.randbelow(_PIN_SPACE):0{PIN_LENGTH}d}'


def is_well_formed_pin(value: str | None) -> bool:
    return bool(value) and _PIN_PATTERN.fullmatch(value) is not None
