"""Random identifiers and bearer tokens issued by the identity service."""

from __future__ import annotations

import re
import secrets
import uuid
from typing import Final

INVITATION_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)
SESSION_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{64}$")


def new_record_id() -> str:
    """Return an opaque identifier for a new record."""
    return str(uuid.uuid4())


def generate_invitation_token() -> str:
    """Return a random UUIDv4 invitation token (122 bits of entropy)."""
    return str(uuid.uuid4())


def generate_session_token() -> str:
    """Return a 256-bit session token as 64 hex characters."""
    return secrets.token_hex(32)
