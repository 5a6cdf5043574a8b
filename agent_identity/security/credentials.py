"""Salted scrypt hashing for agent credentials."""

from __future__ import annotations

import hashlib
import hmac
import secrets


class CredentialHasher:
    """Derive and verify ``salt:key`` credential records with scrypt.

    Parameters
    ----------
    n, r, p:
        scrypt cost parameters. The defaults match the interactive-login
        profile used by the rest of the platform.
    key_length:
        Length in bytes of the derived key.
    salt_bytes:
        Number of random bytes in each salt (hex encoded in the record).
    """

    def __init__(
        self,
        *,
        n: int = 16384,
        r: int = 8,
        p: int = 1,
        key_length: int = 64,
        salt_bytes: int = 16,
    ) -> None:
        self._n = n
        self._r = r
        self._p = p
        self._key_length = key_length
        self._salt_bytes = salt_bytes
        self._maxmem = 256 * n * r

    def _derive(self, secret: str, salt: str) -> bytes:
        return hashlib.scrypt(
            secret.encode("utf-8"),
            salt=salt.encode("utf-8"),
            n=self._n,
            r=self._r,
            p=self._p,
            maxmem=self._maxmem,
            dklen=self._key_length,
        )

    def hash(self, secret: str) -> str:
        """Return a fresh ``salt:derived-key-hex`` record for ``secret``."""
        salt = secrets.token_hex(self._salt_bytes)
        return f"{salt}:{self._derive(secret, salt).hex()}"

    def verify(self, secret: str, hash_record: str | None) -> bool:
        """Return ``True`` when ``secret`` matches the stored record.

        Malformed records verify as ``False``; a missing record raises
        ``ValueError`` because it means the caller loaded the wrong row.
        """
        if hash_record is None:
            raise ValueError("credential record is missing")
        salt, separator, stored_hex = hash_record.partition(":")
        if not separator or not salt or not stored_hex:
            return False
        try:
            stored_key = bytes.fromhex(stored_hex)
        except ValueError:
            return False
        if len(stored_key) != self._key_length:
            return False
        return hmac.compare_digest(self._derive(secret, salt), stored_key)
