"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage has no compatibility shim.

The cost factor comes from Settings.bcrypt_rounds. Length policy (minimum 6
characters) belongs to the signup and reset flows, not to the hasher.

Layer rule: no imports from api/ or resource_api/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes. Newer bcrypt releases raise instead of
# truncating, so truncate here to keep hash() total.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted, deliberately slow one-way hashing.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        stored = hasher.hash("secret1")
        hasher.verify("secret1", stored)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization dummy [C1]. Computed once so the first failed
        # login is not measurably faster than later ones.
        self._dummy_hash = self.hash("authgate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain. Non-deterministic: the salt is embedded."""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Malformed hashes yield False, never an exception."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt check's worth of CPU for an unknown account [C1]."""
        self.verify(plain, self._dummy_hash)
