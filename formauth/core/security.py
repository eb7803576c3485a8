"""
Password hashing (bcrypt via passlib), token digests and random token values.
"""

from __future__ import annotations

import hashlib
import secrets

from passlib.context import CryptContext
from passlib.exc import PasswordSizeError

from formauth.core.exceptions import ErrorKind, WebAuthError

DEFAULT_ROUNDS = 12

# passlib refuses to hash anything longer
PASSWORD_MAX_BYTES = 4096


# ── Passwords ───────────────────────────────────────────────────────
class PasswordHasher:
    """Salted, self-describing bcrypt verifiers with a configurable cost."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, plaintext: str) -> str:
        try:
            return self._context.hash(plaintext)
        except PasswordSizeError as exc:
            raise WebAuthError(ErrorKind.VALIDATION, f"password longer than {PASSWORD_MAX_BYTES} bytes") from exc

    def verify(self, verifier: str, plaintext: str) -> bool:
        """True if ``plaintext`` matches ``verifier``; malformed verifiers never match."""
        try:
            return self._context.verify(plaintext, verifier)
        except (ValueError, TypeError):
            return False

    def dummy_verify(self) -> None:
        # Spends the same time as a real verify when there is no user to check.
        self._context.dummy_verify()


# ── Tokens ──────────────────────────────────────────────────────────
def digest_token(raw: str) -> str:
    """SHA-256 hex digest of a raw token value; the only form stored at rest."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def random_urlsafe(n_bytes: int) -> str:
    """URL-safe base64 encoding of ``n_bytes`` random bytes."""
    if n_bytes < 0:
        raise WebAuthError(ErrorKind.INVALID_LENGTH, f"invalid random length {n_bytes}")
    try:
        return secrets.token_urlsafe(n_bytes)
    except OSError as exc:
        raise WebAuthError(ErrorKind.RNG_FAILURE, str(exc)) from exc
