"""
auth/hashing.py -- Tagged password/passcode hashing with upgrade-on-verify.

Stored hashes are tagged strings: "<algorithm>:<encoded-hash>". The tag is
the compatibility channel for new algorithms. Every tag maps to a hasher
strategy in a registry; exactly one strategy is current and is used for all
new hashes. The others are verify-only: a successful verification against a
non-current tag reports is_legacy=True so the caller can re-hash the secret
and persist it under the current algorithm. No bulk migration is needed.

Strategies:
  bcrypt         -- current. Direct bcrypt usage, no passlib wrapper. bcrypt
                    rejects (5.x) or truncates (4.x) secrets over 72 bytes; we
                    refuse to hash them and treat them as a mismatch on verify.
  pbkdf2_sha256  -- legacy, verify-only in production. Format:
                    "pbkdf2_sha256:<iterations>:<salt_b64>$<digest_b64>".

Error policy:
  Mismatch                   -> (False, False), never an exception.
  Unknown tag / corrupt body -> MalformedHashError, logged at ERROR.
  Backend failure on hash    -> HashingError.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from functools import lru_cache

import bcrypt

from auth.errors import HashingError, MalformedHashError
from core.config import get_settings

logger = logging.getLogger("authn.hashing")

_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class BcryptHasher:
    """bcrypt with a fresh salt per call. Cost factor from Settings.bcrypt_rounds."""

    tag = "bcrypt"

    def __init__(self, rounds: int | None = None) -> None:
        self._rounds = rounds

    def hash(self, secret: str) -> str:
        encoded = secret.encode("utf-8")
        if len(encoded) > _BCRYPT_MAX_BYTES:
            raise HashingError(f"Secrets longer than {_BCRYPT_MAX_BYTES} bytes cannot be hashed with bcrypt.")
        rounds = self._rounds or get_settings().bcrypt_rounds
        try:
            return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("ascii")
        except (ValueError, TypeError) as exc:
            raise HashingError() from exc

    def verify(self, body: str, secret: str) -> bool:
        encoded = secret.encode("utf-8")
        if len(encoded) > _BCRYPT_MAX_BYTES:
            # Could never have been hashed by hash() above.
            return False
        try:
            return bcrypt.checkpw(encoded, body.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise MalformedHashError() from exc


class Pbkdf2Sha256Hasher:
    """PBKDF2-HMAC-SHA256, the pre-bcrypt format. Body: "<iterations>:<salt_b64>$<digest_b64>"."""

    tag = "pbkdf2_sha256"

    def __init__(self, iterations: int = 260_000) -> None:
        self._iterations = iterations

    def hash(self, secret: str) -> str:
        salt = secrets.token_bytes(16)
        digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, self._iterations)
        salt_b64 = base64.b64encode(salt).decode("ascii")
        digest_b64 = base64.b64encode(digest).decode("ascii")
        return f"{self._iterations}:{salt_b64}${digest_b64}"

    def verify(self, body: str, secret: str) -> bool:
        try:
            iterations_text, rest = body.split(":", 1)
            salt_b64, digest_b64 = rest.split("$", 1)
            iterations = int(iterations_text)
            salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
            expected = base64.b64decode(digest_b64.encode("ascii"), validate=True)
        except (ValueError, binascii.Error) as exc:
            raise MalformedHashError() from exc
        if iterations <= 0:
            raise MalformedHashError()
        actual = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
        return hmac.compare_digest(actual, expected)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_HASHERS: dict = {}
_current_tag: str = ""


def register_hasher(hasher, current: bool = False) -> None:
    """Add a strategy to the registry, keyed by its tag.

    current=True makes it the algorithm for every new hash; the previous
    current strategy becomes verify-only (legacy).
    """
    global _current_tag
    _HASHERS[hasher.tag] = hasher
    if current:
        _current_tag = hasher.tag


def get_hasher(tag: str):
    """Return the strategy registered under tag, or None."""
    return _HASHERS.get(tag)


def current_tag() -> str:
    return _current_tag


register_hasher(BcryptHasher(), current=True)
register_hasher(Pbkdf2Sha256Hasher())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def hash_secret(secret: str) -> str:
    """Return a tagged hash of secret under the current algorithm."""
    hasher = _HASHERS[_current_tag]
    return f"{hasher.tag}:{hasher.hash(secret)}"


def verify_hash(tagged: str, secret: str) -> tuple[bool, bool]:
    """Verify secret against a tagged hash. Returns (matched, is_legacy).

    is_legacy is only ever True together with matched=True: the caller should
    re-hash the secret with hash_secret() and persist the result.
    """
    fields = tagged.split(":") if tagged else []
    if len(fields) not in (2, 3):
        logger.error("Malformed credential hash: unexpected field count %d", len(fields))
        raise MalformedHashError()
    tag = fields[0]
    hasher = _HASHERS.get(tag)
    if hasher is None:
        logger.error("Malformed credential hash: unsupported algorithm tag %r", tag)
        raise MalformedHashError()
    try:
        matched = hasher.verify(tagged[len(tag) + 1 :], secret)
    except MalformedHashError:
        logger.error("Malformed credential hash: corrupt %s body", tag)
        raise
    if not matched:
        return False, False
    return True, tag != _current_tag


def is_tagged_hash(value: str) -> bool:
    """Return True if value parses as a tagged hash with a registered algorithm.

    Does not check the body; used to validate pre-hashed secrets supplied at
    identity creation.
    """
    fields = value.split(":") if value else []
    return len(fields) in (2, 3) and fields[0] in _HASHERS


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """A throwaway hash for timing equalization.

    verify_hash() is run against it when a login identifier resolves to no
    identity, so response time does not reveal whether the identifier exists.
    Computed on first use and cached for the process lifetime.
    """
    return hash_secret(secrets.token_urlsafe(16))
