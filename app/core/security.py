"""Password hashing, session token primitives and credential validation.

Password records are ``scrypt$<salt b64>$<key b64>``. The ``$`` delimiter
never appears in standard base64 output, so records split unambiguously.
Records written by earlier bcrypt-based deployments (``$2b$...``) still
verify and are flagged for rehashing.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import secrets

import bcrypt

logger = logging.getLogger(__name__)

SCRYPT_TAG = "scrypt"
# scrypt cost parameters: N=2**14, r=8, p=1 uses 16 MiB per derivation.
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64
SCRYPT_MAXMEM = 64 * 1024 * 1024
SALT_BYTES = 16

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

# 32 random bytes, URL-safe base64 without padding (43 chars).
SESSION_TOKEN_BYTES = 32

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 64
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 200


def _scrypt(password: str, salt: bytes, dklen: int = SCRYPT_DKLEN) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=SCRYPT_MAXMEM,
        dklen=dklen,
    )


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    salt = secrets.token_bytes(SALT_BYTES)
    derived = _scrypt(plain_password, salt)
    return "$".join(
        (
            SCRYPT_TAG,
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(derived).decode("ascii"),
        )
    )


def _verify_scrypt(plain_password: str, record: str) -> bool:
    parts = record.split("$")
    if len(parts) != 3 or parts[0] != SCRYPT_TAG:
        return False
    salt = base64.b64decode(parts[1], validate=True)
    expected = base64.b64decode(parts[2], validate=True)
    if not salt or not expected:
        return False
    actual = _scrypt(plain_password, salt, dklen=len(expected))
    return hmac.compare_digest(expected, actual)


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored record.

    Fails closed: malformed records, unknown algorithm tags and derivation
    errors all return False instead of raising.
    """
    try:
        if hashed.startswith(BCRYPT_PREFIXES):
            return bcrypt.checkpw(plain_password.encode("utf-8")[:72], hashed.encode("utf-8"))
        return _verify_scrypt(plain_password, hashed)
    except (ValueError, TypeError, AttributeError, binascii.Error, MemoryError) as e:
        logger.debug("Password record rejected: %s", type(e).__name__)
        return False


def needs_rehash(hashed: str) -> bool:
    """True when the record was not produced by the current scrypt parameters."""
    return not hashed.startswith(SCRYPT_TAG + "$")


def generate_session_token() -> str:
    """Return a new opaque bearer token; only its hash is ever persisted."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def hash_session_token(token: str) -> str:
    """One-way SHA-256 hex digest used as the sessions.token_hash lookup key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_username(username: object) -> str | None:
    """Trim and lower-case; None when not a string or outside the length bounds."""
    if not isinstance(username, str):
        return None
    normalized = username.strip().lower()
    if not (USERNAME_MIN_LEN <= len(normalized) <= USERNAME_MAX_LEN):
        return None
    return normalized


def validate_password(password: object) -> str | None:
    if not isinstance(password, str):
        return None
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        return None
    return password
