"""Password hashing, legacy WordPress hash verification and strength policy."""
from __future__ import annotations

import binascii
import hashlib
import hmac
import math
import os
import re
from datetime import datetime, date
from typing import Any, Dict, List, Optional

from ageless.config import settings
from ageless.utils.logger import logger

# Default password hashing scheme: PBKDF2-HMAC-SHA256 with salt and iterations.
# Stored format: "pbkdf2_sha256$<iterations>$<salt_hex>$<hash_hex>".
_PBKDF2_ALGO_PREFIX = "pbkdf2_sha256"
_PBKDF2_ITERATIONS = 100_000
_PBKDF2_SALT_BYTES = 16

_ITOA64 = "./0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_PHPASS_RE = re.compile(r"^\$[PH]\$")
_MD5_RE = re.compile(r"^[0-9a-fA-F]{32}$")

MIN_PASSWORD_LENGTH = 12
MAX_PASSWORD_LENGTH = 128

COMMON_PASSWORDS = {
    "password", "123456", "123456789", "welcome", "admin", "password123",
    "letmein", "monkey", "1234567890", "qwerty", "abc123", "111111", "dragon",
    "master", "666666", "login", "admin123", "sunshine", "princess", "azerty",
    "654321", "superman", "123123", "solo", "qwertyuiop", "freedom",
    "whatever", "iloveyou", "trustno1", "batman", "zaq1zaq1", "password1",
    "football", "password!", "welcome123", "hello123", "charlie", "aa123456",
    "donald", "password12", "passw0rd", "123qwe", "q1w2e3r4", "admin1234",
    "root123", "user123", "test123", "guest123", "demo123", "temp123",
    "public123", "secret123",
}

KEYBOARD_PATTERNS = ("qwerty", "asdf", "1234", "abcd", "password", "login", "admin")


def hash_password(password: str) -> str:
    """Return a PBKDF2-SHA256 hash string for the given password."""
    if not isinstance(password, str):
        raise TypeError("password must be a string")

    salt = os.urandom(_PBKDF2_SALT_BYTES)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    salt_hex = binascii.hexlify(salt).decode("ascii")
    hash_hex = binascii.hexlify(dk).decode("ascii")
    return f"{_PBKDF2_ALGO_PREFIX}${_PBKDF2_ITERATIONS}${salt_hex}${hash_hex}"


def verify_password(password: str, encoded: Optional[str]) -> bool:
    """Verify a password against a PBKDF2-SHA256 encoded hash.

    Returns False if the hash is missing or malformed.
    """
    if not encoded:
        return False
    try:
        prefix, iter_str, salt_hex, hash_hex = encoded.split("$", 3)
        if prefix != _PBKDF2_ALGO_PREFIX:
            return False
        iterations = int(iter_str)
        salt = binascii.unhexlify(salt_hex.encode("ascii"))
        expected = binascii.unhexlify(hash_hex.encode("ascii"))
    except (ValueError, binascii.Error):
        return False

    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(dk, expected)


# ---- WordPress legacy hashes ----


def detect_legacy_hash_type(stored: Optional[str]) -> Optional[str]:
    if not stored:
        return None
    if _PHPASS_RE.match(stored):
        return "phpass"
    if _MD5_RE.match(stored):
        return "md5"
    return None


def _encode64(data: bytes, count: int) -> str:
    output = []
    i = 0
    while True:
        value = data[i]
        i += 1
        output.append(_ITOA64[value & 0x3F])
        if i < count:
            value |= data[i] << 8
        output.append(_ITOA64[(value >> 6) & 0x3F])
        if i >= count:
            break
        i += 1
        if i < count:
            value |= data[i] << 16
        output.append(_ITOA64[(value >> 12) & 0x3F])
        if i >= count:
            break
        i += 1
        output.append(_ITOA64[(value >> 18) & 0x3F])
        if i >= count:
            break
    return "".join(output)


def _phpass_crypt(password: str, setting: str) -> Optional[str]:
    count_log2 = _ITOA64.find(setting[3]) if len(setting) > 3 else -1
    if count_log2 < 7 or count_log2 > 30:
        return None
    salt = setting[4:12]
    if len(salt) != 8:
        return None

    pw = password.encode("utf-8")
    digest = hashlib.md5(salt.encode("utf-8") + pw).digest()
    for _ in range(1 << count_log2):
        digest = hashlib.md5(digest + pw).digest()
    return setting[:12] + _encode64(digest, 16)


def make_phpass_hash(password: str, salt: str = "testSalt", cost_log2: int = 8) -> str:
    """Build a portable phpass hash; used for fixtures and data repair scripts."""
    if len(salt) != 8:
        raise ValueError("phpass salt must be exactly 8 characters")
    if not 7 <= cost_log2 <= 30:
        raise ValueError("cost_log2 must be between 7 and 30")
    hashed = _phpass_crypt(password, "$P$" + _ITOA64[cost_log2] + salt)
    assert hashed is not None
    return hashed


def verify_legacy_password(password: str, stored: Optional[str]) -> bool:
    kind = detect_legacy_hash_type(stored)
    if kind == "phpass":
        computed = _phpass_crypt(password, stored)
        if computed is None or len(computed) != len(stored):
            return False
        return hmac.compare_digest(computed.encode("ascii"), stored.encode("ascii"))
    if kind == "md5":
        computed = hashlib.md5(password.encode("utf-8")).hexdigest()
        return hmac.compare_digest(computed, stored.lower())
    return False


def legacy_window_open(today: Optional[date] = None) -> bool:
    """True while imported WordPress hashes may still be used to sign in."""
    if not settings.AUTH_LEGACY_WP_ENABLED:
        return False
    cutoff_raw = settings.AUTH_LEGACY_WP_CUTOFF_DATE
    if not cutoff_raw:
        return True
    try:
        cutoff = datetime.strptime(cutoff_raw.strip(), "%Y-%m-%d").date()
    except ValueError:
        logger.warning(
            "[legacy-auth] AUTH_LEGACY_WP_CUTOFF_DATE=%r is not YYYY-MM-DD; window treated as closed",
            cutoff_raw,
        )
        return False
    return (today or datetime.utcnow().date()) <= cutoff


# ---- Strength policy ----


def _entropy(password: str) -> float:
    charset = 0
    if re.search(r"[a-z]", password):
        charset += 26
    if re.search(r"[A-Z]", password):
        charset += 26
    if re.search(r"[0-9]", password):
        charset += 10
    if re.search(r"[^a-zA-Z0-9]", password):
        charset += 32
    if charset == 0:
        return 0.0
    return len(password) * math.log2(charset)


def _has_sequence(password: str) -> bool:
    if re.search(r"(.)\1{2,}", password):
        return True
    for a, b, c in zip(password, password[1:], password[2:]):
        x, y, z = ord(a), ord(b), ord(c)
        if y == x + 1 and z == y + 1:
            return True
        if y == x - 1 and z == y - 1:
            return True
    return False


def password_score(password: str) -> int:
    if not password:
        return 0
    score = 0
    score += len(password) >= 8
    score += len(password) >= 12
    score += len(password) >= 16
    score += bool(re.search(r"[a-z]", password))
    score += bool(re.search(r"[A-Z]", password))
    score += bool(re.search(r"[0-9]", password))
    score += bool(re.search(r"[^a-zA-Z0-9]", password))
    score += len(set(password.lower())) >= 8
    score += not _has_sequence(password)
    score += password.lower() not in COMMON_PASSWORDS
    return min(int(score), 10)


def validate_password_strength(password: Optional[str]) -> Dict[str, Any]:
    """Check a new password against the account password policy.

    Returns ``{"is_valid", "errors", "entropy", "score"}``; the first error is
    what the API reports back.
    """
    if not password:
        return {"is_valid": False, "errors": ["Password is required"], "entropy": 0, "score": 0}

    errors: List[str] = []
    lowered = password.lower()

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be no more than {MAX_PASSWORD_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z0-9]", password):
        errors.append("Password must contain at least one special character")
    if re.search(r"(.)\1{2,}", password):
        errors.append("Password cannot contain more than 2 consecutive identical characters")
    if lowered in COMMON_PASSWORDS:
        errors.append("This password is too common. Please choose a stronger password")
    if len(set(lowered)) < 8:
        errors.append("Password must contain at least 8 different characters")
    if any(pattern in lowered for pattern in KEYBOARD_PATTERNS):
        errors.append("Password cannot contain common keyboard patterns or dictionary words")

    entropy = _entropy(password)
    if entropy < 40:
        errors.append("Password complexity is too low. Use a more diverse mix of characters")
    if _has_sequence(password):
        errors.append("Password contains predictable patterns. Avoid sequential or repetitive characters")

    return {
        "is_valid": not errors,
        "errors": errors,
        "entropy": round(entropy),
        "score": password_score(password),
    }
