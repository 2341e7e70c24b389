"""Password, email and random-token helpers shared by the auth routes."""
import re
import secrets
from typing import List, Tuple

import bcrypt

email_regex = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_password(password: str) -> Tuple[bool, List[str]]:
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return not errors, errors


def is_valid_email(email: str) -> bool:
    return bool(email_regex.match(email or ""))


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_secure_token() -> str:
    """64 hex characters (32 random bytes) for reset / verification links."""
    return secrets.token_hex(32)


BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; newer releases raise instead of truncating
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=10)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False
