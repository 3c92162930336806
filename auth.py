import hashlib
import hmac
import os
from functools import wraps

from flask import redirect, request, session, url_for


# ==========================================================
#  Password hashing helpers (PBKDF2-SHA256)
# ==========================================================

def hash_password(plain_password: str, iterations: int = 200_000) -> str:
    """
    Hash a password using PBKDF2-HMAC-SHA256.

    Returns a string like:
      pbkdf2_sha256$200000$<salt_hex>$<hash_hex>
    """
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac(
        "sha256",
        plain_password.encode("utf-8"),
        salt,
        iterations,
    )
    return f"pbkdf2_sha256${iterations}${salt.hex()}${dk.hex()}"


def verify_hashed_password(plain_password: str, stored: str) -> bool:
    try:
        algo, iter_str, salt_hex, hash_hex = stored.split("$", 3)
    except ValueError:
        return False

    if algo != "pbkdf2_sha256":
        return False

    try:
        iterations = int(iter_str)
        salt = bytes.fromhex(salt_hex)
        stored_hash = bytes.fromhex(hash_hex)
    except (ValueError, TypeError):
        return False

    test_hash = hashlib.pbkdf2_hmac(
        "sha256",
        plain_password.encode("utf-8"),
        salt,
        iterations,
    )
    return hmac.compare_digest(stored_hash, test_hash)


def check_credentials(config, username: str, password: str) -> bool:
    """Single admin account: the configured username plus its password hash."""
    if not hmac.compare_digest(username.encode("utf-8"), config.web_username.encode("utf-8")):
        return False
    return verify_hashed_password(password, config.web_password_hash)


# ==========================================================
#  Session gate
# ==========================================================

def is_logged_in() -> bool:
    return bool(session.get("logged_in"))


def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not is_logged_in():
            return redirect(url_for("login", next=request.path))
        return f(*args, **kwargs)
    return wrapper
