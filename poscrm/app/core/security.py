"""
Password hashing utilities.

Admin passwords are stored as bcrypt hashes. Clients usually have no
password and cannot log in.
"""

from typing import Optional
import bcrypt


def get_password_hash(password: str) -> str:
    """Hash a plain-text password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Check a plain-text password against a stored hash.

    Returns False for users without a password.
    """
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False
