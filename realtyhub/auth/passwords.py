"""Password hashing with bcrypt"""

import bcrypt

DEFAULT_ROUNDS = 10


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password using a fresh bcrypt salt"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Raises ValueError when ``password_hash`` is not a bcrypt hash; callers
    decide how opaque that failure should be.
    """
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
