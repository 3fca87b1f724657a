"""
catequesis_api.auth.passwords

bcrypt helpers for stored user credentials.
"""

from __future__ import annotations

import bcrypt


def hash_password(password: str, *, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    # Users without a stored hash can never log in with a password.
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash in storage.
        return False
