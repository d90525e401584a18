"""Password hashing helpers."""

from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash


def hash_password(plaintext: str) -> str:
    return generate_password_hash(plaintext)


def verify_password(plaintext: str, hashed: str) -> bool:
    return check_password_hash(hashed, plaintext)
