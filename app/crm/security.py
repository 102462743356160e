from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash


class PasswordHasher:
    """
    One-way credential hashing.

    Uses werkzeug's salted scrypt (memory-hard, per-record salt). The digest string
    embeds method and salt, so ``verify`` needs nothing but the stored value.
    """

    def __init__(self, method: str = "scrypt", salt_length: int = 16) -> None:
        self.method = method
        self.salt_length = salt_length

    def hash(self, plaintext: str) -> str:
        return generate_password_hash(plaintext, method=self.method, salt_length=self.salt_length)

    def verify(self, plaintext: str, digest: str | None) -> bool:
        if not digest or plaintext is None:
            return False
        try:
            return check_password_hash(digest, plaintext)
        except ValueError:
            # Unknown/garbled method prefix in the stored digest.
            return False


password_hasher = PasswordHasher()
