"""Password hashing and policy checks."""

import re

import bcrypt

from accounts.config import get_settings

PASSWORD_SYMBOLS = "@$.!%*#?&"
PASSWORD_POLICY_MESSAGE = (
    "Password must be at least 6 characters in length, one lowercase/uppercase letter, "
    f"one digit and a special character({PASSWORD_SYMBOLS})."
)
_PASSWORD_PATTERN = re.compile(r"^(?=.*\d)(?=.*[@$.!%*#?&])(?=.*[a-zA-Z])[a-zA-Z\d@$.!%*#?&]{6,}$")
# bcrypt rejects inputs longer than 72 bytes
MAX_PASSWORD_BYTES = 72
PASSWORD_TOO_LONG_MESSAGE = f"Password must be at most {MAX_PASSWORD_BYTES} bytes long."


def check_password_policy(password: str) -> str | None:
    """Return an error message if the password breaks policy, None if it is acceptable."""
    if not _PASSWORD_PATTERN.match(password):
        return PASSWORD_POLICY_MESSAGE
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return PASSWORD_TOO_LONG_MESSAGE
    return None


class PasswordHasher:
    """Salted one-way hashing with bcrypt."""

    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().BCRYPT_ROUNDS

    def hash(self, password: str) -> str:
        """Hash a plaintext password."""
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Check a plaintext password against a stored hash. Malformed hashes never match."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False


_password_hasher: PasswordHasher | None = None


def get_password_hasher() -> PasswordHasher:
    """Get singleton password hasher instance."""
    global _password_hasher
    if _password_hasher is None:
        _password_hasher = PasswordHasher()
    return _password_hasher
