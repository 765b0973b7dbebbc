"""Password hashing with bcrypt"""
import re

import bcrypt

from app.services.errors import WeakPassword

_POLICY = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&]).{8,}$")

# bcrypt only reads the first 72 bytes and current releases refuse longer input
MAX_PASSWORD_BYTES = 72


def check_password_policy(password: str) -> None:
    """Raise WeakPassword unless the password meets the account policy"""
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise WeakPassword(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not _POLICY.match(password):
        raise WeakPassword()


class PasswordHasher:
    """Salted, adaptive password hashing.

    ``rounds`` is the bcrypt cost factor (2**rounds iterations). Neither method
    logs or returns the plaintext.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash = None

    def hash(self, plaintext: str) -> str:
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check plaintext against a stored hash; False on mismatch or malformed hash"""
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, plaintext: str) -> None:
        """Spend one verification's worth of time against a throwaway hash.

        Used when the account does not exist so an unknown email costs the
        same as a wrong password.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("dummy-password-for-timing")
        self.verify(plaintext, self._dummy_hash)
