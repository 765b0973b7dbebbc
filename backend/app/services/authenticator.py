"""Credential checking behind a pluggable interface"""
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.models.user import User
from app.services.passwords import PasswordHasher
from app.utils.auth import normalize_email


class Authenticator(Protocol):
    """Anything that can turn an email/password pair into a local User.

    The local credential table is the system of record. An external identity
    provider would implement this protocol and map its subject onto a User
    row; it must never be combined with LocalAuthenticator for the same
    account.
    """

    def authenticate(self, email: str, password: str) -> Optional[User]:
        ...


class LocalAuthenticator:
    """Checks passwords against the bcrypt hashes in the users table"""

    def __init__(self, db: Session, hasher: PasswordHasher):
        self.db = db
        self.hasher = hasher

    def find_user(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.find_user(email)
        if user is None:
            # keep unknown-email and wrong-password indistinguishable by timing
            self.hasher.dummy_verify(password)
            return None
        if not self.hasher.verify(password, user.password_hash):
            return None
        return user
