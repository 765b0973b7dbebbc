"""Authentication utilities"""
import hashlib
import secrets
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form stored in the database)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fingerprint(secret: str) -> str:
    """One-way SHA-256 fingerprint of a token or reset secret"""
    return hashlib.sha256(secret.encode()).hexdigest()


def generate_reset_secret() -> str:
    """Generate a 256-bit random reset secret (64 hex chars)"""
    return secrets.token_hex(32)


def generate_user_id() -> str:
    """Generate a unique user ID"""
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup"""
    return email.strip().lower()
