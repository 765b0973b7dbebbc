"""Tests for session token issue, verify and revoke"""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlalchemy.orm import Session

from app.models.blacklisted_token import BlacklistedToken
from app.services.blacklist import TokenBlacklist
from app.services.errors import TokenBlacklisted, TokenExpired, TokenInvalid
from app.services.tokens import SessionTokenService
from app.utils.auth import fingerprint

SECRET = "test-signing-secret"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def tokens(db: Session, clock: FakeClock) -> SessionTokenService:
    return SessionTokenService(blacklist=TokenBlacklist(db), secret=SECRET, clock=clock)


def test_verify_returns_issued_identity(tokens: SessionTokenService, clock: FakeClock):
    """A fresh token verifies to the identity it was issued for"""
    token = tokens.issue("user-1", "ana@example.com")

    identity = tokens.verify(token)
    assert identity.user_id == "user-1"
    assert identity.email == "ana@example.com"
    assert identity.token == token
    assert identity.expires_at - identity.issued_at == timedelta(hours=2)


def test_issue_sets_registered_claims(tokens: SessionTokenService):
    """Issuer, audience and a unique jti are present"""
    token = tokens.issue("user-1", "ana@example.com")
    claims = jwt.get_unverified_claims(token)

    assert claims["iss"] == "movie-platform-app"
    assert claims["aud"] == "movie-platform-users"
    assert claims["sub"] == "user-1"
    assert claims["jti"] != jwt.get_unverified_claims(tokens.issue("user-1", "ana@example.com"))["jti"]


def test_tampered_token_is_invalid(tokens: SessionTokenService):
    """Changing the signature makes the token invalid, not expired"""
    token = tokens.issue("user-1", "ana@example.com")
    head, payload, signature = token.split(".")
    forged = ".".join([head, payload, signature[::-1]])

    with pytest.raises(TokenInvalid):
        tokens.verify(forged)


def test_token_signed_with_other_secret_is_invalid(db: Session, tokens: SessionTokenService, clock: FakeClock):
    """Tokens from another signer are rejected"""
    other = SessionTokenService(blacklist=TokenBlacklist(db), secret="another-secret", clock=clock)

    with pytest.raises(TokenInvalid):
        tokens.verify(other.issue("user-1", "ana@example.com"))


def test_wrong_audience_is_invalid(db: Session, tokens: SessionTokenService, clock: FakeClock):
    """Same secret but a different audience is still rejected"""
    other = SessionTokenService(blacklist=TokenBlacklist(db), secret=SECRET, audience="admin-panel", clock=clock)

    with pytest.raises(TokenInvalid):
        tokens.verify(other.issue("user-1", "ana@example.com"))


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c"])
def test_malformed_token_is_invalid(tokens: SessionTokenService, garbage: str):
    with pytest.raises(TokenInvalid):
        tokens.verify(garbage)


def test_expired_token(tokens: SessionTokenService, clock: FakeClock):
    """Past its TTL the token reports TokenExpired"""
    token = tokens.issue("user-1", "ana@example.com")
    clock.advance(timedelta(hours=2, seconds=1))

    with pytest.raises(TokenExpired):
        tokens.verify(token)


def test_revoked_token_is_blacklisted(tokens: SessionTokenService):
    """revoke then verify never falls through to success"""
    token = tokens.issue("user-1", "ana@example.com")
    tokens.revoke(token, "user-1", reason="logout")

    with pytest.raises(TokenBlacklisted):
        tokens.verify(token)


def test_revocation_does_not_affect_other_tokens(tokens: SessionTokenService):
    """Only the revoked token is rejected"""
    first = tokens.issue("user-1", "ana@example.com")
    second = tokens.issue("user-1", "ana@example.com")
    tokens.revoke(first, "user-1")

    assert tokens.verify(second).user_id == "user-1"


def test_expired_revoked_token_reports_expired(tokens: SessionTokenService, clock: FakeClock):
    """Once past TTL the result is TokenExpired whether or not it was revoked"""
    token = tokens.issue("user-1", "ana@example.com")
    tokens.revoke(token, "user-1")
    clock.advance(timedelta(hours=3))

    with pytest.raises(TokenExpired):
        tokens.verify(token)


def test_revoke_stores_fingerprint_with_token_expiry(db: Session, tokens: SessionTokenService):
    """The blacklist entry carries the hash, never the raw token"""
    token = tokens.issue("user-1", "ana@example.com")
    expires_at = tokens.revoke(token, "user-1", reason="password_changed")

    assert TokenBlacklist(db).contains(fingerprint(token))
    assert int(expires_at.timestamp()) == jwt.get_unverified_claims(token)["exp"]

    entry = db.query(BlacklistedToken).one()
    assert entry.token_hash == fingerprint(token)
    assert entry.token_hash != token
    assert entry.reason == "password_changed"
    assert entry.expires_at == expires_at.replace(tzinfo=None)


def test_revoke_of_expired_token_is_noop(db: Session, tokens: SessionTokenService, clock: FakeClock):
    """Nothing is stored for a token that already fails on expiry"""
    token = tokens.issue("user-1", "ana@example.com")
    clock.advance(timedelta(hours=3))

    assert tokens.revoke(token, "user-1") is None
    assert TokenBlacklist(db).stats()["total"] == 0


def test_revoke_twice_is_idempotent(db: Session, tokens: SessionTokenService):
    token = tokens.issue("user-1", "ana@example.com")
    tokens.revoke(token, "user-1")
    tokens.revoke(token, "user-1")

    assert TokenBlacklist(db).stats()["total"] == 1
