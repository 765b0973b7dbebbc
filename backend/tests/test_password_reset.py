"""Tests for the password reset token store"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models.password_reset_token import PasswordResetToken
from app.models.user import User
from app.services.errors import TokenResetInvalidOrExpired
from app.services.password_reset import PasswordResetStore
from app.utils.auth import fingerprint, utcnow


@pytest.fixture
def user(db: Session) -> User:
    user = User(email="ana@example.com", password_hash="x", first_name="Ana", last_name="Lopez", age=30)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def store(db: Session) -> PasswordResetStore:
    return PasswordResetStore(db)


def test_create_returns_256_bit_secret_and_stores_only_hash(db: Session, store: PasswordResetStore, user: User):
    raw = store.create(user.id)

    assert len(raw) == 64
    int(raw, 16)
    record = db.query(PasswordResetToken).one()
    assert record.token_hash == fingerprint(raw)
    assert record.token_hash != raw
    assert record.used is False
    assert timedelta(minutes=59) < record.expires_at - utcnow() <= timedelta(hours=1)


def test_validate_known_secret(store: PasswordResetStore, user: User):
    raw = store.create(user.id)

    record = store.validate(raw)
    assert record is not None
    assert record.user_id == user.id
    assert store.validate("0" * 64) is None


def test_second_request_supersedes_first(db: Session, store: PasswordResetStore, user: User):
    """Only the most recently emailed secret validates"""
    first = store.create(user.id)
    second = store.create(user.id)

    assert store.validate(first) is None
    assert store.validate(second) is not None
    assert db.query(PasswordResetToken).count() == 1


def test_consumed_secret_never_validates_again(store: PasswordResetStore, user: User):
    raw = store.create(user.id)

    assert store.consume(raw).user_id == user.id
    assert store.validate(raw) is None
    with pytest.raises(TokenResetInvalidOrExpired):
        store.consume(raw)


def test_expired_secret_is_rejected(db: Session, store: PasswordResetStore, user: User):
    raw = store.create(user.id)
    db.query(PasswordResetToken).update({"expires_at": utcnow() - timedelta(seconds=1)})
    db.commit()

    assert store.validate(raw) is None
    with pytest.raises(TokenResetInvalidOrExpired):
        store.consume(raw)


def test_sweep_removes_used_and_expired(db: Session, store: PasswordResetStore, user: User):
    other = User(email="bo@example.com", password_hash="x", first_name="Bo", last_name="Berg", age=40)
    db.add(other)
    db.commit()

    used = store.create(user.id)
    store.consume(used)
    live = store.create(other.id)

    assert store.sweep_expired() == 1
    assert store.sweep_expired() == 0
    assert store.validate(live) is not None
    assert store.active_count() == (1, 1)


def test_concurrent_consume_has_single_winner(store: PasswordResetStore, user: User, session_factory):
    """Two requests racing on one secret: exactly one resets, the other is rejected"""
    raw = store.create(user.id)
    start = threading.Barrier(2)

    def consume_in_own_session() -> str:
        session = session_factory()
        try:
            start.wait()
            PasswordResetStore(session).consume(raw)
            return "consumed"
        except TokenResetInvalidOrExpired:
            return "rejected"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = [f.result() for f in [pool.submit(consume_in_own_session) for _ in range(2)]]

    assert sorted(outcomes) == ["consumed", "rejected"]
    assert store.validate(raw) is None
