"""Tests for per-IP login attempt tracking and lockout"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models.login_attempt import LoginAttempt
from app.services.errors import AccountLocked
from app.services.login_attempts import LoginAttemptTracker
from app.utils.auth import utcnow

IP = "1.2.3.4"


@pytest.fixture
def tracker(db: Session) -> LoginAttemptTracker:
    return LoginAttemptTracker(db, max_attempts=10, lockout=timedelta(minutes=10))


def test_failures_accumulate_without_lock(tracker: LoginAttemptTracker):
    for _ in range(9):
        record = tracker.record_failure(IP)

    assert record.attempts == 9
    assert record.blocked_until is None
    tracker.check(IP)


def test_success_after_nine_failures_resets_counter(tracker: LoginAttemptTracker):
    """9 failures then 1 success leaves the IP clean and unlocked"""
    for _ in range(9):
        tracker.record_failure(IP)
    record = tracker.record_success(IP)

    assert record.attempts == 0
    assert record.blocked_until is None
    assert record.successful_logins == 1
    assert not tracker.is_blocked(IP)


def test_tenth_failure_locks_ip(tracker: LoginAttemptTracker):
    """Reaching the threshold sets blocked_until and check refuses the IP"""
    for _ in range(10):
        record = tracker.record_failure(IP)

    assert record.attempts == 10
    assert record.blocked_until is not None
    assert record.blocked_until > utcnow()

    with pytest.raises(AccountLocked) as exc_info:
        tracker.check(IP)
    assert 1 <= exc_info.value.remaining_minutes <= 10
    assert exc_info.value.detail == {"remaining_minutes": exc_info.value.remaining_minutes}


def test_other_ips_unaffected(tracker: LoginAttemptTracker):
    for _ in range(10):
        tracker.record_failure(IP)

    tracker.check("5.6.7.8")


def test_elapsed_block_is_cleared_on_check(db: Session, tracker: LoginAttemptTracker):
    """A block in the past is lifted by the next check and the counter restarts"""
    for _ in range(10):
        tracker.record_failure(IP)
    db.query(LoginAttempt).filter(LoginAttempt.ip == IP).update(
        {"blocked_until": utcnow() - timedelta(seconds=1)}
    )
    db.commit()

    tracker.check(IP)

    record = tracker.get(IP)
    assert record.blocked_until is None
    assert record.attempts == 0
    assert tracker.record_failure(IP).attempts == 1


def test_failure_after_quiet_window_starts_fresh_count(db: Session, tracker: LoginAttemptTracker):
    for _ in range(5):
        tracker.record_failure(IP)
    db.query(LoginAttempt).filter(LoginAttempt.ip == IP).update(
        {"last_attempt": utcnow() - timedelta(minutes=30)}
    )
    db.commit()

    assert tracker.record_failure(IP).attempts == 1


def test_prune_keeps_recent_and_locked_records(db: Session, tracker: LoginAttemptTracker):
    """Only idle, unlocked records past retention are deleted"""
    stale = utcnow() - timedelta(hours=25)
    db.add_all([
        LoginAttempt(ip="10.0.0.1", attempts=3, last_attempt=stale),
        LoginAttempt(ip="10.0.0.2", attempts=10, last_attempt=stale, blocked_until=utcnow() + timedelta(minutes=5)),
        LoginAttempt(ip="10.0.0.3", attempts=1, last_attempt=utcnow()),
    ])
    db.commit()

    assert tracker.prune(timedelta(hours=24)) == 1
    assert tracker.get("10.0.0.1") is None
    assert tracker.get("10.0.0.2") is not None
    assert tracker.get("10.0.0.3") is not None


def test_stats(tracker: LoginAttemptTracker):
    for _ in range(10):
        tracker.record_failure(IP)
    tracker.record_failure("5.6.7.8")
    tracker.record_success("9.9.9.9")

    stats = tracker.stats()
    assert stats["tracked_ips"] == 3
    assert stats["blocked_ips"] == 1
    assert stats["pending_failures"] == 11
    assert stats["successful_logins"] == 1


def test_concurrent_failures_are_all_counted(tracker: LoginAttemptTracker, session_factory):
    """Parallel failed logins from one IP never under-count"""
    parallel = 8
    start = threading.Barrier(parallel)

    def fail_in_own_session() -> None:
        session = session_factory()
        try:
            start.wait()
            LoginAttemptTracker(session).record_failure(IP)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=parallel) as pool:
        for future in [pool.submit(fail_in_own_session) for _ in range(parallel)]:
            future.result()

    record = tracker.get(IP)
    assert record.attempts == parallel
    assert record.blocked_until is None
