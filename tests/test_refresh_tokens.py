import threading
from datetime import timedelta

from authkeeper.core.database import utcnow
from authkeeper.core.results import TokenErrorKind
from authkeeper.models.token import RefreshToken
from authkeeper.services.refresh_tokens import RefreshTokenLedger
from authkeeper.services.session_manager import SessionManager


def _ledger():
    return RefreshTokenLedger(expire_days=30, hash_key="test-hash-key", token_bytes=32)


def _open_session(db, user):
    return SessionManager().create(db, user.id, user.tenant_id, "127.0.0.1", "pytest")


def test_issue_stores_only_the_digest(db, user):
    ledger = _ledger()
    session = _open_session(db, user)

    issued = ledger.issue(db, user.id, session.id)

    stored = db.get(RefreshToken, issued.record.id)
    assert stored.token_hash == ledger.digest(issued.raw_token)
    assert stored.token_hash != issued.raw_token
    assert stored.session_id == session.id
    assert stored.expires_at - stored.created_at == timedelta(days=30)
    assert ledger.validate(db, issued.raw_token).ok


def test_rotation_consumes_presented_token(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    original = ledger.issue(db, user.id, session.id)

    rotated = ledger.rotate(db, original.raw_token)
    assert rotated.ok
    successor = rotated.value
    assert successor.raw_token != original.raw_token
    assert successor.record.session_id == session.id

    replay = ledger.rotate(db, original.raw_token)
    assert not replay.ok
    assert replay.error is TokenErrorKind.REVOKED
    assert ledger.validate(db, successor.raw_token).ok


def test_rotation_chain_rejects_every_earlier_token(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    t1 = ledger.issue(db, user.id, session.id)
    t2 = ledger.rotate(db, t1.raw_token).unwrap()
    t3 = ledger.rotate(db, t2.raw_token).unwrap()

    assert ledger.rotate(db, t1.raw_token).error is TokenErrorKind.REVOKED
    assert ledger.rotate(db, t2.raw_token).error is TokenErrorKind.REVOKED
    assert ledger.validate(db, t3.raw_token).ok
    assert len(ledger.list_for_user(db, user.id)) == 1
    assert len(ledger.list_for_user(db, user.id, include_revoked=True)) == 3


def test_unknown_and_empty_tokens_are_not_found(db, user):
    ledger = _ledger()
    assert ledger.validate(db, "never-issued").error is TokenErrorKind.NOT_FOUND
    assert ledger.validate(db, "").error is TokenErrorKind.NOT_FOUND
    assert ledger.rotate(db, "never-issued").error is TokenErrorKind.NOT_FOUND


def test_token_under_other_hash_key_is_not_found(db, user):
    session = _open_session(db, user)
    issued = _ledger().issue(db, user.id, session.id)

    rekeyed = RefreshTokenLedger(expire_days=30, hash_key="rotated-hash-key", token_bytes=32)
    assert rekeyed.validate(db, issued.raw_token).error is TokenErrorKind.NOT_FOUND


def test_expired_token_is_rejected_even_if_unrevoked(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    issued = ledger.issue(db, user.id, session.id)

    later = issued.record.expires_at + timedelta(seconds=1)
    assert ledger.validate(db, issued.raw_token, now=later).error is TokenErrorKind.EXPIRED

    record = db.get(RefreshToken, issued.record.id)
    record.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    result = ledger.rotate(db, issued.raw_token)
    assert result.error is TokenErrorKind.EXPIRED
    assert db.get(RefreshToken, issued.record.id).revoked_at is None


def test_revoked_check_precedes_expiry(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    issued = ledger.issue(db, user.id, session.id)
    ledger.revoke(db, issued.record.id)

    later = issued.record.expires_at + timedelta(days=1)
    assert ledger.validate(db, issued.raw_token, now=later).error is TokenErrorKind.REVOKED


def test_revoke_single_token_is_idempotent(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    issued = ledger.issue(db, user.id, session.id)

    assert ledger.revoke(db, issued.record.id) is True
    assert ledger.revoke(db, issued.record.id) is False
    assert ledger.validate(db, issued.raw_token).error is TokenErrorKind.REVOKED


def test_revoke_all_covers_every_session(db, user, make_user):
    ledger = _ledger()
    other = make_user(db, username="bob")
    laptop = _open_session(db, user)
    phone = _open_session(db, user)
    bobs = _open_session(db, other)
    a = ledger.issue(db, user.id, laptop.id)
    b = ledger.issue(db, user.id, phone.id)
    c = ledger.issue(db, other.id, bobs.id)

    assert ledger.revoke_all(db, user.id) == 2

    assert ledger.validate(db, a.raw_token).error is TokenErrorKind.REVOKED
    assert ledger.validate(db, b.raw_token).error is TokenErrorKind.REVOKED
    assert ledger.validate(db, c.raw_token).ok
    assert ledger.revoke_all(db, user.id) == 0


def test_revoke_for_session_leaves_other_sessions(db, user):
    ledger = _ledger()
    laptop = _open_session(db, user)
    phone = _open_session(db, user)
    a = ledger.issue(db, user.id, laptop.id)
    b = ledger.issue(db, user.id, phone.id)

    assert ledger.revoke_for_session(db, laptop.id) == 1

    assert ledger.validate(db, a.raw_token).error is TokenErrorKind.REVOKED
    assert ledger.validate(db, b.raw_token).ok


def test_purge_expired_only_removes_dead_rows(db, user):
    ledger = _ledger()
    session = _open_session(db, user)
    stale = ledger.issue(db, user.id, session.id)
    live = ledger.issue(db, user.id, session.id)

    record = db.get(RefreshToken, stale.record.id)
    record.expires_at = utcnow() - timedelta(days=1)
    db.commit()

    assert ledger.purge_expired(db) == 1
    assert ledger.validate(db, stale.raw_token).error is TokenErrorKind.NOT_FOUND
    assert ledger.validate(db, live.raw_token).ok


def test_concurrent_rotation_has_exactly_one_winner(file_session_factory, make_user):
    ledger = _ledger()
    with file_session_factory() as db:
        owner = make_user(db)
        session = _open_session(db, owner)
        owner_id = owner.id
        issued = ledger.issue(db, owner.id, session.id)

    racers = 4
    barrier = threading.Barrier(racers)
    results = []
    lock = threading.Lock()

    def rotate():
        with file_session_factory() as db:
            barrier.wait(timeout=30)
            result = ledger.rotate(db, issued.raw_token)
            outcome = (result.error, result.value.record.id if result.ok else None)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=rotate) for _ in range(racers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)

    assert len(results) == racers
    winners = [token_id for error, token_id in results if error is None]
    assert len(winners) == 1
    assert all(error is TokenErrorKind.REVOKED for error, _ in results if error is not None)

    with file_session_factory() as db:
        live = ledger.list_for_user(db, owner_id)
        assert [t.id for t in live] == winners
        assert len(ledger.list_for_user(db, owner_id, include_revoked=True)) == 2
