import uuid

import pytest

from authkeeper.core.exceptions import SessionNotFoundError
from authkeeper.services.refresh_tokens import RefreshTokenLedger
from authkeeper.services.session_manager import SessionManager


def test_create_session_records_client(db, user):
    sessions = SessionManager()
    session = sessions.create(db, user.id, user.tenant_id, "10.0.0.7", "Mozilla/5.0")

    assert session.is_active
    assert session.deleted_at is None
    assert session.ip_address == "10.0.0.7"
    assert [s.id for s in sessions.list_active(db, user.id)] == [session.id]


def test_deactivate_is_soft_and_repeatable(db, user):
    sessions = SessionManager()
    session = sessions.create(db, user.id, None, None, None)

    ended = sessions.deactivate(db, session.id)
    assert ended.is_active is False
    deleted_at = ended.deleted_at
    assert deleted_at is not None

    again = sessions.deactivate(db, session.id)
    assert again.deleted_at == deleted_at
    assert sessions.list_active(db, user.id) == []
    assert sessions.get(db, session.id).id == session.id


def test_deactivate_does_not_revoke_refresh_tokens(db, user):
    sessions = SessionManager()
    ledger = RefreshTokenLedger(expire_days=30, hash_key="test-hash-key", token_bytes=32)
    session = sessions.create(db, user.id, None, None, None)
    issued = ledger.issue(db, user.id, session.id)

    sessions.deactivate(db, session.id)

    assert ledger.validate(db, issued.raw_token).ok


def test_unknown_session_raises(db):
    sessions = SessionManager()
    with pytest.raises(SessionNotFoundError):
        sessions.get(db, uuid.uuid4())
    with pytest.raises(SessionNotFoundError):
        sessions.deactivate(db, uuid.uuid4())


def test_list_for_tenant_includes_inactive_sessions(db, make_user):
    sessions = SessionManager()
    tenant_id = uuid.uuid4()
    alice = make_user(db, username="alice", tenant_id=tenant_id)
    bob = make_user(db, username="bob", tenant_id=tenant_id)
    outsider = make_user(db, username="carol")

    a = sessions.create(db, alice.id, tenant_id, None, None)
    b = sessions.create(db, bob.id, tenant_id, None, None)
    sessions.create(db, outsider.id, None, None, None)
    sessions.deactivate(db, b.id)

    assert {s.id for s in sessions.list_for_tenant(db, tenant_id)} == {a.id, b.id}


def test_touch_moves_last_active(db, user):
    sessions = SessionManager()
    session = sessions.create(db, user.id, None, None, None)
    before = session.last_active_at

    sessions.touch(db, session.id)

    assert sessions.get(db, session.id).last_active_at >= before


def test_overlong_client_address_is_clamped(db, user):
    sessions = SessionManager()
    session = sessions.create(db, user.id, None, "f" * 100, None)

    assert session.ip_address == "f" * 64
