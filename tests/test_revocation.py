import uuid
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authkeeper.core.database import Base, utcnow
from authkeeper.core.exceptions import StoreUnavailableError
from authkeeper.models.audit import AuthAuditEvent
from authkeeper.models.token import RevokedJti
from authkeeper.services import audit_service as audit
from authkeeper.services.access_tokens import AccessTokenIssuer, IssuedAccessToken, Principal
from authkeeper.services.audit_service import AuditService
from authkeeper.services.revocation import RevocationRegistry


class _UnreachableStore:
    """Session stand-in whose every query fails like a dropped connection."""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT revoked_jtis.jti", {}, Exception("connection refused"))


class _RevokedElsewhereFirst(AuditService):
    """Commits the same jti from another session just before the caller commits."""

    def __init__(self, other_session_factory):
        self._other = other_session_factory

    def log_event(self, db, **kwargs):
        if kwargs["action"] == audit.JTI_REVOKED:
            with self._other() as other:
                other.add(
                    RevokedJti(
                        jti=kwargs["resource_id"],
                        user_id=kwargs["user_id"],
                        revoked_at=utcnow(),
                        expires_at=utcnow() + timedelta(minutes=10),
                    )
                )
                other.commit()
        return super().log_event(db, **kwargs)


@pytest.fixture
def enforcing_db():
    """In-memory store that enforces foreign keys the way PostgreSQL does."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_revoke_is_idempotent(db, user):
    registry = RevocationRegistry()
    jti = uuid.uuid4()
    expires_at = utcnow() + timedelta(minutes=10)

    assert registry.revoke(db, jti, user.id, expires_at) is True
    assert registry.revoke(db, jti, user.id, expires_at) is False

    assert db.query(RevokedJti).count() == 1
    assert registry.is_revoked(db, jti)


def test_unknown_jti_is_not_revoked(db):
    assert RevocationRegistry().is_revoked(db, uuid.uuid4()) is False


def test_lookup_failure_denies_instead_of_allowing():
    with pytest.raises(StoreUnavailableError) as excinfo:
        RevocationRegistry().is_revoked(_UnreachableStore(), uuid.uuid4())
    assert excinfo.value.status_code == 503


def test_revoke_all_for_user_covers_recorded_tokens(db, user, make_user, key_pair):
    registry = RevocationRegistry()
    issuer = AccessTokenIssuer(key_pair, expires_minutes=15)
    other = make_user(db, username="bob")

    first = issuer.issue(Principal(user_id=user.id))
    second = issuer.issue(Principal(user_id=user.id))
    bobs = issuer.issue(Principal(user_id=other.id))
    stale = IssuedAccessToken(
        token="unused",
        jti=uuid.uuid4(),
        issued_at=utcnow() - timedelta(hours=2),
        expires_at=utcnow() - timedelta(hours=1),
    )
    for issued, owner in ((first, user), (second, user), (bobs, other), (stale, user)):
        registry.record_issued(db, issued, owner.id)

    assert registry.revoke_all_for_user(db, user.id) == 2

    assert registry.is_revoked(db, first.jti)
    assert registry.is_revoked(db, second.jti)
    assert not registry.is_revoked(db, bobs.jti)
    assert not registry.is_revoked(db, stale.jti)

    # Running it again writes nothing new.
    assert registry.revoke_all_for_user(db, user.id) == 0


def test_unrecorded_token_survives_revoke_all(db, user, key_pair):
    registry = RevocationRegistry()
    issued = AccessTokenIssuer(key_pair).issue(Principal(user_id=user.id))

    assert registry.revoke_all_for_user(db, user.id) == 0
    assert not registry.is_revoked(db, issued.jti)


def test_purge_expired_keeps_rows_for_live_tokens(db, user):
    registry = RevocationRegistry()
    expired = uuid.uuid4()
    live = uuid.uuid4()
    registry.revoke(db, expired, user.id, utcnow() - timedelta(minutes=1))
    registry.revoke(db, live, user.id, utcnow() + timedelta(minutes=30))

    assert registry.purge_expired(db) == 1

    assert not registry.is_revoked(db, expired)
    assert registry.is_revoked(db, live)


def test_revocations_land_in_audit_trail(db, user, key_pair):
    registry = RevocationRegistry()
    issued = AccessTokenIssuer(key_pair).issue(Principal(user_id=user.id))
    registry.record_issued(db, issued, user.id)
    registry.revoke(db, issued.jti, user.id, issued.expires_at)

    actions = [(e.action, e.resource_id) for e in registry.audit_trail(db, user.id)]
    assert actions == [
        (audit.ACCESS_ISSUED, str(issued.jti)),
        (audit.JTI_REVOKED, str(issued.jti)),
    ]


def test_revoke_for_unknown_user_raises_instead_of_reporting_done(enforcing_db):
    registry = RevocationRegistry()
    jti = uuid.uuid4()

    with pytest.raises(IntegrityError):
        registry.revoke(enforcing_db, jti, uuid.uuid4(), utcnow() + timedelta(minutes=10))

    assert not registry.is_revoked(enforcing_db, jti)


def test_revoke_losing_a_race_reports_already_revoked(file_session_factory, make_user):
    with file_session_factory() as db:
        owner = make_user(db)
        registry = RevocationRegistry(audit_log=_RevokedElsewhereFirst(file_session_factory))
        jti = uuid.uuid4()

        assert registry.revoke(db, jti, owner.id, utcnow() + timedelta(minutes=10)) is False
        assert registry.is_revoked(db, jti)
        assert db.query(RevokedJti).count() == 1


def test_outstanding_jtis_ignores_issuance_older_than_access_lifetime(db, user, key_pair):
    registry = RevocationRegistry(access_lifetime=timedelta(minutes=15))
    issuer = AccessTokenIssuer(key_pair, expires_minutes=60)
    old = issuer.issue(Principal(user_id=user.id))
    recent = issuer.issue(Principal(user_id=user.id))

    event = registry.record_issued(db, old, user.id)
    event.created_at = utcnow() - timedelta(minutes=30)
    db.commit()
    registry.record_issued(db, recent, user.id)

    assert [jti for jti, _ in registry.outstanding_jtis(db, user.id)] == [recent.jti]


def test_revoke_all_for_user_commits_once(db, user, key_pair, monkeypatch):
    registry = RevocationRegistry()
    issuer = AccessTokenIssuer(key_pair)
    issued = [issuer.issue(Principal(user_id=user.id)) for _ in range(3)]
    for token in issued:
        registry.record_issued(db, token, user.id)
    registry.revoke(db, issued[0].jti, user.id, issued[0].expires_at)

    commits = []
    real_commit = db.commit

    def counting_commit():
        commits.append(1)
        real_commit()

    monkeypatch.setattr(db, "commit", counting_commit)

    assert registry.revoke_all_for_user(db, user.id) == 2
    assert len(commits) == 1
    assert all(registry.is_revoked(db, token.jti) for token in issued)
    assert db.query(AuthAuditEvent).filter(AuthAuditEvent.action == audit.JTI_REVOKED).count() == 3
