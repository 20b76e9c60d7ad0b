import base64
import threading

import pytest
from cryptography.hazmat.primitives import serialization

from authkeeper.core.exceptions import KeyGenerationError
from authkeeper.core.security import generate_key_pair
from authkeeper.models.app_config import AppConfig
from authkeeper.services.key_provisioner import (
    RSA_PRIVATE_KEY_CONFIG,
    RSA_PUBLIC_KEY_CONFIG,
    SigningKeyProvisioner,
)
from authkeeper.services.key_store import KeyMaterialStore


class _RendezvousStore(KeyMaterialStore):
    """Hold the first read until every racing instance has read the empty store."""

    def __init__(self, barrier):
        self._barrier = barrier
        self._waited = False

    def get_values(self, db, names):
        values = KeyMaterialStore.get_values(db, names)
        if not self._waited:
            self._waited = True
            self._barrier.wait(timeout=30)
        return values


def _config_rows(session_factory):
    with session_factory() as db:
        return {row.config_key: row.config_value for row in db.query(AppConfig).all()}


def test_first_start_generates_and_persists_both_halves(session_factory):
    pair = SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()

    rows = _config_rows(session_factory)
    assert set(rows) == {RSA_PUBLIC_KEY_CONFIG, RSA_PRIVATE_KEY_CONFIG}
    assert rows[RSA_PUBLIC_KEY_CONFIG] == pair.encoded_public
    assert rows[RSA_PRIVATE_KEY_CONFIG] == pair.encoded_private
    assert pair.public_key.key_size == 2048


def test_restart_loads_byte_identical_keys(session_factory):
    first = SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()
    second = SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()

    assert second.encoded_public == first.encoded_public
    assert second.encoded_private == first.encoded_private
    assert second.kid == first.kid
    assert len(_config_rows(session_factory)) == 2


def test_concurrent_first_start_converges_on_one_pair(file_session_factory):
    instances = 3
    barrier = threading.Barrier(instances)
    results = [None] * instances
    errors = []

    def start(index):
        provisioner = SigningKeyProvisioner(
            file_session_factory,
            key_size=2048,
            store=_RendezvousStore(barrier),
        )
        try:
            results[index] = provisioner.obtain_key_pair()
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=start, args=(i,)) for i in range(instances)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)

    assert errors == []
    assert len({pair.encoded_private for pair in results}) == 1
    assert len({pair.encoded_public for pair in results}) == 1

    rows = _config_rows(file_session_factory)
    assert len(rows) == 2
    assert rows[RSA_PRIVATE_KEY_CONFIG] == results[0].encoded_private


def test_lone_public_half_fails_closed(session_factory, key_pair):
    with session_factory() as db:
        db.add(AppConfig(config_key=RSA_PUBLIC_KEY_CONFIG, config_value=key_pair.encoded_public))
        db.commit()

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()

    # The orphan is left for an operator; nothing is generated next to it.
    assert set(_config_rows(session_factory)) == {RSA_PUBLIC_KEY_CONFIG}


def test_lone_private_half_fails_closed(session_factory, key_pair):
    with session_factory() as db:
        db.add(AppConfig(config_key=RSA_PRIVATE_KEY_CONFIG, config_value=key_pair.encoded_private))
        db.commit()

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()


def test_undecodable_key_material_fails_closed(session_factory):
    with session_factory() as db:
        db.add_all([
            AppConfig(config_key=RSA_PUBLIC_KEY_CONFIG, config_value="not base64 at all!"),
            AppConfig(config_key=RSA_PRIVATE_KEY_CONFIG, config_value="bm90IGEga2V5"),
        ])
        db.commit()

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()


def test_mismatched_halves_fail_closed(session_factory, key_pair, other_key_pair):
    with session_factory() as db:
        db.add_all([
            AppConfig(config_key=RSA_PUBLIC_KEY_CONFIG, config_value=key_pair.encoded_public),
            AppConfig(config_key=RSA_PRIVATE_KEY_CONFIG, config_value=other_key_pair.encoded_private),
        ])
        db.commit()

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()


def test_non_canonical_private_half_fails_closed(session_factory, key_pair):
    # Same key, but stored as PKCS#1 instead of PKCS#8.
    pkcs1 = key_pair.private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    with session_factory() as db:
        db.add_all([
            AppConfig(config_key=RSA_PUBLIC_KEY_CONFIG, config_value=key_pair.encoded_public),
            AppConfig(config_key=RSA_PRIVATE_KEY_CONFIG, config_value=base64.b64encode(pkcs1).decode("ascii")),
        ])
        db.commit()

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()


def test_generation_failure_is_fatal(session_factory, monkeypatch):
    def broken(key_size):
        raise ValueError("key_size must be at least 1024-bits")

    monkeypatch.setattr("authkeeper.services.key_provisioner.generate_key_pair", broken)

    with pytest.raises(KeyGenerationError):
        SigningKeyProvisioner(session_factory, key_size=2048).obtain_key_pair()
    assert _config_rows(session_factory) == {}


def test_generated_pair_decodes_to_itself():
    pair = generate_key_pair(2048)
    assert pair.private_key.public_key().public_numbers() == pair.public_key.public_numbers()
