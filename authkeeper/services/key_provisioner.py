"""Provision the durable RSA signing key pair."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authkeeper.config import settings
from authkeeper.core.exceptions import KeyGenerationError
from authkeeper.core.security import SigningKeyPair, decode_key_pair, generate_key_pair
from authkeeper.services.key_store import ConfigKeyConflict, KeyMaterialStore, key_material_store

logger = logging.getLogger(__name__)

RSA_PUBLIC_KEY_CONFIG = "rsa_public_key"
RSA_PRIVATE_KEY_CONFIG = "rsa_private_key"


class SigningKeyProvisioner:
    """
    Load the fleet-wide signing key pair, generating it exactly once.

    The first instance to commit both rows wins. An instance that loses the
    insert race discards its own pair and uses the persisted one, so every
    instance signs with byte-identical keys.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        key_size: Optional[int] = None,
        store: KeyMaterialStore = key_material_store,
    ):
        self._session_factory = session_factory
        self._key_size = key_size or settings.RSA_KEY_SIZE
        self._store = store

    def obtain_key_pair(self) -> SigningKeyPair:
        """
        Get or generate the signing key pair.

        Returns:
            SigningKeyPair: The persisted pair

        Raises:
            KeyGenerationError: On any generation, decode or store failure.
                Callers must abort startup.
        """
        with self._session_factory() as db:
            try:
                existing = self._load(db)
                if existing is not None:
                    logger.info("Loaded signing key pair from store (kid=%s)", existing.kid)
                    return existing

                logger.info("No signing keys found in store. Generating new %d-bit key pair", self._key_size)
                return self._generate_and_persist(db)
            except SQLAlchemyError as exc:
                logger.error("Record store failure while provisioning signing keys: %s", exc)
                raise KeyGenerationError("Record store failure while provisioning signing keys") from exc

    def _generate_and_persist(self, db: Session) -> SigningKeyPair:
        try:
            pair = generate_key_pair(self._key_size)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyGenerationError(f"RSA key generation failed: {exc}") from exc

        try:
            self._store.create_all(
                db,
                [
                    (
                        RSA_PUBLIC_KEY_CONFIG,
                        pair.encoded_public,
                        f"RSA-{self._key_size} public key for access token verification",
                    ),
                    (
                        RSA_PRIVATE_KEY_CONFIG,
                        pair.encoded_private,
                        f"RSA-{self._key_size} private key for access token signing (KEEP SECURE)",
                    ),
                ],
            )
        except ConfigKeyConflict:
            logger.warning("Another instance persisted signing keys first; adopting the stored pair")
            winner = self._load(db)
            if winner is None:
                raise KeyGenerationError("Signing key insert conflicted but no stored pair was found")
            return winner

        logger.info("New signing key pair generated and persisted (kid=%s)", pair.kid)
        return pair

    def _load(self, db: Session) -> Optional[SigningKeyPair]:
        values = self._store.get_values(db, [RSA_PUBLIC_KEY_CONFIG, RSA_PRIVATE_KEY_CONFIG])
        public_value = values.get(RSA_PUBLIC_KEY_CONFIG)
        private_value = values.get(RSA_PRIVATE_KEY_CONFIG)

        if public_value is None and private_value is None:
            return None
        if public_value is None or private_value is None:
            # A lone half cannot be paired with a fresh key and rows are never updated.
            missing = RSA_PUBLIC_KEY_CONFIG if public_value is None else RSA_PRIVATE_KEY_CONFIG
            raise KeyGenerationError(f"Incomplete signing key material in store: '{missing}' is missing")

        try:
            return decode_key_pair(public_value, private_value)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyGenerationError(f"Stored signing keys could not be decoded: {exc}") from exc
