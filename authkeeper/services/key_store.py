"""Named configuration values backed by the app_config table."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authkeeper.models.app_config import AppConfig

logger = logging.getLogger(__name__)


class ConfigKeyConflict(Exception):
    """A config_key being inserted already exists."""


class KeyMaterialStore:
    """Read and create named values. Rows are never updated through this store."""

    @staticmethod
    def get_values(db: Session, names: Iterable[str]) -> Dict[str, str]:
        names = list(names)
        rows = db.query(AppConfig).filter(AppConfig.config_key.in_(names)).all()
        return {row.config_key: row.config_value for row in rows}

    @staticmethod
    def create_all(db: Session, entries: Iterable[Tuple[str, str, Optional[str]]]) -> None:
        """
        Insert several named values in one transaction.

        Either every row is committed or none is.

        Raises:
            ConfigKeyConflict: If any name already exists (the session is rolled back).
        """
        for name, value, description in entries:
            db.add(AppConfig(config_key=name, config_value=value, description=description))
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.info("Config insert lost a uniqueness race: %s", exc.orig)
            raise ConfigKeyConflict(str(exc.orig)) from exc


key_material_store = KeyMaterialStore()
