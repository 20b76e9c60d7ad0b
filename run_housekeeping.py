"""Run the periodic expired-token sweep as a standalone process."""

import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from authkeeper.config import settings
from authkeeper.core.database import SessionLocal
from authkeeper.services.refresh_tokens import RefreshTokenLedger
from authkeeper.services.revocation import RevocationRegistry

logger = logging.getLogger("authkeeper.housekeeping")


def sweep(ledger: RefreshTokenLedger, registry: RevocationRegistry) -> None:
    """Delete refresh tokens and denylisted JTIs that are past expiry."""
    db = SessionLocal()
    try:
        refresh_rows = ledger.purge_expired(db)
        jti_rows = registry.purge_expired(db)
        logger.info("Purged %d expired refresh tokens and %d expired JTIs", refresh_rows, jti_rows)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Housekeeping sweep failed: %s", exc)
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    ledger = RefreshTokenLedger()
    registry = RevocationRegistry()
    try:
        while True:
            sweep(ledger, registry)
            time.sleep(settings.HOUSEKEEPING_INTERVAL_SECONDS)
    except KeyboardInterrupt:
        logger.info("Housekeeping stopped")


if __name__ == "__main__":
    main()
