"""
Check the PostgreSQL database for the token service.
Run once before migrating: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER authkeeper WITH PASSWORD 'authkeeper';
  CREATE DATABASE authkeeper_db OWNER authkeeper;
  GRANT ALL PRIVILEGES ON DATABASE authkeeper_db TO authkeeper;
  \q

Then: alembic upgrade head
"""

import sys

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from authkeeper.config import settings


def main():
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("DATABASE_URL is not PostgreSQL. Skipping.")
        return
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("PostgreSQL connection OK. Database exists.")
    except SQLAlchemyError as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER authkeeper WITH PASSWORD 'authkeeper';\"")
        print("  psql -U postgres -c \"CREATE DATABASE authkeeper_db OWNER authkeeper;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE authkeeper_db TO authkeeper;\"")
        sys.exit(1)


if __name__ == "__main__":
    main()
