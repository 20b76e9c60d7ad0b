"""
Create a user account that can sign in.

  python scripts/create_user.py <username> <email> [--tenant <uuid>]

The password is read from the prompt.
"""

import argparse
import getpass
import sys
import uuid

from authkeeper.core.database import SessionLocal
from authkeeper.core.exceptions import ValidationError
from authkeeper.services.user_service import user_service


def main():
    parser = argparse.ArgumentParser(description="Create a user account")
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--tenant", type=uuid.UUID, default=None)
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    db = SessionLocal()
    try:
        if user_service.get_user_by_username(db, args.username):
            print(f"User '{args.username}' already exists.")
            sys.exit(1)
        user = user_service.create_user(db, args.username, args.email, password, tenant_id=args.tenant)
        print(f"Created user {user.username} ({user.id})")
    except ValidationError as e:
        print(e.message)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
