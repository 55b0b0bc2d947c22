"""
Create a user (e.g. first admin). Run from project root:
  python -m app.scripts.create_user EMAIL PASSWORD NAME [role]
Example:
  python -m app.scripts.create_user admin@example.com 'Str0ng!Pass' "Site Admin" admin
"""
import argparse
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.security import check_password_strength, hash_password
from app.models import UserRole
from app.schemas.auth import NAME_MAX_LEN, NAME_MIN_LEN
from app.services.credential_store import CredentialStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a Financial Dashboard API user.")
    parser.add_argument("email", help="Login email")
    parser.add_argument("password", help="Password (8+ chars, upper, lower, digit, symbol)")
    parser.add_argument("name", help=f"Display name ({NAME_MIN_LEN}-{NAME_MAX_LEN} chars)")
    parser.add_argument(
        "role", nargs="?", default=UserRole.USER.value, choices=[r.value for r in UserRole]
    )
    args = parser.parse_args()

    email = args.email.strip().lower()
    name = args.name.strip()
    if "@" not in email or len(email) > 255:
        print("Invalid email.", file=sys.stderr)
        return 1
    if not (NAME_MIN_LEN <= len(name) <= NAME_MAX_LEN):
        print("Invalid name length.", file=sys.stderr)
        return 1
    reason = check_password_strength(args.password)
    if reason:
        print(reason, file=sys.stderr)
        return 1

    settings = get_settings()
    db = SessionLocal()
    try:
        store = CredentialStore(db)
        if store.email_exists(email):
            print(f"User '{email}' already exists.", file=sys.stderr)
            return 1
        store.create_user(
            name=name,
            email=email,
            password_hash=hash_password(args.password, rounds=settings.BCRYPT_ROUNDS),
            role=UserRole(args.role),
        )
        db.commit()
        print(f"Created user '{email}' with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
