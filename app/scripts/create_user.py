"""
Create an account directly, e.g. the first admin. Run from project root:
  python -m app.scripts.create_user NAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user "Site Admin" admin@example.com your-secure-password admin
"""
import argparse
import sys

from email_validator import EmailNotValidError, validate_email

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.passwords import get_credential_store
from app.models.user import NAME_MAX_LEN, ROLE_ADMIN, ROLE_USER, User
from app.schemas.auth import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN
from app.services.auth import generate_username, profile_url

ROLES = {"user": ROLE_USER, "admin": ROLE_ADMIN}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a blog account without email activation.")
    parser.add_argument("name", help=f"Display name (1-{NAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("role", nargs="?", default="user", choices=sorted(ROLES))
    args = parser.parse_args(argv)

    name = args.name.strip()
    if not name or len(name) > NAME_MAX_LEN:
        print("Invalid name length.", file=sys.stderr)
        return 1
    try:
        email = validate_email(args.email, check_deliverability=False).normalized.lower()
    except EmailNotValidError:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    settings = get_settings()
    db = SessionLocal()
    try:
        if db.query(User).filter(User.email == email).first():
            print(f"User '{email}' already exists.", file=sys.stderr)
            return 1
        credential = get_credential_store(settings).set_password(args.password)
        username = generate_username()
        user = User(
            name=name,
            email=email,
            username=username,
            profile=profile_url(username, settings),
            salt=credential.salt,
            password_hash=credential.password_hash,
            role=ROLES[args.role],
            reset_password_link="",
        )
        db.add(user)
        db.commit()
        print(f"Created user '{username}' ({email}) with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
