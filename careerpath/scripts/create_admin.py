"""Create an admin user interactively.

Usage: python -m careerpath.scripts.create_admin
"""

import getpass
import sys

from sqlalchemy import select
from sqlalchemy.orm import Session

from careerpath.core.config import get_settings
from careerpath.core.security import hash_password
from careerpath.models.user import User


def create_admin(session: Session, email: str, full_name: str, password: str) -> User:
    existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing:
        raise ValueError(f"email {email} is already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        role="admin",
    )
    session.add(user)
    session.commit()
    return user


def main():
    from careerpath.core.database import get_sync_session

    print("=== CareerPath: create admin ===\n")

    full_name = input("Full name: ").strip()
    if not full_name:
        print("Full name is required.")
        sys.exit(1)

    email = input("Email: ").strip()
    if not email or "@" not in email:
        print("Invalid email.")
        sys.exit(1)

    password = getpass.getpass("Password (min 8 chars): ")
    if len(password) < 8:
        print("Password too short.")
        sys.exit(1)

    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("Passwords do not match.")
        sys.exit(1)

    session = get_sync_session()
    try:
        create_admin(session, email, full_name, password)
    except ValueError as e:
        print(f"Error: {e}.")
        sys.exit(1)
    finally:
        session.close()

    print("\nAdmin created.")
    print(f"  Email: {email}")
    print(f"  Sign in at {get_settings().FRONTEND_URL}")


if __name__ == "__main__":
    main()
