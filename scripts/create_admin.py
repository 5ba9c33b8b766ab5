#!/usr/bin/env python3
"""
Script to create an admin account.
Admins cannot sign up through the API unless ALLOW_ADMIN_SIGNUP is enabled.
"""
import getpass
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.exceptions import ComplaintBoxError
from database.connection import Database
from database.models import UserRole
from services.identity_resolver import identity_resolver
import config


def create_admin():
    """Create an admin account."""
    # Initialize database
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating admin account...")
    print("=" * 50)

    # Get user input
    name = input("Full name: ").strip()
    username = input("Username: ").strip()
    email = input("Email: ").strip()
    password = getpass.getpass("Password: ").strip()

    if not name or not username or not email or not password:
        print("Error: Name, username, email, and password are required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            username_exists, email_exists = identity_resolver.exists_username_or_email(db, username, email)
            if email_exists:
                print(f"\n✗ Error: {email} is already registered")
                sys.exit(1)
            if username_exists:
                print(f"  Note: username '{username}' is also used by a non-admin account")

            resolved = identity_resolver.create_in_variant(db, UserRole.ADMIN, {
                "name": name,
                "username": username,
                "email": email,
                "password": password,
            })
            print(f"\n✓ Admin account created successfully!")
            print(f"  ID: {resolved.id}")
            print(f"  Username: {resolved.identity.username}")
            print(f"  Email: {resolved.identity.email}")
            print(f"  Role: {resolved.role.value}")
    except ComplaintBoxError as e:
        print(f"\n✗ Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
