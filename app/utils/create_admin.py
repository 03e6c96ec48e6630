"""
Bootstrap the first superadmin account.

    python -m app.utils.create_admin --email admin@holyrosary.org --name "Store Admin"
"""
import argparse
import asyncio
import getpass
import sys

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

# Import all models first so every table is registered
import app.models  # noqa: F401
from app.core.exceptions import PharmacyError
from app.core.roles import Role
from app.db.base import Base
from app.db.session import AsyncSessionLocal, engine
from app.models.user.user_model import User
from app.schemas.user_schema import UserCreate
from app.services.auth.auth_service import AuthService


DEFAULT_PASSWORD = "Admin@123456"


async def create_initial_admin(name: str, email: str, password: str) -> int:
    """Create the superadmin unless a superadmin already exists"""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(User).where(User.role == Role.SUPERADMIN.value).limit(1)
        )
        existing = result.scalar_one_or_none()

        if existing:
            print(f"Superadmin already exists ({existing.email}). Skipping creation.")
            return 0

        try:
            admin_data = UserCreate(
                name=name,
                email=email,
                password=password,
                role=Role.SUPERADMIN,
            )
            user = await AuthService.create_user(db, admin_data)
        except (PydanticValidationError, PharmacyError) as e:
            print(f"\n Error creating admin: {e}")
            return 1

    print("\n" + "=" * 60)
    print("ADMIN USER CREATED SUCCESSFULLY!")
    print("=" * 60)
    print(f"Name:     {user.name}")
    print(f"Email:    {user.email}")
    print(f"Role:     {user.role}")
    print(f"User ID:  {user.id}")
    print("=" * 60)
    if password == DEFAULT_PASSWORD:
        print("\n  IMPORTANT: Change the default password after first login!")
    print("\n")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the initial superadmin user")
    parser.add_argument("--name", default="System Administrator")
    parser.add_argument("--email", default="admin@holyrosary.org")
    parser.add_argument(
        "--password",
        default=None,
        help="Prompted for when omitted; empty input keeps the default"
    )
    args = parser.parse_args(argv)

    password = args.password
    if password is None:
        password = getpass.getpass("Password (blank for default): ") or DEFAULT_PASSWORD

    try:
        return asyncio.run(create_initial_admin(args.name, args.email, password))
    finally:
        asyncio.run(engine.dispose())


if __name__ == "__main__":
    print("\n Holy Rosary Pharmacy - Admin User Creation\n")
    sys.exit(main())
