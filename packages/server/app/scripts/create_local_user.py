"""
Script to create a user with a password for local testing.
"""

import argparse
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password
from app.core.config import get_settings
from app.core.database import Database
from app.models.user import User
from app.services.organizations import ensure_default_org
from app.services.users import normalize_email


async def upsert_user(
    session: AsyncSession, email: str, password: str, name: Optional[str] = None
) -> User:
    """Create the user in the default org, or reset the password of an existing one."""
    org = await ensure_default_org(session)

    email = normalize_email(email)
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user:
        user = User(email=email, name=name, org_id=org.id)
        session.add(user)
        print(f"Created user: {email}")
    else:
        print(f"User {email} already exists; updating password.")

    user.password_hash = hash_password(password)
    if user.org_id is None:
        user.org_id = org.id
    await session.flush()
    return user


async def create_user(email: str, password: str, name: Optional[str] = None) -> None:
    settings = get_settings()
    database = Database(settings.database_url)
    if settings.database_url.startswith("sqlite"):
        await database.create_all()

    async with database.session() as session:
        await upsert_user(session, email, password, name)

    await database.dispose()
    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--name", help="Display name")

    args = parser.parse_args()

    asyncio.run(create_user(args.email, args.password, args.name))
