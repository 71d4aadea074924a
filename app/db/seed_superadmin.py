"""
Seed script to create the first superadmin user.

Registration is itself superadmin-only, so a fresh deployment needs one.
Run once (after init_db) with env set:
  SUPERADMIN_USERNAME=admin
  SUPERADMIN_PASSWORD=YourSecure@Passw0rd

Existing users are left untouched.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.core.enums import UserRole
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def seed_superadmin(
    db: AsyncSession,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> Optional[User]:
    """Create the superadmin if credentials are configured and the username is free. Returns the new user."""
    username = (username or settings.superadmin_username or "").strip()
    password = password or settings.superadmin_password
    if not username or not password:
        logger.info("No superadmin username/password configured; skipping seed")
        return None

    result = await db.execute(select(User).where(User.username == username))
    if result.scalar_one_or_none() is not None:
        logger.info("User %s already exists; skipping superadmin seed", username)
        return None

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=UserRole.SUPERADMIN.value,
        school_id=None,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created superadmin user %s", username)
    return user


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    async with AsyncSessionLocal() as db:
        try:
            await seed_superadmin(db)
        except Exception:
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
