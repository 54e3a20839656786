import logging
import os
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.security import Role
from backend.app.models.user_orm import UserORM

logger = logging.getLogger(__name__)

# username, role, full name, callsign, password env var
DEFAULT_USERS = (
    ("admin", Role.ADMIN, "Safety Officer", "SO", "ADMIN_PASSWORD"),
    ("controller", Role.EVENT_CONTROLLER, "Event Control", "Control", "CONTROLLER_PASSWORD"),
    ("operator", Role.OPERATOR, "Loggist", "Loggist", "OPERATOR_PASSWORD"),
    ("viewer", Role.VIEWER, "Observer", None, "VIEWER_PASSWORD"),
)


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as e:
        # Malformed hash in the users table
        logger.error(f"Password verification error: {e}")
        return False


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[UserORM]:
    result = await db.execute(select(UserORM).where(UserORM.username == username))
    return result.scalar_one_or_none()


async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[UserORM]:
    """The active user with these credentials, or None."""
    user = await get_user_by_username(db, username)
    if user is None or not user.is_active:
        return None
    return user if verify_password(password, user.hashed_password) else None


async def seed_default_users(db: AsyncSession) -> None:
    """Create the control room's default accounts on an empty users table. Passwords come from env vars."""
    if (await db.execute(select(UserORM.id).limit(1))).first() is not None:
        return

    for username, role, full_name, callsign, password_env in DEFAULT_USERS:
        db.add(UserORM(
            username=username,
            hashed_password=hash_password(os.getenv(password_env, "CHANGE_ME")),
            role=role,
            full_name=full_name,
            callsign=callsign,
        ))
    await db.commit()
    logger.info(f"Seeded {len(DEFAULT_USERS)} default users")
