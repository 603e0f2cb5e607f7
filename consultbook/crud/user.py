# consultbook/crud/user.py
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.db.models.user import User
from consultbook.db.models.password_reset_token import PasswordResetToken


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    stmt = sa.select(User).where(sa.func.lower(User.username) == username.strip().lower())
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def create_user(db: AsyncSession, *, username: str, password_hash: str) -> User:
    """Insert a user; a duplicate username surfaces as IntegrityError on flush."""
    obj = User(username=username.strip().lower(), password_hash=password_hash)
    db.add(obj)
    await db.flush()
    await db.refresh(obj)
    return obj


async def set_password_hash(db: AsyncSession, user_id: int, password_hash: str) -> None:
    await db.execute(sa.update(User).where(User.id == user_id).values(password_hash=password_hash))


async def create_reset_token(db: AsyncSession, *, user_id: int, token: str, expires_at: datetime) -> PasswordResetToken:
    obj = PasswordResetToken(user_id=user_id, token=token, expires_at=expires_at, used=False)
    db.add(obj)
    await db.flush()
    return obj


async def consume_reset_token(db: AsyncSession, token: str, now: datetime) -> Optional[int]:
    """
    Mark a live token used and return its user id. The conditional UPDATE is the
    redemption itself, so two concurrent resets with one token can't both win.
    """
    res = await db.execute(
        sa.update(PasswordResetToken)
        .where(
            PasswordResetToken.token == token,
            PasswordResetToken.used.is_(False),
            PasswordResetToken.expires_at > now,
        )
        .values(used=True)
        .returning(PasswordResetToken.user_id)
        .execution_options(synchronize_session=False)
    )
    return res.scalar_one_or_none()
