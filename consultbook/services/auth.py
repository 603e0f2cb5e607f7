# consultbook/services/auth.py
"""Admin account, password hashing and the email-token password reset flow."""
from __future__ import annotations

import asyncio
import secrets
from datetime import timedelta
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.business import utc_now
from consultbook.core.errors import InvalidRequestError
from consultbook.core.logging import get_logger
from consultbook.crud import user as users_crud
from consultbook.db.models.user import User
from consultbook.services.ledger import Clock
from consultbook.services.notifications import NotificationDispatcher

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_RESET_TOKEN = "Invalid or expired reset token"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bool(pwd_context.verify(plain_password, hashed_password))
    except (ValueError, TypeError) as e:
        # malformed stored hash
        logger.error("password_verify_failed", error=str(e))
        return False


class AuthService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession],
                 dispatcher: NotificationDispatcher, clock: Clock = utc_now,
                 reset_ttl_minutes: int = 60):
        self.sessions = session_factory
        self.dispatcher = dispatcher
        self.clock = clock
        self.reset_ttl = timedelta(minutes=reset_ttl_minutes)

    # bcrypt is CPU bound; keep it off the event loop
    async def hash_password(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password)

    async def verify_password(self, password: str, hashed: str) -> bool:
        return await asyncio.to_thread(verify_password, password, hashed)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self.sessions() as db:
            return await users_crud.get_user_by_username(db, username)

    async def create_user(self, username: str, password: str) -> User:
        password_hash = await self.hash_password(password)
        try:
            async with self.sessions() as db, db.begin():
                user = await users_crud.create_user(db, username=username, password_hash=password_hash)
        except IntegrityError:
            raise InvalidRequestError("Username already exists")
        logger.info("user_created", user_id=user.id)
        return user

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        user = await self.get_user_by_username(username)
        if user is None:
            return None
        if not await self.verify_password(password, user.password_hash):
            return None
        return user

    async def ensure_admin_user(self, username: str, initial_password: Optional[str]) -> Optional[User]:
        """Create the single admin account on first start; an existing one is left alone."""
        existing = await self.get_user_by_username(username)
        if existing is not None:
            return existing
        if not initial_password:
            logger.warning("admin_bootstrap_skipped", username=username, reason="ADMIN_INITIAL_PASSWORD not set")
            return None
        try:
            user = await self.create_user(username, initial_password)
        except InvalidRequestError:
            # another worker created it between our read and insert
            return await self.get_user_by_username(username)
        logger.info("admin_user_created", username=user.username)
        return user

    async def request_password_reset(self, email: str) -> None:
        """Always succeeds so the response never reveals whether an account exists."""
        token = secrets.token_hex(32)
        async with self.sessions() as db, db.begin():
            user = await users_crud.get_user_by_username(db, email)
            if user is None:
                logger.info("password_reset_unknown_user")
                return
            await users_crud.create_reset_token(
                db, user_id=user.id, token=token, expires_at=self.clock() + self.reset_ttl
            )
        logger.info("password_reset_requested", user_id=user.id)
        self.dispatcher.password_reset(user.username, token)

    async def reset_password(self, token: str, new_password: str) -> None:
        password_hash = await self.hash_password(new_password)
        async with self.sessions() as db, db.begin():
            user_id = await users_crud.consume_reset_token(db, token, self.clock())
            if user_id is None:
                raise InvalidRequestError(INVALID_RESET_TOKEN)
            await users_crud.set_password_hash(db, user_id, password_hash)
        logger.info("password_reset_completed", user_id=user_id)
