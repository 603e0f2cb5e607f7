# consultbook/db/base.py

"""
Imports all ORM models so Alembic and create_all can discover them.
Whenever you add a new model, import it here.
"""
from sqlalchemy.ext.asyncio import AsyncEngine

from consultbook.db.models.user import User
from consultbook.db.models.password_reset_token import PasswordResetToken
from consultbook.db.models.booking import Booking
from consultbook.db.models.blocked_slot import BlockedSlot
from consultbook.db.session import engine as default_engine, Base

async def init_db(engine: AsyncEngine | None = None):
    """Create all tables (dev/test; production runs alembic)."""
    async with (engine or default_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
