# consultbook/db/models/blocked_slot.py

from __future__ import annotations
from datetime import date as _Date, datetime, timezone
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from consultbook.db.session import Base

class BlockedSlot(Base):
    __tablename__ = "blocked_slots"
    __table_args__ = (
        sa.UniqueConstraint("date", "time", name="uq_blocked_slots_date_time"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    date: Mapped[_Date] = mapped_column(sa.Date, nullable=False)
    time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False, default="", server_default="")

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<BlockedSlot {self.date} {self.time} - {self.reason}>"
