# consultbook/db/models/booking.py

from __future__ import annotations
from datetime import date as _Date, datetime, timezone
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from consultbook.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # One live booking per slot; cancelled rows stay for history
        sa.Index(
            "uq_bookings_active_slot",
            "date",
            "time",
            unique=True,
            postgresql_where=sa.text("cancelled = false"),
            sqlite_where=sa.text("cancelled = 0"),
        ),
        sa.Index("ix_bookings_date", "date"),
        sa.Index("ix_bookings_email", "email"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(320), nullable=False)
    company: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    message: Mapped[str | None] = mapped_column(sa.Text)

    # Day-key (business timezone) and catalog label, e.g. 2024-05-06 / "14:00"
    date: Mapped[_Date] = mapped_column(sa.Date, nullable=False)
    time: Mapped[str] = mapped_column(sa.String(5), nullable=False)

    confirmation_token: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    confirmed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    cancelled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.date} {self.time} {'cancelled' if self.cancelled else 'active'}>"
