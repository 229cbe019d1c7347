from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from restaurant_ledger.core.config import settings
from restaurant_ledger.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(Base):
    """One row of the single key-value table shared by every entity kind."""

    __tablename__ = settings.RECORDS_TABLE
    __table_args__ = (Index(f"ix_{settings.RECORDS_TABLE}_record_type", "record_type"),)

    pk: Mapped[str] = mapped_column(String(255), primary_key=True)
    sk: Mapped[str] = mapped_column(String(255), primary_key=True)
    record_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # Bumped on every write; conditional writes compare against it.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
