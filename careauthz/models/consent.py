from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from careauthz.db.base import Base


class ClientConsent(Base):
    """
    One consent grant for a client.

    ``allowed_purposes`` is a JSON list; an empty list means unrestricted.
    ``revoked_at`` set means the grant no longer counts, whatever its expiry.
    """

    __tablename__ = "client_consents"
    __table_args__ = (UniqueConstraint("client_id", "scope_type", "scope_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    allowed_purposes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default="signature")

    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    grace_period_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
