"""Email verification challenge model."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlmodel import Field, SQLModel

from core.clock import utc_now


class EmailVerification(SQLModel, table=True):
    """A one-time code challenge sent to a user's email address.

    Only the argon2 hash of the code is stored. A record is pending while it
    is neither verified nor superseded and ``expires_at`` lies ahead.
    """

    __tablename__ = "email_verifications"
    __table_args__ = (
        Index(
            "ix_email_verifications_user_created_at",
            "user_id",
            "created_at",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), sa_column=Column(String(36), primary_key=True))
    user_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    otp_hash: str = Field(
        sa_column=Column(String(255), nullable=False)
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    attempts: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("false")),
    )
    superseded_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            default=utc_now,
            server_default=func.now(),
            nullable=False,
        )
    )
