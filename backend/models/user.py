"""User domain model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, String, UniqueConstraint, func
from sqlmodel import Field, SQLModel

from core.clock import utc_now


class UserStatus(str, Enum):
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(SQLModel, table=True):
    """Registered application user.

    A user signs in either with a password or through an OAuth provider;
    the email is required either way.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_verification', 'active', 'suspended')",
            name="ck_users_status",
        ),
        UniqueConstraint(
            "oauth_provider",
            "oauth_id",
            name="uq_users_oauth_identity",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), sa_column=Column(String(36), primary_key=True))
    first_name: str = Field(
        default="", sa_column=Column(String(255), nullable=False, server_default="")
    )
    last_name: str = Field(
        default="", sa_column=Column(String(255), nullable=False, server_default="")
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, nullable=False, index=True)
    )
    password_hash: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    oauth_provider: str | None = Field(
        default=None, sa_column=Column(String(50), nullable=True)
    )
    oauth_id: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    status: str = Field(
        default=UserStatus.PENDING_VERIFICATION.value,
        sa_column=Column(
            String(32),
            nullable=False,
            server_default=UserStatus.PENDING_VERIFICATION.value,
        ),
    )
    last_login_at: datetime | None = Field(
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
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            default=utc_now,
            server_default=func.now(),
            onupdate=utc_now,
            nullable=False,
        )
    )
