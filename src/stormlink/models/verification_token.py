"""Verification token model for email verification."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from stormlink.models.base import utcnow


class VerificationToken(SQLModel, table=True):
    """Single-use token proving control of an email address.

    Tokens are looked up by value only. Several rows may transiently exist for
    one user when issuances race; issuance deletes prior rows for the user
    before inserting, so normally only one is live.
    """

    __tablename__ = "email_verifications"

    token: str = Field(primary_key=True, max_length=255, description="Random verification token")
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE", max_length=21)
    expires_at: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        nullable=False,
        description="Token is valid while now < expires_at",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        nullable=False,
    )
