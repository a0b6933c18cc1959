"""User model."""

from sqlmodel import Field, SQLModel

from stormlink.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """User account model.

    ``is_verified`` flips from False to True once, when a verification token
    is consumed, and never reverts.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    is_verified: bool = Field(default=False)
