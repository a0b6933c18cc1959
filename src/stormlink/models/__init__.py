"""SQLModel database models."""

from stormlink.models.base import TimestampMixin, generate_nanoid, utcnow
from stormlink.models.user import User
from stormlink.models.verification_token import VerificationToken

__all__ = [
    "TimestampMixin",
    "User",
    "VerificationToken",
    "generate_nanoid",
    "utcnow",
]
