"""Persistent store for email verification tokens.

Every mutating operation is a single statement so concurrent requests cannot
interleave a read and a delete. The store never commits; callers own the
transaction.
"""

import logging
from datetime import datetime, timedelta
from secrets import token_hex

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import delete, select

from stormlink.config import settings
from stormlink.models import VerificationToken
from stormlink.models.base import utcnow

logger = logging.getLogger(__name__)

# Bulk deletes skip identity-map synchronisation; stored datetimes may come back
# naive from some drivers and cannot be compared in Python against aware values.
_BULK = {"synchronize_session": False}


def generate_token(nbytes: int | None = None) -> str:
    """Generate an unguessable token from a cryptographically strong source."""
    return token_hex(nbytes or settings.verification_token_bytes)


class TokenStore:
    """Verification token persistence on top of an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: str,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> VerificationToken:
        """Insert a new token for a user, valid for ``ttl`` from ``now``."""
        now = now or utcnow()
        record = VerificationToken(
            token=generate_token(),
            user_id=user_id,
            expires_at=now + ttl,
            created_at=now,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get(self, token: str) -> VerificationToken | None:
        """Look up a token record by value."""
        stmt = (
            select(VerificationToken)
            .where(VerificationToken.token == token)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_for_user(self, user_id: str) -> int:
        """Delete every token belonging to a user. Returns the number removed."""
        stmt = delete(VerificationToken).where(VerificationToken.user_id == user_id)
        result = await self.session.execute(stmt.execution_options(**_BULK))
        return result.rowcount or 0

    async def delete_if_expired(self, token: str, now: datetime | None = None) -> bool:
        """Atomically delete the token only if it has expired."""
        stmt = delete(VerificationToken).where(
            VerificationToken.token == token,
            VerificationToken.expires_at <= (now or utcnow()),
        )
        result = await self.session.execute(stmt.execution_options(**_BULK))
        return bool(result.rowcount)

    async def claim(self, token: str, now: datetime | None = None) -> bool:
        """Atomically delete a live token.

        Only one caller can succeed for a given token; everyone else sees
        False, exactly as if the token had never existed.
        """
        stmt = delete(VerificationToken).where(
            VerificationToken.token == token,
            VerificationToken.expires_at > (now or utcnow()),
        )
        result = await self.session.execute(stmt.execution_options(**_BULK))
        return bool(result.rowcount)

    async def delete(self, token: str) -> bool:
        """Delete a token regardless of expiry."""
        stmt = delete(VerificationToken).where(VerificationToken.token == token)
        result = await self.session.execute(stmt.execution_options(**_BULK))
        return bool(result.rowcount)

    async def count_for_user(self, user_id: str) -> int:
        """Count token rows (live or expired) for a user."""
        stmt = select(func.count()).select_from(VerificationToken).where(
            VerificationToken.user_id == user_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def count_expired(self, now: datetime | None = None) -> int:
        """Count tokens past their expiry."""
        stmt = select(func.count()).select_from(VerificationToken).where(
            VerificationToken.expires_at <= (now or utcnow())
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def prune_expired(self, now: datetime | None = None) -> int:
        """Delete all expired tokens. Returns the number removed."""
        stmt = delete(VerificationToken).where(VerificationToken.expires_at <= (now or utcnow()))
        result = await self.session.execute(stmt.execution_options(**_BULK))
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Pruned {removed} expired verification tokens")
        return removed
