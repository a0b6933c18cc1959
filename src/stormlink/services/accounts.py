"""Account store used by the verification pipeline."""

from typing import Protocol

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from stormlink.models import User


class AccountStore(Protocol):
    """The account operations the verification pipeline depends on."""

    async def get_by_id(self, account_id: str, *, for_update: bool = False) -> User | None: ...

    async def get_by_email(self, email: str, *, for_update: bool = False) -> User | None: ...

    async def create(self, email: str, name: str | None = None) -> User: ...

    async def mark_verified(self, account_id: str) -> None: ...


class SQLAccountStore:
    """Account store backed by the ``users`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, account_id: str, *, for_update: bool = False) -> User | None:
        stmt = select(User).where(User.id == account_id)
        return await self._one(stmt, for_update)

    async def get_by_email(self, email: str, *, for_update: bool = False) -> User | None:
        stmt = select(User).where(User.email == email)
        return await self._one(stmt, for_update)

    async def create(self, email: str, name: str | None = None) -> User:
        user = User(email=email, name=name, is_verified=False)
        self.session.add(user)
        await self.session.flush()
        return user

    async def mark_verified(self, account_id: str) -> None:
        """Set is_verified. Verifying an already verified account is a no-op."""
        stmt = (
            update(User)
            .where(User.id == account_id)  # type: ignore[arg-type]
            .values(is_verified=True)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def _one(self, stmt, for_update: bool) -> User | None:
        # Row locks serialise concurrent issuances for one account on Postgres;
        # SQLite ignores FOR UPDATE.
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()
