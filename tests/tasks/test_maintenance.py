"""Token maintenance task tests."""

import logging
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stormlink.models import User
from stormlink.models.base import utcnow
from stormlink.services.tokens import TokenStore
from stormlink.tasks.maintenance import prune_expired_tokens


@pytest.fixture
async def tokens(session: AsyncSession, user: User):
    """One live token and two expired tokens for the test user."""
    store = TokenStore(session)
    live = await store.create(user.id, timedelta(hours=24))
    await store.create(user.id, timedelta(hours=24), now=utcnow() - timedelta(days=2))
    await store.create(user.id, timedelta(hours=24), now=utcnow() - timedelta(days=5))
    await session.commit()
    return live


@pytest.mark.asyncio
async def test_prune_dry_run_deletes_nothing(session: AsyncSession, user: User, tokens, caplog):
    with caplog.at_level(logging.INFO, logger="stormlink.tasks.maintenance"):
        result = await prune_expired_tokens(dry_run=True, session=session)

    assert result["success"] is True
    assert result["dry_run"] is True
    assert result["tokens_would_delete"] == 2
    assert result["tokens_deleted"] == 0
    assert await TokenStore(session).count_for_user(user.id) == 3
    assert "2 expired tokens would be deleted" in caplog.text


@pytest.mark.asyncio
async def test_prune_deletes_only_expired(session: AsyncSession, user: User, tokens, caplog):
    with caplog.at_level(logging.INFO, logger="stormlink.tasks.maintenance"):
        result = await prune_expired_tokens(dry_run=False, session=session)

    assert result["success"] is True
    assert result["tokens_deleted"] == 2

    store = TokenStore(session)
    assert await store.count_for_user(user.id) == 1
    assert await store.get(tokens.token) is not None
    assert "2 expired tokens deleted" in caplog.text


@pytest.mark.asyncio
async def test_prune_with_nothing_expired(session: AsyncSession):
    result = await prune_expired_tokens(dry_run=False, session=session)

    assert result["success"] is True
    assert result["tokens_would_delete"] == 0
    assert result["tokens_deleted"] == 0
