"""Maintenance tasks for verification token hygiene."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from stormlink.database import get_session_context
from stormlink.models.base import utcnow
from stormlink.services.tokens import TokenStore

logger = logging.getLogger(__name__)


async def prune_expired_tokens(
    dry_run: bool = False,
    session: AsyncSession | None = None,
) -> dict[str, Any]:
    """Delete verification tokens that expired without being used.

    Expired tokens already fail verification and are removed when presented,
    so this only reclaims storage for tokens nobody ever tried.

    Args:
        dry_run: If True, only report what would be deleted
        session: Session to use (a new one is opened if omitted)

    Returns:
        Dict with pruning results
    """
    if session is None:
        async with get_session_context() as own_session:
            return await prune_expired_tokens(dry_run=dry_run, session=own_session)

    now = utcnow()
    store = TokenStore(session)

    try:
        expired = await store.count_expired(now)
        deleted = 0
        if not dry_run and expired:
            deleted = await store.prune_expired(now)
            await session.commit()
    except Exception as e:
        await session.rollback()
        error = f"Token prune failed: {e}"
        logger.exception(error)
        return {"success": False, "error": error}

    logger.info(
        f"Token prune complete: {expired} expired tokens "
        f"{'would be deleted' if dry_run else 'deleted'}"
    )
    return {
        "success": True,
        "dry_run": dry_run,
        "cutoff": now.isoformat(),
        "tokens_would_delete": expired,
        "tokens_deleted": deleted,
    }
