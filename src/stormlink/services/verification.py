"""Email verification: token issuance and consumption.

Issuance deletes every earlier token for the account, stores a fresh one and
queues a delivery job. Consumption is exactly-once: the token row is removed
by a conditional delete, so only one caller can ever verify with it.
"""

import asyncio
import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stormlink.config import settings
from stormlink.models import User, VerificationToken
from stormlink.models.base import utcnow
from stormlink.services.accounts import AccountStore, SQLAccountStore
from stormlink.services.tokens import TokenStore
from stormlink.tasks.queue import DeliveryJob, JobPublisher, JobPublishError, get_publisher

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Email verified successfully."


class VerificationError(Exception):
    """Base class for verification failures surfaced to callers."""

    pass


class InvalidRequestError(VerificationError):
    """Caller supplied missing or malformed input."""

    pass


class AccountNotFoundError(VerificationError):
    """No account matches the given id or email."""

    pass


class AccountExistsError(VerificationError):
    """An account with this email is already registered."""

    pass


class AlreadyVerifiedError(VerificationError):
    """The account is already verified; there is nothing to issue."""

    pass


class TokenNotFoundError(VerificationError):
    """Unknown, superseded, or already consumed token."""

    pass


class TokenExpiredError(VerificationError):
    """The token was past its expiry. It has been deleted."""

    pass


class DeliveryQueueError(VerificationError):
    """The delivery job could not be handed to the broker."""

    pass


class VerificationService:
    """Issues and consumes email verification tokens."""

    def __init__(
        self,
        session: AsyncSession,
        publisher: JobPublisher | None = None,
        accounts: AccountStore | None = None,
        token_ttl: timedelta | None = None,
    ):
        self.session = session
        self.tokens = TokenStore(session)
        self.accounts = accounts or SQLAccountStore(session)
        self._publisher = publisher
        self.token_ttl = token_ttl or timedelta(hours=settings.verification_token_ttl_hours)

    @property
    def publisher(self) -> JobPublisher:
        if self._publisher is None:
            self._publisher = get_publisher()
        return self._publisher

    async def register(self, email: str, name: str | None = None) -> tuple[User, VerificationToken]:
        """Create an unverified account and send it a verification token."""
        email = (email or "").strip()
        if not email:
            raise InvalidRequestError("Email is required")

        if await self.accounts.get_by_email(email):
            raise AccountExistsError("Email already in use")

        try:
            user = await self.accounts.create(email=email, name=name)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise AccountExistsError("Email already in use") from e

        logger.info(f"Registered account {user.id} ({email})")
        record = await self.issue_or_resend(account_id=user.id)
        return user, record

    async def issue_or_resend(
        self,
        *,
        account_id: str | None = None,
        email: str | None = None,
        publish: bool = True,
    ) -> VerificationToken:
        """Replace the account's tokens with a new one and queue its delivery.

        Args:
            account_id: Account to issue for
            email: Alternatively, the account's email address
            publish: Queue a delivery job (disabled for support tooling that
                hands the link out directly)

        Raises:
            InvalidRequestError: Neither or both identifiers given
            AccountNotFoundError: No such account
            AlreadyVerifiedError: Account already verified; nothing is created
            DeliveryQueueError: The job could not be queued; the new token is removed
        """
        if bool(account_id) == bool(email):
            raise InvalidRequestError("Exactly one of account id or email is required")

        if account_id:
            user = await self.accounts.get_by_id(account_id, for_update=True)
        else:
            user = await self.accounts.get_by_email(email.strip(), for_update=True)  # type: ignore[union-attr]

        if not user:
            await self.session.rollback()
            raise AccountNotFoundError("User not found")

        if user.is_verified:
            await self.session.rollback()
            raise AlreadyVerifiedError("User already verified")

        # Delete, insert and commit in one transaction so earlier tokens are
        # superseded atomically.
        superseded = await self.tokens.delete_for_user(user.id)
        record = await self.tokens.create(user.id, self.token_ttl, now=utcnow())
        await self.session.commit()

        if superseded:
            logger.debug(f"Superseded {superseded} earlier tokens for user {user.id}")
        logger.info(f"Issued verification token for user {user.id}, expires {record.expires_at}")

        if publish:
            await self._queue_delivery(user, record)

        return record

    async def _queue_delivery(self, user: User, record: VerificationToken) -> None:
        job = DeliveryJob(to=user.email, token=record.token)
        try:
            # Blocking AMQP I/O runs off the event loop; the request still waits for it
            await asyncio.to_thread(self.publisher.publish, job)
        except JobPublishError as e:
            await self._discard_undeliverable(record)
            raise DeliveryQueueError("Could not queue verification email, please retry") from e

    async def _discard_undeliverable(self, record: VerificationToken) -> None:
        """Remove a token whose delivery job never reached the queue."""
        try:
            await self.tokens.delete(record.token)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(
                f"Failed to remove undeliverable token for user {record.user_id}; "
                "it will remain until superseded or expired"
            )

    async def consume(self, token: str) -> str:
        """Verify the account owning ``token`` and destroy the token.

        Raises:
            InvalidRequestError: Empty token
            TokenNotFoundError: Unknown, superseded or already used token
            TokenExpiredError: Token expired; it is deleted so a retry gets not-found
        """
        token = (token or "").strip()
        if not token:
            raise InvalidRequestError("Token is required")

        record = await self.tokens.get(token)
        if record is None:
            raise TokenNotFoundError("Invalid or expired token")

        user_id = record.user_id
        now = utcnow()

        if await self.tokens.delete_if_expired(token, now):
            await self.session.commit()
            logger.info(f"Rejected expired verification token for user {user_id}")
            raise TokenExpiredError("Verification token has expired")

        if not await self.tokens.claim(token, now):
            # Lost a race with a concurrent consume or resend
            await self.session.rollback()
            raise TokenNotFoundError("Invalid or expired token")

        await self.accounts.mark_verified(user_id)
        await self.session.commit()

        logger.info(f"Verified email for user {user_id}")
        return VERIFIED_MESSAGE
