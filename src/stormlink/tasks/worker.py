"""Email delivery worker consuming the verification queue."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from kombu import Connection, Queue
from kombu.mixins import ConsumerMixin
from kombu.utils.encoding import safe_repr
from pydantic import ValidationError

from stormlink.config import settings
from stormlink.services.email import email_service
from stormlink.tasks.queue import DeliveryJob, verification_queue

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    """Delivers a verification email. Returns False (or raises) on failure."""

    async def send_verification_email(self, to: str, token: str) -> bool: ...


class WorkerConfigError(Exception):
    """The worker cannot start with the current configuration."""

    pass


@dataclass
class WorkerStats:
    """Per-process message outcome counters."""

    acked: int = 0
    requeued: int = 0
    discarded: int = 0

    @property
    def processed(self) -> int:
        return self.acked + self.requeued + self.discarded


class EmailWorker(ConsumerMixin):
    """Consumes delivery jobs and sends verification emails.

    Messages are acknowledged manually, one at a time:

    - undecodable or invalid job: rejected without requeue (discarded)
    - mail sender failure: rejected with requeue (retried by the broker)
    - success: acknowledged

    ``should_stop`` is checked between messages; the consume loop then cancels
    the subscription before the connection is closed, so the in-flight
    message always finishes first.
    """

    def __init__(
        self,
        connection: Connection,
        queue: Queue,
        sender: MailSender | None = None,
        prefetch_count: int = 1,
    ):
        self.connection = connection
        self.queue = queue
        self.sender = sender or email_service
        self.prefetch_count = prefetch_count
        self.stats = WorkerStats()
        self._runner = asyncio.Runner()

    def get_consumers(self, Consumer, channel):  # noqa: N803
        return [
            Consumer(
                queues=[self.queue],
                callbacks=[self.on_message],
                accept=["json"],
                no_ack=False,
                prefetch_count=self.prefetch_count,
            )
        ]

    def on_connection_error(self, exc: Exception, interval: float) -> None:
        logger.warning(f"Broker connection error: {exc!r}, retrying in {interval}s")

    def on_consume_ready(self, connection, channel, consumers, **kwargs: Any) -> None:
        logger.info(f"Email worker consuming from {self.queue.name}, waiting for messages...")

    def on_consume_end(self, connection, channel) -> None:
        logger.info(f"Stopped consuming from {self.queue.name}")

    def on_decode_error(self, message, exc: Exception) -> None:
        """Malformed bodies can never succeed; discard instead of retrying."""
        logger.error(
            f"Discarding undecodable message: {exc!r} "
            f"(content_type={message.content_type!r}, body={safe_repr(message.body)})"
        )
        message.reject(requeue=False)
        self.stats.discarded += 1

    def on_message(self, body: Any, message) -> None:
        try:
            job = DeliveryJob.model_validate(body)
        except ValidationError as e:
            logger.error(f"Discarding invalid delivery job {safe_repr(body)}: {e.error_count()} errors")
            message.reject(requeue=False)
            self.stats.discarded += 1
            return

        if message.delivery_info.get("redelivered"):
            logger.info(f"Retrying redelivered job for {job.to}")

        if not self.deliver(job):
            logger.error(f"Failed to send verification email to {job.to}, requeueing")
            message.requeue()
            self.stats.requeued += 1
            return

        message.ack()
        self.stats.acked += 1
        logger.info(f"Verification email sent to {job.to}")

    def deliver(self, job: DeliveryJob) -> bool:
        """Run the mail sender to completion for one job."""
        try:
            return bool(self._runner.run(self.sender.send_verification_email(job.to, job.token)))
        except Exception:
            logger.exception(f"Mail sender raised while delivering to {job.to}")
            return False

    def close(self) -> None:
        """Release the worker's event loop."""
        self._runner.close()
        logger.info(
            f"Email worker processed {self.stats.processed} messages "
            f"({self.stats.acked} sent, {self.stats.requeued} requeued, "
            f"{self.stats.discarded} discarded)"
        )


def create_worker(
    broker_url: str | None = None,
    queue_name: str | None = None,
    sender: MailSender | None = None,
) -> EmailWorker:
    """Build a worker from settings.

    Raises:
        WorkerConfigError: No broker URL configured
    """
    broker_url = settings.broker_url if broker_url is None else broker_url
    if not broker_url:
        raise WorkerConfigError("BROKER_URL is not configured")

    return EmailWorker(
        connection=Connection(broker_url, heartbeat=30),
        queue=verification_queue(queue_name),
        sender=sender,
        prefetch_count=settings.worker_prefetch_count,
    )
