"""Verification delivery queue: job format and publisher."""

import logging
import threading
from functools import lru_cache

from kombu import Connection, Queue
from kombu.entity import PERSISTENT_DELIVERY_MODE
from pydantic import BaseModel, ConfigDict, Field

from stormlink.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait for a free pooled connection before giving up on a publish
POOL_ACQUIRE_TIMEOUT = 10.0

# Connections kept open by a publisher
POOL_LIMIT = 10


class DeliveryJob(BaseModel):
    """A request to deliver one verification email.

    Lives only on the wire: published as a JSON object with exactly these two
    fields and owned by the broker until a worker acknowledges it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    to: str = Field(min_length=1, description="Destination address at issuance time")
    token: str = Field(min_length=1, description="Verification token to embed in the link")


class JobPublishError(Exception):
    """The broker did not durably accept a delivery job."""

    pass


def verification_queue(name: str | None = None) -> Queue:
    """Durable queue on the default exchange, routed by its own name."""
    name = name or settings.verification_queue
    return Queue(name, routing_key=name, durable=True, auto_delete=False)


class JobPublisher:
    """Publishes delivery jobs to the verification queue.

    Keeps a small pool of long-lived broker connections. Each pooled
    connection reuses its default channel, and the queue declaration is cached
    per connection by kombu, so steady-state publishes pay for neither.
    """

    def __init__(
        self,
        broker_url: str,
        queue_name: str | None = None,
        max_retries: int = 3,
        confirm: bool = True,
        timeout: float = 10.0,
    ):
        self.broker_url = broker_url
        self.queue = verification_queue(queue_name)
        self.max_retries = max_retries
        self.confirm = confirm
        self.timeout = timeout
        self._pool = None
        self._pool_lock = threading.Lock()

    @property
    def retry_policy(self) -> dict:
        return {
            "max_retries": self.max_retries,
            "interval_start": 0,
            "interval_step": 0.5,
            "interval_max": 2,
        }

    @property
    def pool(self):
        """Lazily create the connection pool. Publishes run on worker threads."""
        with self._pool_lock:
            if self._pool is None:
                connection = Connection(
                    self.broker_url,
                    transport_options={"confirm_publish": self.confirm},
                )
                self._pool = connection.Pool(limit=POOL_LIMIT)
        return self._pool

    def publish(self, job: DeliveryJob) -> None:
        """Hand a job to the broker.

        Blocks until the broker has accepted the persistent message (publisher
        confirms when enabled), the retries are exhausted, or a socket write or
        confirm wait outlasts the publish timeout.

        Raises:
            JobPublishError: Broker unconfigured, unreachable, queue
                declaration failed, or the publish itself failed
        """
        if not self.broker_url:
            logger.error("Cannot publish delivery job: broker URL is not configured")
            raise JobPublishError("Broker URL is not configured")

        try:
            with self.pool.acquire(block=True, timeout=POOL_ACQUIRE_TIMEOUT) as connection:
                producer = connection.Producer(serializer="json")
                producer.publish(
                    job.model_dump(),
                    exchange="",
                    routing_key=self.queue.name,
                    declare=[self.queue],
                    delivery_mode=PERSISTENT_DELIVERY_MODE,
                    retry=True,
                    retry_policy=self.retry_policy,
                    timeout=self.timeout,
                    confirm_timeout=self.timeout,
                )
        except Exception as e:
            logger.error(f"Failed to publish delivery job for {job.to} to {self.queue.name}: {e!r}")
            raise JobPublishError(f"Failed to publish delivery job: {e}") from e

        logger.info(f"Published delivery job for {job.to} to {self.queue.name}")

    def close(self) -> None:
        """Close all pooled broker connections."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.force_close_all()
                self._pool = None


@lru_cache
def get_publisher() -> JobPublisher:
    """Get the process-wide publisher configured from settings."""
    return JobPublisher(
        broker_url=settings.broker_url,
        queue_name=settings.verification_queue,
        max_retries=settings.publish_max_retries,
        confirm=settings.publish_confirm,
        timeout=settings.publish_timeout,
    )


def close_publisher() -> None:
    """Release the process-wide publisher's connections, if one was created."""
    if get_publisher.cache_info().currsize:
        get_publisher().close()
        get_publisher.cache_clear()
