"""Background work: the verification delivery queue and its worker."""

from stormlink.tasks.queue import DeliveryJob, JobPublisher, JobPublishError, get_publisher, verification_queue

__all__ = ["DeliveryJob", "JobPublishError", "JobPublisher", "get_publisher", "verification_queue"]
