# govision/tasks/queue.py
import logging
from typing import Optional

from kombu import Exchange, Queue

from govision.models.domain import JobMessage

logger = logging.getLogger(__name__)

# Queues are bound to the default exchange; the routing key is the queue name.
default_exchange = Exchange("", type="direct")


def job_queue(name: str) -> Queue:
    return Queue(name, default_exchange, routing_key=name, durable=True)


class JobPublisher:
    """
    Publishes job messages for the detection task.

    The message is persistent and durable, its kwargs object is
    ``{"job_id": ..., "image_url": ...}`` and the task id (AMQP
    correlation_id) is the job id. No retry on publish: a failed call
    surfaces the broker error to the caller.
    """

    def __init__(self, task, queue: str, timeout: Optional[float] = None):
        self.task = task
        self.queue = queue
        self.timeout = timeout

    def publish(self, job_id: str, image_url: str, timeout: Optional[float] = None) -> None:
        if not job_id:
            raise ValueError("job_id is required")
        if not image_url:
            raise ValueError("image_url is required")

        deadline = timeout if timeout is not None else self.timeout
        options = {"timeout": deadline, "confirm_timeout": deadline} if deadline else {}

        self.task.apply_async(
            kwargs=JobMessage(job_id=job_id, image_url=image_url).to_payload(),
            task_id=job_id,
            queue=self.queue,
            routing_key=self.queue,
            delivery_mode="persistent",
            retry=False,
            **options,
        )
        logger.info("Published job %s to %s", job_id, self.queue, extra={"job_id": job_id})


class DeadLetterPublisher:
    """Routes messages that exhausted their retry budget to a durable holding queue."""

    def __init__(self, celery_app, queue: str):
        self.celery_app = celery_app
        self.queue = job_queue(queue)

    def publish(self, message: JobMessage, reason: str, attempts: int) -> None:
        body = {**message.to_payload(), "reason": reason, "attempts": attempts}
        with self.celery_app.producer_or_acquire() as producer:
            producer.publish(
                body,
                exchange=self.queue.exchange,
                routing_key=self.queue.routing_key,
                declare=[self.queue],
                serializer="json",
                delivery_mode="persistent",
                correlation_id=message.job_id,
                retry=True,
                retry_policy={"max_retries": 3, "interval_start": 0, "interval_step": 1},
            )
        logger.info(
            "Dead letter for job %s published to %s",
            message.job_id,
            self.queue.name,
            extra={"job_id": message.job_id, "attempts": attempts},
        )
