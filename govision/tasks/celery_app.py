import logging
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from celery.signals import worker_process_init, worker_shutdown

from govision.logging_setup import setup_logging
from govision.models import db
from govision.tasks.queue import job_queue

logger = logging.getLogger(__name__)


@celery_setup_logging.connect
def _use_json_logging(**kwargs):
    # Celery keeps its own handlers unless this signal has a receiver
    setup_logging()


def init_celery(flask_app) -> Celery:
    """
    Build the Celery app from the Flask config and bind tasks to the Flask app context.
    The instance is stored in ``flask_app.extensions["celery"]``.
    """
    cfg = flask_app.config
    queue = cfg["DETECTION_QUEUE"]
    celery_app = Celery(flask_app.import_name)

    celery_app.conf.update(
        broker_url=cfg["CELERY_BROKER_URL"],
        broker_transport_options={"confirm_publish": True},
        broker_connection_retry_on_startup=True,
        task_ignore_result=True,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        # ack only after the job is saved or dead-lettered
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        # the soft limit raises inside the task and goes through the retry budget
        task_soft_time_limit=int(cfg["DETECTION_TIMEOUT"] + 30),
        task_time_limit=int(cfg["DETECTION_TIMEOUT"] + 60),
        worker_prefetch_multiplier=1,
        worker_concurrency=cfg["WORKER_CONCURRENCY"],
        worker_cancel_long_running_tasks_on_connection_loss=True,
        worker_hijack_root_logger=False,
        task_queues=(job_queue(queue),),
        task_default_queue=queue,
        task_default_exchange="",
        task_default_routing_key=queue,
        task_routes={"detection.process_job": {"queue": queue}},
    )

    TaskBase = celery_app.Task

    class ContextTask(TaskBase):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery_app.Task = ContextTask
    celery_app.set_default()
    flask_app.extensions["celery"] = celery_app

    from govision.tasks import detection_tasks  # noqa: F401

    return celery_app


def bind_worker_signals(flask_app) -> None:
    """Resource hooks for worker processes only (not the API)."""

    @worker_process_init.connect(weak=False)
    def _reset_db_pool(**kwargs):
        # connections inherited from the parent must not be shared after fork
        with flask_app.app_context():
            db.engine.dispose(close=False)

    @worker_shutdown.connect(weak=False)
    def _release_resources(**kwargs):
        with flask_app.app_context():
            flask_app.extensions["govision"]["detector"].close()
            db.engine.dispose()
        logger.info("Worker resources released")


def check_broker(celery_app) -> bool:
    """Connection diagnostic at worker start-up."""
    with celery_app.connection_for_write() as conn:
        uri = conn.as_uri()
        try:
            conn.ensure_connection(max_retries=1)
        except Exception as e:
            logger.error("Error connecting to Celery broker (%s): %s", uri, e)
            return False
    logger.info("Celery connected to broker: %s", uri)
    return True
