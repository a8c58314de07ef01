# govision/extensions.py
"""
Process-wide resources, built once by ``create_app`` and reached through
``current_app.extensions["govision"]``:

  repository  ResultRepository on the shared SQLAlchemy pool
  detector    RoboflowClient with its pooled requests.Session
  publisher   JobPublisher (Celery producer pool)
  processor   JobProcessor used by the detection task
"""
from flask import current_app

from govision.models import db
from govision.repository import SqlAlchemyResultRepository
from govision.services.detection_client import RoboflowClient
from govision.tasks.pipeline import JobProcessor
from govision.tasks.queue import DeadLetterPublisher, JobPublisher


def init_services(app, celery_app) -> None:
    from govision.tasks.detection_tasks import process_job

    cfg = app.config
    repository = SqlAlchemyResultRepository(db)
    detector = RoboflowClient(
        api_key=cfg["ROBOFLOW_API_KEY"],
        workspace_id=cfg["ROBOFLOW_WORKSPACE_ID"],
        workflow_id=cfg["ROBOFLOW_WORKFLOW_ID"],
        api_url=cfg["ROBOFLOW_API_URL"],
        timeout=cfg["DETECTION_TIMEOUT"],
    )
    publisher = JobPublisher(process_job, cfg["DETECTION_QUEUE"], timeout=cfg["PUBLISH_TIMEOUT"])
    processor = JobProcessor(
        detector=detector,
        repository=repository,
        dead_letter=DeadLetterPublisher(celery_app, cfg["DEAD_LETTER_QUEUE"]),
        max_attempts=cfg["DETECTION_MAX_ATTEMPTS"],
        detection_timeout=cfg["DETECTION_TIMEOUT"],
    )

    app.extensions["govision"] = {
        "repository": repository,
        "detector": detector,
        "publisher": publisher,
        "processor": processor,
    }


def get_repository():
    return current_app.extensions["govision"]["repository"]


def get_publisher():
    return current_app.extensions["govision"]["publisher"]
