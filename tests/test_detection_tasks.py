import pytest
from celery.exceptions import Retry

from govision.tasks import detection_tasks
from govision.tasks.detection_tasks import process_job, retry_countdown
from govision.tasks.pipeline import Outcome

JOB = {"job_id": "01HF8Z6K3W2Q4X9T7B5N1M0C2D", "image_url": "https://x/img.png"}


class ScriptedProcessor:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []
        self.given_up = []

    def handle(self, payload, attempt=0):
        self.calls.append((payload, attempt))
        return self.outcome

    def give_up(self, payload, exc, attempt):
        self.given_up.append((payload, str(exc), attempt))
        return Outcome.DEAD_LETTERED


@pytest.fixture()
def use_processor(app, monkeypatch):
    def install(outcome):
        processor = ScriptedProcessor(outcome)
        monkeypatch.setitem(app.extensions["govision"], "processor", processor)
        return processor
    return install


@pytest.mark.parametrize("outcome", [
    Outcome.COMPLETED, Outcome.FAILED, Outcome.DROPPED, Outcome.DEAD_LETTERED,
])
def test_final_outcomes_return_normally(use_processor, outcome):
    processor = use_processor(outcome)

    assert process_job.run(**JOB) == outcome.value
    assert processor.calls == [(JOB, 0)]


def test_retry_outcome_requests_redelivery(use_processor):
    use_processor(Outcome.RETRY)
    with pytest.raises(Retry):
        process_job.run(**JOB)


def test_failed_requeue_dead_letters_instead_of_losing_the_job(app, use_processor, monkeypatch):
    processor = use_processor(Outcome.RETRY)
    task = app.extensions["celery"].tasks["detection.process_job"]

    def broker_down(*args, **kwargs):
        raise ConnectionError("broker unavailable")

    monkeypatch.setattr(task, "retry", broker_down)

    assert process_job.run(**JOB) == Outcome.DEAD_LETTERED.value
    assert processor.given_up == [(JOB, "broker unavailable", 0)]


def test_attempt_number_comes_from_request_retries(use_processor):
    processor = use_processor(Outcome.COMPLETED)
    process_job.push_request(retries=2)
    try:
        process_job.run(**JOB)
    finally:
        process_job.pop_request()
    assert processor.calls[0][1] == 2


def test_positional_payload_is_passed_through(use_processor):
    processor = use_processor(Outcome.DROPPED)
    process_job.run("garbage")
    assert processor.calls == [("garbage", 0)]


def test_task_is_ack_late_and_requeued_on_worker_loss():
    assert process_job.name == "detection.process_job"
    assert process_job.acks_late is True
    assert process_job.reject_on_worker_lost is True


def test_end_to_end_with_real_processor(app, db, make_detector, cat_and_dog, monkeypatch):
    from govision.repository import SqlAlchemyResultRepository
    from govision.services.status_service import get_status

    processor = app.extensions["govision"]["processor"]
    monkeypatch.setattr(processor, "detector", make_detector(cat_and_dog))

    assert process_job.run(**JOB) == "completed"
    view = get_status(SqlAlchemyResultRepository(db), JOB["job_id"])
    assert view.status == "completed"
    assert len(view.predictions) == 2


def test_retry_countdown_is_capped():
    config = {"RETRY_BACKOFF_BASE": 2, "RETRY_BACKOFF_MAX": 10}
    for retries in range(8):
        assert 0 <= retry_countdown(retries, config) <= 10


def test_task_registered_on_app_celery(app):
    celery_app = app.extensions["celery"]
    assert "detection.process_job" in celery_app.tasks
    assert detection_tasks.process_job.name in celery_app.tasks
    assert celery_app.conf.task_acks_late is True
    assert celery_app.conf.worker_prefetch_multiplier == 1


def test_soft_time_limit_fires_before_hard_limit(app):
    conf = app.extensions["celery"].conf
    timeout = app.config["DETECTION_TIMEOUT"]
    assert conf.task_soft_time_limit == timeout + 30
    assert conf.task_time_limit == conf.task_soft_time_limit + 30
