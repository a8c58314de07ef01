from datetime import datetime

import pytest

from govision.errors import RepositoryError
from govision.models.domain import JobResult, JobStatus, Prediction
from govision.repository import InMemoryResultRepository, SqlAlchemyResultRepository

PROCESSED = datetime(2024, 11, 15, 12, 30, 0)


@pytest.fixture(params=["memory", "sqlalchemy"])
def repo(request):
    if request.param == "memory":
        return InMemoryResultRepository()
    database = request.getfixturevalue("db")
    return SqlAlchemyResultRepository(database)


def _result(job_id="01HF0000000000000000000001", status=JobStatus.COMPLETED, predictions=(), **kw):
    return JobResult(
        job_id=job_id,
        image_url=kw.pop("image_url", "https://x/img.png"),
        status=status,
        processed_at=kw.pop("processed_at", PROCESSED),
        predictions=list(predictions),
        **kw,
    )


def _labels(record):
    return sorted(p.prediction.class_name for p in record.predictions)


def test_unknown_job_is_none(repo):
    assert repo.get_by_id("01HFNEVERSUBMITTED00000000") is None


def test_upsert_completed_with_predictions(repo, cat_and_dog):
    repo.upsert(_result(predictions=cat_and_dog))

    record = repo.get_by_id("01HF0000000000000000000001")
    assert record.status is JobStatus.COMPLETED
    assert record.image_url == "https://x/img.png"
    assert record.processed_at == PROCESSED
    assert record.created_at is not None
    assert _labels(record) == ["cat", "dog"]
    cat = next(p.prediction for p in record.predictions if p.prediction.class_name == "cat")
    assert cat == cat_and_dog[0]


def test_redelivery_replaces_predictions_instead_of_accumulating(repo, cat_and_dog):
    repo.upsert(_result(predictions=cat_and_dog))
    repo.upsert(_result(predictions=cat_and_dog))
    assert len(repo.get_by_id("01HF0000000000000000000001").predictions) == 2

    repo.upsert(_result(predictions=cat_and_dog[:1], processed_at=datetime(2024, 11, 15, 13, 0, 0)))
    record = repo.get_by_id("01HF0000000000000000000001")
    assert _labels(record) == ["cat"]
    assert record.processed_at == datetime(2024, 11, 15, 13, 0, 0)


def test_conflict_keeps_first_image_url(repo):
    repo.upsert(_result())
    repo.upsert(_result(image_url="https://x/other.png", status=JobStatus.FAILED, failure_reason="rejected"))

    record = repo.get_by_id("01HF0000000000000000000001")
    assert record.image_url == "https://x/img.png"
    assert record.status is JobStatus.FAILED
    assert record.failure_reason == "rejected"
    assert record.predictions == []


def test_predictions_stay_with_their_job(repo, cat_and_dog):
    repo.upsert(_result(job_id="01HFAAAAAAAAAAAAAAAAAAAAAA", predictions=cat_and_dog[:1]))
    repo.upsert(_result(job_id="01HFBBBBBBBBBBBBBBBBBBBBBB", predictions=cat_and_dog[1:]))

    assert _labels(repo.get_by_id("01HFAAAAAAAAAAAAAAAAAAAAAA")) == ["cat"]
    assert _labels(repo.get_by_id("01HFBBBBBBBBBBBBBBBBBBBBBB")) == ["dog"]


def test_confidence_bounds_round_trip(repo):
    preds = [
        Prediction(x=0.0, y=0.0, width=0.0, height=0.0, confidence=0.0, class_name="a", class_id=0),
        Prediction(x=1.5, y=2.5, width=3.5, height=4.5, confidence=1.0, class_name="b", class_id=1),
    ]
    repo.upsert(_result(predictions=preds))
    stored = sorted((p.prediction for p in repo.get_by_id("01HF0000000000000000000001").predictions),
                    key=lambda p: p.class_id)
    assert stored == preds


def test_create_pending_is_idempotent_and_never_downgrades(repo, cat_and_dog):
    repo.create_pending("01HF0000000000000000000001", "https://x/img.png")
    repo.create_pending("01HF0000000000000000000001", "https://x/img.png")
    record = repo.get_by_id("01HF0000000000000000000001")
    assert record.status is JobStatus.PENDING
    assert record.processed_at is None

    repo.upsert(_result(predictions=cat_and_dog))
    repo.create_pending("01HF0000000000000000000001", "https://x/img.png")
    assert repo.get_by_id("01HF0000000000000000000001").status is JobStatus.COMPLETED


def test_fail_pending_only_touches_pending_rows(repo):
    assert repo.fail_pending("01HF0000000000000000000001", "retries exhausted") is False

    repo.create_pending("01HF0000000000000000000001", "https://x/img.png")
    assert repo.fail_pending("01HF0000000000000000000001", "retries exhausted") is True
    record = repo.get_by_id("01HF0000000000000000000001")
    assert record.status is JobStatus.FAILED
    assert record.failure_reason == "retries exhausted"
    assert record.processed_at is not None

    repo.upsert(_result(job_id="01HF0000000000000000000002"))
    assert repo.fail_pending("01HF0000000000000000000002", "late") is False
    assert repo.get_by_id("01HF0000000000000000000002").status is JobStatus.COMPLETED


def test_interrupted_write_leaves_no_partial_job(db):
    repo = SqlAlchemyResultRepository(db)
    broken = [
        Prediction(x=1.0, y=1.0, width=1.0, height=1.0, confidence=0.9, class_name="cat", class_id=0),
        Prediction(x=1.0, y=1.0, width=1.0, height=1.0, confidence=0.8, class_name=None, class_id=1),
    ]

    with pytest.raises(RepositoryError):
        repo.upsert(_result(predictions=broken))

    assert repo.get_by_id("01HF0000000000000000000001") is None


def test_interrupted_rewrite_keeps_previous_state(db, cat_and_dog):
    repo = SqlAlchemyResultRepository(db)
    repo.upsert(_result(predictions=cat_and_dog))
    broken = [Prediction(x=1.0, y=1.0, width=1.0, height=1.0, confidence=2.0, class_name="x", class_id=9)]

    with pytest.raises(RepositoryError):
        repo.upsert(_result(status=JobStatus.FAILED, predictions=broken))

    record = repo.get_by_id("01HF0000000000000000000001")
    assert record.status is JobStatus.COMPLETED
    assert _labels(record) == ["cat", "dog"]
