# govision/repository/sqlalchemy_repository.py
import logging
from typing import Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from govision.errors import RepositoryError
from govision.models import db
from govision.models.domain import (
    JobRecord,
    JobResult,
    JobStatus,
    Prediction as PredictionValue,
    PredictionRecord,
    utcnow,
)
from govision.models.job import Job, Prediction
from govision.repository.base import ResultRepository

logger = logging.getLogger(__name__)


def _dialect_insert(dialect_name: str):
    """INSERT construct with ON CONFLICT support for the active dialect."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
        return dialect_insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
        return dialect_insert
    raise RepositoryError(f"upsert not supported on dialect '{dialect_name}'")


def _to_record(job: Job) -> JobRecord:
    return JobRecord(
        job_id=job.job_id,
        image_url=job.image_url,
        status=JobStatus(job.status),
        created_at=job.created_at,
        processed_at=job.processed_at,
        failure_reason=job.failure_reason,
        predictions=[
            PredictionRecord(
                prediction=PredictionValue(
                    x=p.x,
                    y=p.y,
                    width=p.width,
                    height=p.height,
                    confidence=p.confidence,
                    class_name=p.class_name,
                    class_id=p.class_id,
                ),
                created_at=p.created_at,
            )
            for p in job.predictions
        ],
    )


class SqlAlchemyResultRepository(ResultRepository):
    """
    Repository on the Flask-SQLAlchemy session.

    PostgreSQL in production, SQLite in tests. Each write runs in a single
    transaction that is committed or rolled back before the method returns.
    """

    def __init__(self, database=db):
        self.db = database

    def _insert(self):
        return _dialect_insert(self.db.engine.dialect.name)

    def upsert(self, result: JobResult) -> None:
        session = self.db.session
        jobs = Job.__table__

        stmt = self._insert()(jobs).values(
            job_id=result.job_id,
            image_url=result.image_url,
            status=result.status.value,
            processed_at=result.processed_at,
            failure_reason=result.failure_reason,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[jobs.c.job_id],
            set_={
                "status": stmt.excluded.status,
                "processed_at": stmt.excluded.processed_at,
                "failure_reason": stmt.excluded.failure_reason,
            },
        )
        rows = [
            {
                "job_id": result.job_id,
                "x": p.x,
                "y": p.y,
                "width": p.width,
                "height": p.height,
                "confidence": p.confidence,
                "class_name": p.class_name,
                "class_id": p.class_id,
            }
            for p in result.predictions
        ]

        try:
            session.execute(stmt)
            session.execute(delete(Prediction).where(Prediction.job_id == result.job_id))
            if rows:
                session.execute(insert(Prediction), rows)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(f"failed to save job {result.job_id}: {exc}") from exc

        logger.info(
            "Job %s saved with %d prediction(s)",
            result.job_id,
            len(rows),
            extra={"job_id": result.job_id, "status": result.status.value},
        )

    def get_by_id(self, job_id: str) -> Optional[JobRecord]:
        try:
            job = self.db.session.execute(
                select(Job).where(Job.job_id == job_id)
            ).scalar_one_or_none()
            return _to_record(job) if job else None
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise RepositoryError(f"failed to load job {job_id}: {exc}") from exc

    def create_pending(self, job_id: str, image_url: str) -> None:
        session = self.db.session
        stmt = self._insert()(Job.__table__).values(
            job_id=job_id,
            image_url=image_url,
            status=JobStatus.PENDING.value,
        ).on_conflict_do_nothing(index_elements=[Job.__table__.c.job_id])
        try:
            session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(f"failed to create job {job_id}: {exc}") from exc

    def fail_pending(self, job_id: str, reason: str) -> bool:
        session = self.db.session
        jobs = Job.__table__
        stmt = (
            update(jobs)
            .where(jobs.c.job_id == job_id, jobs.c.status == JobStatus.PENDING.value)
            .values(status=JobStatus.FAILED.value, failure_reason=reason, processed_at=utcnow())
        )
        try:
            changed = session.execute(stmt).rowcount
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(f"failed to mark job {job_id} as failed: {exc}") from exc
        return changed > 0
