from govision.models import db
from govision.models.domain import JobStatus, utcnow

class Job(db.Model):
    __tablename__ = "jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.String(255), index=True, unique=True, nullable=False)
    image_url = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=JobStatus.PENDING.value, index=True)
    failure_reason = db.Column(db.Text, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    predictions = db.relationship(
        "Prediction",
        order_by="Prediction.id",
        lazy="selectin",
        viewonly=True,
    )


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(
        db.String(255),
        db.ForeignKey("jobs.job_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    x = db.Column(db.Float, nullable=False)
    y = db.Column(db.Float, nullable=False)
    width = db.Column(db.Float, nullable=False)
    height = db.Column(db.Float, nullable=False)
    confidence = db.Column(db.Float, nullable=False)
    class_name = db.Column("class", db.String(255), nullable=False)
    class_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_predictions_confidence"),
        db.CheckConstraint(
            "x >= 0 AND y >= 0 AND width >= 0 AND height >= 0", name="ck_predictions_geometry"
        ),
    )
