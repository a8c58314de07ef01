# govision/models/domain.py
"""
Plain domain types shared by the worker, the repositories and the read path.

They carry no SQLAlchemy state, so an in-memory repository and the
database-backed one return exactly the same objects.
"""
import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from govision.errors import MalformedMessageError


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.replace(microsecond=0).isoformat() + "Z" if dt else None


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.PENDING


@dataclass(frozen=True)
class Prediction:
    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_name: str
    class_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
            "class": self.class_name,
            "class_id": self.class_id,
        }


@dataclass(frozen=True)
class JobMessage:
    """Body of a job message: ``{"job_id": ..., "image_url": ...}``."""

    job_id: str
    image_url: str

    @classmethod
    def from_payload(cls, payload: Any) -> "JobMessage":
        if not isinstance(payload, Mapping):
            raise MalformedMessageError(f"expected a JSON object, got {type(payload).__name__}")
        job_id = payload.get("job_id")
        image_url = payload.get("image_url")
        for name, value in (("job_id", job_id), ("image_url", image_url)):
            if not isinstance(value, str) or not value.strip():
                raise MalformedMessageError(f"missing or invalid '{name}'")
        return cls(job_id=job_id.strip(), image_url=image_url.strip())

    def to_payload(self) -> Dict[str, str]:
        return {"job_id": self.job_id, "image_url": self.image_url}


@dataclass(frozen=True)
class JobResult:
    """A terminal write handed to ``ResultRepository.upsert``."""

    job_id: str
    image_url: str
    status: JobStatus
    processed_at: datetime
    predictions: List[Prediction] = field(default_factory=list)
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class PredictionRecord:
    prediction: Prediction
    created_at: datetime


@dataclass(frozen=True)
class JobRecord:
    job_id: str
    image_url: str
    status: JobStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    predictions: List[PredictionRecord] = field(default_factory=list)


@dataclass(frozen=True)
class JobView:
    job_id: str
    image_url: str
    status: str
    created_at: Optional[str]
    processed_at: Optional[str]
    failure_reason: Optional[str]
    predictions: List[Dict[str, Any]]

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobView":
        return cls(
            job_id=record.job_id,
            image_url=record.image_url,
            status=record.status.value,
            created_at=_iso(record.created_at),
            processed_at=_iso(record.processed_at),
            failure_reason=record.failure_reason,
            predictions=[
                {**p.prediction.to_dict(), "created_at": _iso(p.created_at)}
                for p in record.predictions
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
