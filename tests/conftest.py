import os
import pytest

from govision import create_app
from govision.models import db as _db
from govision.models.domain import Prediction
from govision.models.job import Job, Prediction as PredictionRow

@pytest.fixture(scope="session")
def app():
    os.environ["FLASK_ENV"] = "testing"
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def db(app):
    yield _db
    _db.session.rollback()
    _db.session.execute(PredictionRow.__table__.delete())
    _db.session.execute(Job.__table__.delete())
    _db.session.commit()


class FakeDetector:
    """Returns (or raises) the scripted results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results) or [[]]
        self.calls = []

    def detect(self, image_url, timeout=None):
        self.calls.append(image_url)
        result = self.results[min(len(self.calls), len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class FakeDeadLetter:
    def __init__(self):
        self.published = []

    def publish(self, message, reason, attempts):
        self.published.append((message, reason, attempts))


@pytest.fixture()
def cat_and_dog():
    return [
        Prediction(x=120.0, y=80.5, width=64.0, height=48.0, confidence=0.92, class_name="cat", class_id=0),
        Prediction(x=300.0, y=210.0, width=90.0, height=70.0, confidence=0.55, class_name="dog", class_id=1),
    ]

@pytest.fixture()
def dead_letter():
    return FakeDeadLetter()

@pytest.fixture()
def make_detector():
    return FakeDetector
