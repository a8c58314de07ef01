# govision/worker.py
# celery -A govision.worker worker --loglevel=INFO
import os

from govision import create_app
from govision.config import validate_worker_config
from govision.tasks.celery_app import bind_worker_signals, check_broker

flask_app = create_app(os.getenv("FLASK_ENV", "production"))
validate_worker_config(flask_app.config)
bind_worker_signals(flask_app)

celery = flask_app.extensions["celery"]
check_broker(celery)
