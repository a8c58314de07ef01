# govision/routes/job_routes.py
import logging

from flask import Blueprint, current_app, jsonify, request

from govision.errors import JobNotFoundError, RepositoryError
from govision.extensions import get_publisher, get_repository
from govision.services.status_service import get_status
from govision.services.submission import submit_job

logger = logging.getLogger(__name__)

bp = Blueprint("jobs", __name__)  # prefix is applied in govision/__init__.py


@bp.post("")
def submit():
    """
    Jobs: submit an image for detection
    ---
    tags:
      - Jobs
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - image_url
          properties:
            image_url:
              type: string
              description: Public URL of the image to analyse.
              example: "https://i.ibb.co/abc123/street.png"
    responses:
      202:
        description: Accepted (job queued)
      400:
        description: Missing image_url
      503:
        description: Job could not be queued
    """
    data = request.get_json(silent=True) or {}
    image_url = data.get("image_url")
    if not isinstance(image_url, str) or not image_url.strip():
        return jsonify({"ok": False, "error": "Missing 'image_url'"}), 400

    try:
        job_id = submit_job(
            image_url,
            get_repository(),
            get_publisher(),
            timeout=current_app.config.get("PUBLISH_TIMEOUT"),
        )
    except RepositoryError:
        logger.exception("Could not persist new job")
        return jsonify({"ok": False, "error": "Could not create job"}), 503
    except Exception:
        return jsonify({"ok": False, "error": "Could not queue job"}), 503

    return jsonify({"ok": True, "job_id": job_id, "status": "pending"}), 202


@bp.get("/<job_id>")
def status(job_id: str):
    """
    Jobs: status and predictions
    ---
    tags:
      - Jobs
    parameters:
      - in: path
        name: job_id
        required: true
        type: string
        example: "01HF8Z6K3W2Q4X9T7B5N1M0C2D"
    responses:
      200:
        description: OK
      404:
        description: Not found
      503:
        description: Storage unavailable
    """
    try:
        view = get_status(get_repository(), job_id)
    except JobNotFoundError:
        return jsonify({"ok": False, "error": "job not found"}), 404
    except RepositoryError:
        logger.exception("Error retrieving job %s", job_id, extra={"job_id": job_id})
        return jsonify({"ok": False, "error": "Error retrieving job status"}), 503

    return jsonify({"ok": True, **view.to_dict()}), 200
