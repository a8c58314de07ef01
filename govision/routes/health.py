import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from govision.models import db

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)

@bp.get("/healthz")
def healthz():
    """
    Liveness
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True}), 200

@bp.get("/readyz")
def readyz():
    """
    Readiness: database reachable
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
      503:
        description: Database unavailable
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("Readiness check failed: %s", e)
        return jsonify({"ok": False, "database": "unavailable"}), 503
    return jsonify({"ok": True, "database": "ok"}), 200
