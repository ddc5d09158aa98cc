from flask import Blueprint, jsonify
from sqlalchemy import text

from . import db

bp = Blueprint("main", __name__)


# Small health check
@bp.get("/healthz")
def healthz():
    return jsonify({"ok": True})


@bp.get("/readyz")
def readyz():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        return jsonify({"ok": False, "error": str(e)}), 503
    return jsonify({"ok": True})
