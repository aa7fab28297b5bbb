from flask import Blueprint, jsonify

from pcr_app.context import get_context
from pcr_app.database.connection import ping

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def api_health():
    ctx = get_context()
    database_ok = ping(ctx.engine)
    return jsonify({"status": "ok" if database_ok else "degraded", "database": database_ok})
