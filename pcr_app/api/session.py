"""Session inspection and the user binding that socket rooms rely on."""

from flask import Blueprint, jsonify, request, session

session_bp = Blueprint("session", __name__)


@session_bp.route("/session", methods=["GET"])
def api_get_session():
    session["visits"] = session.get("visits", 0) + 1
    return jsonify(
        {
            "sid": getattr(session, "sid", None),
            "user_id": session.get("user_id"),
            "visits": session["visits"],
        }
    )


@session_bp.route("/session", methods=["POST"])
def api_bind_session():
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("user_id", "")).strip().lower()
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    # A sid issued before login must not carry the login.
    session.regenerate()
    session["user_id"] = user_id
    return jsonify({"sid": getattr(session, "sid", None), "user_id": user_id})


@session_bp.route("/session", methods=["DELETE"])
def api_clear_session():
    session.clear()
    return jsonify({"success": True})
