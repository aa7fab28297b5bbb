import math

from flask import Blueprint, jsonify, request, session

from pcr_app.context import get_context
from pcr_app.services.notifications import create_notification, list_notifications

notifications_bp = Blueprint("notifications", __name__)

# One year.
MAX_DELAY_SECONDS = 365 * 24 * 3600


@notifications_bp.route("/notifications", methods=["GET"])
def api_list_notifications():
    user_id = session.get("user_id")
    if not user_id:
        return jsonify({"error": "Unauthorized"}), 401

    limit = request.args.get("limit", 50, type=int)
    limit = max(1, min(limit, 200))
    return jsonify({"notifications": list_notifications(get_context(), user_id, limit=limit)})


@notifications_bp.route("/notifications", methods=["POST"])
def api_create_notification():
    data = request.get_json(silent=True) or {}
    recipient = str(data.get("recipient", "")).strip().lower()
    payload = data.get("payload", {})
    event = str(data.get("event") or "notification")

    if not recipient:
        return jsonify({"error": "recipient is required"}), 400
    if not isinstance(payload, dict):
        return jsonify({"error": "payload must be a JSON object"}), 400
    try:
        delay = float(data.get("delay_seconds", 0))
    except (TypeError, ValueError):
        return jsonify({"error": "delay_seconds must be a number"}), 400
    if not math.isfinite(delay):
        return jsonify({"error": "delay_seconds must be a finite number"}), 400
    if delay < 0:
        return jsonify({"error": "delay_seconds must not be negative"}), 400
    if delay > MAX_DELAY_SECONDS:
        return jsonify({"error": f"delay_seconds must not exceed {MAX_DELAY_SECONDS}"}), 400

    notification = create_notification(get_context(), recipient, payload, event=event, delay_seconds=delay)
    return jsonify({"success": True, "notification": notification}), 201
