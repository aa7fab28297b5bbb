from flask import Blueprint, Flask, jsonify, request
from werkzeug.exceptions import HTTPException

# Import and register all sub-blueprints
from .health import health_bp
from .notifications import notifications_bp
from .session import session_bp

api_bp = Blueprint("api", __name__)

api_bp.register_blueprint(health_bp)
api_bp.register_blueprint(session_bp)
api_bp.register_blueprint(notifications_bp)


def init_api_errors(app: Flask) -> None:
    """API clients get JSON errors instead of Werkzeug's HTML pages.

    Registered on the app rather than the blueprint: routing errors (404,
    405) are raised before any blueprint is selected.
    """

    @app.errorhandler(HTTPException)
    def json_http_error(exc: HTTPException):
        if request.path.startswith("/api/"):
            return jsonify({"error": exc.description}), exc.code
        return exc
