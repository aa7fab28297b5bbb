"""Static assets and the single-page-app fallback."""

import logging
import os

from flask import Blueprint, current_app, send_from_directory
from werkzeug.exceptions import NotFound
from werkzeug.security import safe_join

logger = logging.getLogger(__name__)

views_bp = Blueprint("views", __name__)


def _static_roots():
    # Most specific first: the compiled frontend shadows the public folder.
    return (current_app.config["FRONTEND_BUILD_DIR"], current_app.config["PUBLIC_DIR"])


def _asset_path(root: str, path: str):
    candidate = safe_join(root, path)
    if candidate and os.path.isfile(candidate):
        return candidate
    return None


@views_bp.route("/", defaults={"path": ""})
@views_bp.route("/<path:path>")
def frontend(path: str):
    if path:
        for root in _static_roots():
            if _asset_path(root, path):
                return send_from_directory(root, path)

    # Anything else belongs to the client-side router.
    build_dir = current_app.config["FRONTEND_BUILD_DIR"]
    try:
        return send_from_directory(build_dir, "index.html")
    except NotFound:
        logger.error(f"SPA fallback missing: {os.path.join(build_dir, 'index.html')}")
        return "Frontend build not found", 500
