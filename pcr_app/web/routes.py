from flask import Flask


def register_blueprints(app: Flask) -> None:
    from pcr_app.api import api_bp, init_api_errors
    from pcr_app.web.views import views_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(views_bp)
    init_api_errors(app)
