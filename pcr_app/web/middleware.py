"""Request/response hooks applied to every route: CORS and security headers."""

from flask import Flask
from flask_cors import CORS

CORS_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE"]
CORS_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept", "X-Access-Token", "Authorization"]

# Same set helmet sends by default, minus the Content-Security-Policy
# (the frontend bundle is not written with a CSP in mind).
SECURITY_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def init_middleware(app: Flask) -> None:
    # Credentialed requests need the exact origin echoed back, never "*".
    CORS(
        app,
        origins=list(app.config.get("CORS_ORIGINS") or []),
        supports_credentials=True,
        methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.after_request
    def add_security_headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
