import pytest

from pcr_app.services.notifications import list_notifications
from pcr_app.web.middleware import SECURITY_HEADERS

# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def test_first_request_creates_session_and_cookie_is_reused(client):
    first = client.get("/api/session")
    assert first.status_code == 200
    assert "pcr.sid=" in first.headers.get("Set-Cookie", "")

    second = client.get("/api/session")
    assert second.json["sid"] == first.json["sid"]
    assert second.json["visits"] == 2


def test_untouched_session_is_not_saved(app, ctx):
    client = app.test_client()
    response = client.get("/api/health")
    assert response.status_code == 200
    assert "Set-Cookie" not in response.headers
    assert ctx.session_store.count() == 0


def test_session_cookie_attributes(client):
    cookie = client.get("/api/session").headers["Set-Cookie"]
    assert "HttpOnly" in cookie
    assert "SameSite=None" in cookie
    assert "Expires=" in cookie


def test_tampered_cookie_gets_a_new_session(app):
    client = app.test_client()
    real = client.get("/api/session").json["sid"]

    forged = app.test_client(use_cookies=False)
    response = forged.get("/api/session", headers={"Cookie": f"pcr.sid={real}.forged-signature"})
    assert response.json["sid"] != real
    assert response.json["visits"] == 1


def test_clearing_session_destroys_record(client, ctx):
    sid = client.post("/api/session", json={"user_id": "Alice"}).json["sid"]
    assert ctx.session_store.get(sid) == {"user_id": "alice"}

    response = client.delete("/api/session")
    assert response.status_code == 200
    assert ctx.session_store.get(sid) is None

    # Cookie was removed, so the next request starts over.
    assert client.get("/api/session").json["sid"] != sid


def test_bind_session_requires_user_id(client):
    response = client.post("/api/session", json={})
    assert response.status_code == 400
    assert "error" in response.json


def test_binding_a_user_issues_a_new_session_id(client, ctx):
    anonymous = client.get("/api/session").json["sid"]
    assert ctx.session_store.get(anonymous) == {"visits": 1}

    bound = client.post("/api/session", json={"user_id": "alice"}).json
    assert bound["sid"] != anonymous
    assert ctx.session_store.get(anonymous) is None
    assert ctx.session_store.get(bound["sid"]) == {"visits": 1, "user_id": "alice"}

    # The browser follows the new cookie.
    after = client.get("/api/session").json
    assert after["sid"] == bound["sid"]
    assert after["user_id"] == "alice"


def test_planted_session_id_is_not_valid_after_login(app, ctx):
    attacker = app.test_client()
    planted_cookie = attacker.get("/api/session").headers["Set-Cookie"].split(";")[0]

    victim = app.test_client(use_cookies=False)
    victim.get("/api/session", headers={"Cookie": planted_cookie})
    login = victim.post("/api/session", json={"user_id": "victim"}, headers={"Cookie": planted_cookie})
    assert login.status_code == 200

    # The attacker's copy of the cookie no longer reaches the bound session.
    seen = attacker.get("/api/session").json
    assert seen["user_id"] is None
    assert seen["sid"] != login.json["sid"]


# ---------------------------------------------------------------------------
# Static files + SPA fallback
# ---------------------------------------------------------------------------


def test_unknown_path_serves_spa_index(client):
    response = client.get("/unknown/path")
    assert response.status_code == 200
    assert b"PCR index" in response.data


def test_root_serves_spa_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert b"PCR index" in response.data


def test_build_dir_shadows_public_dir(client):
    assert b"build" in client.get("/app.js").data
    assert client.get("/robots.txt").data == b"User-agent: *"


def test_path_traversal_falls_back_to_index(client):
    response = client.get("/../conftest.py")
    assert b"PCR index" in response.data


def test_missing_index_is_500(client, frontend_dirs):
    build, _ = frontend_dirs
    (build / "index.html").unlink()
    assert client.get("/some/route").status_code == 500


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def test_cors_headers_for_allowed_origin(client):
    response = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_no_cors_headers_for_unknown_origin(client):
    response = client.get("/api/health", headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in response.headers


def test_preflight_is_answered(client):
    response = client.options(
        "/api/notifications",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type, X-Access-Token",
        },
    )
    assert response.status_code in (200, 204)
    assert "PATCH" in response.headers["Access-Control-Allow-Methods"]
    allowed = response.headers["Access-Control-Allow-Headers"].lower()
    assert "x-access-token" in allowed
    assert "content-type" in allowed
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_preflight_from_unknown_origin_gets_no_cors_headers(client):
    response = client.options(
        "/api/notifications",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert "Access-Control-Allow-Origin" not in response.headers
    assert "Access-Control-Allow-Credentials" not in response.headers


def test_cors_responses_vary_on_origin(client):
    response = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
    assert "Origin" in response.headers.get("Vary", "")


def test_security_headers_without_csp(client):
    response = client.get("/")
    for name in SECURITY_HEADERS:
        assert name in response.headers
    assert "Content-Security-Policy" not in response.headers


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def test_health_reports_database(client):
    response = client.get("/api/health")
    assert response.json == {"status": "ok", "database": True}


def test_notifications_api(client):
    assert client.get("/api/notifications").status_code == 401

    created = client.post(
        "/api/notifications",
        json={"recipient": "alice", "payload": {"text": "PCR result ready"}, "delay_seconds": 60},
    )
    assert created.status_code == 201
    assert created.json["notification"]["delivered_at"] is None

    client.post("/api/session", json={"user_id": "alice"})
    listed = client.get("/api/notifications").json["notifications"]
    assert [n["payload"] for n in listed] == [{"text": "PCR result ready"}]


def test_notifications_api_validates_input(client):
    assert client.post("/api/notifications", json={"payload": {}}).status_code == 400
    assert client.post("/api/notifications", json={"recipient": "a", "payload": []}).status_code == 400
    assert (
        client.post("/api/notifications", json={"recipient": "a", "delay_seconds": "soon"}).status_code == 400
    )


@pytest.mark.parametrize("delay", ["nan", "inf", "-inf", 1e300, 366 * 24 * 3600])
def test_notifications_api_rejects_unusable_delays(client, ctx, delay):
    response = client.post("/api/notifications", json={"recipient": "a", "payload": {}, "delay_seconds": delay})
    assert response.status_code == 400
    assert "delay_seconds" in response.json["error"]
    assert list_notifications(ctx, "a") == []


def test_notifications_api_accepts_delay_up_to_a_year(client):
    response = client.post(
        "/api/notifications", json={"recipient": "a", "payload": {}, "delay_seconds": 365 * 24 * 3600}
    )
    assert response.status_code == 201


def test_api_method_not_allowed_is_json(client):
    response = client.put("/api/health")
    assert response.status_code == 405
    assert "error" in response.json
