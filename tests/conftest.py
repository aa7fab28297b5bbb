import pytest

from pcr_app import create_app
from pcr_app.context import get_context
from pcr_app.database.schema import sync_schema


@pytest.fixture
def frontend_dirs(tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    (build / "index.html").write_text("<html><body>PCR index</body></html>")
    (build / "app.js").write_text("console.log('build');")

    public = tmp_path / "public"
    public.mkdir()
    (public / "robots.txt").write_text("User-agent: *")
    (public / "app.js").write_text("console.log('public');")
    return build, public


@pytest.fixture
def app(tmp_path, frontend_dirs):
    build, public = frontend_dirs
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "DATABASE_URL": f"sqlite:///{tmp_path / 'test.db'}",
            "SESSION_COOKIE_SECURE": False,
            "SOCKETIO_ASYNC_MODE": "threading",
            "CORS_ORIGINS": ["http://localhost:3000"],
            "FRONTEND_BUILD_DIR": str(build),
            "PUBLIC_DIR": str(public),
        }
    )
    ctx = get_context(app)
    sync_schema(ctx.engine, alter=True)
    yield app

    ctx.scheduler.stop(timeout=1.0)
    ctx.sweeper.stop(timeout=1.0)
    ctx.engine.dispose()


@pytest.fixture
def ctx(app):
    return get_context(app)


@pytest.fixture
def client(app):
    return app.test_client()
