import threading
from typing import Any, Mapping, Optional

from flask import Flask
from flask_socketio import SocketIO


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Application factory: creates and configures the Flask app.

    Everything the process shares (database engine, session store, socket
    server, schedulers, supervisor) hangs off one ``AppContext`` stored in
    ``app.extensions["pcr"]``.  Nothing is started here; ``Supervisor.serve``
    (or ``wsgi.py``) does that.
    """
    # Static files are served by views.frontend, not Flask's built-in route.
    app = Flask(__name__, static_folder=None)
    app.config.from_object("pcr_app.core.config.Config")
    if overrides:
        app.config.update(overrides)

    from datetime import timedelta

    from pcr_app.context import EXTENSION_KEY, AppContext
    from pcr_app.core.logging import configure_logging
    from pcr_app.core.telemetry import init_telemetry
    from pcr_app.database.connection import create_db_engine, create_session_factory
    from pcr_app.services.notifications import MESSAGE_NOTIFICATION_TASK, run_message_notification
    from pcr_app.services.scheduler import TaskScheduler
    from pcr_app.sessions import DatabaseSessionInterface, SessionStore
    from pcr_app.supervisor import Supervisor
    from pcr_app.web.middleware import init_middleware
    from pcr_app.web.routes import register_blueprints
    from pcr_app.web.sockets import register_socket_handlers

    configure_logging(app.config["LOG_LEVEL"])

    app.permanent_session_lifetime = timedelta(seconds=app.config["PERMANENT_SESSION_LIFETIME"])

    # ---- Database + sessions ---------------------------------------
    engine = create_db_engine(app.config["DATABASE_URL"])
    init_telemetry(app, engine)
    session_factory = create_session_factory(engine)
    session_store = SessionStore(session_factory)
    app.session_interface = DatabaseSessionInterface(session_store)

    # ---- Realtime channel ------------------------------------------
    socketio = SocketIO(
        app,
        path="socket.io",
        cors_allowed_origins=list(app.config["CORS_ORIGINS"]),
        cors_credentials=True,
        async_mode=app.config["SOCKETIO_ASYNC_MODE"],
    )

    # ---- Context, schedulers, supervisor ----------------------------
    cancelled = threading.Event()
    ctx = AppContext(
        config=app.config,
        engine=engine,
        session_factory=session_factory,
        session_store=session_store,
        socketio=socketio,
        scheduler=TaskScheduler(cancelled, name="task-scheduler"),
        sweeper=TaskScheduler(cancelled, name="session-sweeper"),
    )
    ctx.supervisor = Supervisor(app, ctx, cancelled=cancelled)
    app.extensions[EXTENSION_KEY] = ctx

    ctx.scheduler.schedule(
        MESSAGE_NOTIFICATION_TASK,
        app.config["NOTIFICATION_INTERVAL"],
        lambda: run_message_notification(ctx),
    )
    ctx.sweeper.schedule(
        "session-sweep",
        app.config["SESSION_SWEEP_INTERVAL"],
        lambda: session_store.sweep_expired(),
        run_immediately=False,
    )
    # -----------------------------------------------------------------

    init_middleware(app)
    register_blueprints(app)
    register_socket_handlers(socketio)

    return app
