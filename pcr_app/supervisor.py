"""
Process supervision: ordered startup and fail-fast crash handling.

Startup runs in three steps: the HTTP listener is bound, the database schema
is reconciled, and then the periodic tasks start.  A schema failure is
fatal.

Crash policy: an exception nobody handled (main thread, any background
thread or greenthread, or a requested non-zero exit) leaves the process in
an unknown state.  It is logged at CRITICAL, the cancellation signal is
broadcast to the timers, the connected sockets and the database pool, and
the process exits with status 1.  No in-process recovery is attempted.

Mapping to Python:

* uncaught exception in the main thread   -> ``sys.excepthook``
* exception escaping any other thread     -> ``threading.excepthook``
  (this covers work spawned from request handlers; an exception *inside* a
  Flask view is request-scoped and becomes a 500)
* exception escaping :meth:`Supervisor.spawn` work -> :meth:`Supervisor.fatal`
  (eventlet greenthreads never reach ``threading.excepthook``)
* ``SystemExit`` with a non-zero code      -> :meth:`Supervisor.exit`
* SIGTERM / SIGINT                         -> graceful :meth:`Supervisor.shutdown`
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from typing import TYPE_CHECKING, Callable, Optional

from flask import Flask

from pcr_app.database.schema import sync_schema

if TYPE_CHECKING:
    from pcr_app.context import AppContext

logger = logging.getLogger(__name__)


def _exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


class Supervisor:
    def __init__(
        self,
        app: Flask,
        ctx: AppContext,
        *,
        cancelled: Optional[threading.Event] = None,
        exit_func: Callable[[int], None] = os._exit,
    ) -> None:
        self.app = app
        self.ctx = ctx
        # Shared with every TaskScheduler built for this app.
        self.cancelled = cancelled if cancelled is not None else threading.Event()
        self._exit = exit_func
        self._fatal_lock = threading.Lock()
        self._fatal = False

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def bootstrap(self) -> bool:
        """Reconcile the schema, then start the timers.  False on failure."""
        alter = not self.ctx.is_production()
        try:
            added = sync_schema(self.ctx.engine, alter=alter)
        except Exception as exc:
            self.fatal("Database schema reconciliation failed", exc_info=True, error=repr(exc))
            return False

        logger.info(
            "Database schema synchronised",
            extra={"alter": alter, "added_columns": added},
        )
        self.ctx.scheduler.start()
        self.ctx.sweeper.start()
        return True

    def serve(self, host: str = "0.0.0.0", port: Optional[int] = None) -> None:
        """Bind, reconcile, start tasks and block serving requests."""
        port = port or self.ctx.config["PORT"]
        self.install_crash_handlers()

        # Runs once the server loop is up and listening.
        self.spawn(self._bootstrap_after_bind)

        run_kwargs = {}
        if self.ctx.socketio.server.eio.async_mode == "threading":
            # Werkzeug refuses to serve without this outside a terminal.
            run_kwargs["allow_unsafe_werkzeug"] = not self.ctx.is_production()

        logger.info(f"Server running on port {port}")
        try:
            self.ctx.socketio.run(self.app, host=host, port=port, **run_kwargs)
        except SystemExit as exc:
            self.exit(_exit_code(exc.code))
            raise

    def _bootstrap_after_bind(self) -> None:
        self.ctx.socketio.sleep(0)
        self.bootstrap()

    def spawn(self, target: Callable, *args, **kwargs):
        """Start background work on the server's async mode, fail-fast.

        Flask-SocketIO hands eventlet work to bare greenthreads whose errors
        the hub only prints, so the crash policy is applied here.
        """
        return self.ctx.socketio.start_background_task(self._run_guarded, target, *args, **kwargs)

    def _run_guarded(self, target: Callable, *args, **kwargs) -> None:
        try:
            target(*args, **kwargs)
        except SystemExit as exc:
            self.exit(_exit_code(exc.code))
        except Exception:
            self.fatal(
                "unhandled exception in background task",
                exc_info=True,
                task=getattr(target, "__name__", repr(target)),
            )

    # ------------------------------------------------------------------
    # Crash handling
    # ------------------------------------------------------------------

    def install_crash_handlers(self, *, signals: bool = True) -> None:
        """Route every unhandled error to :meth:`fatal`.

        Pass ``signals=False`` under a process manager (gunicorn) that owns
        SIGTERM/SIGINT itself.
        """
        sys.excepthook = self._handle_uncaught
        threading.excepthook = self._handle_thread_exception

        if signals and threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._handle_signal)
            signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_uncaught(self, exc_type, exc_value, exc_tb) -> None:
        self.fatal("uncaught exception", exc_info=(exc_type, exc_value, exc_tb))

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if issubclass(args.exc_type, SystemExit):
            self.exit(_exit_code(args.exc_value.code))
            return
        thread_name = args.thread.name if args.thread is not None else "?"
        self.fatal(
            "unhandled exception in background thread",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
            thread_name=thread_name,
        )

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self.shutdown()
        raise SystemExit(0)

    def fatal(self, message: str, *, exc_info=None, **details) -> None:
        """Log at CRITICAL, cancel everything and exit with status 1."""
        with self._fatal_lock:
            if self._fatal:
                return
            self._fatal = True

        logger.critical(message, exc_info=exc_info, extra=details)
        self.cancel()
        for handler in logging.getLogger().handlers:
            handler.flush()
        self._exit(1)

    def exit(self, code: int) -> None:
        """A requested exit: non-zero codes are treated as fatal."""
        if code:
            self.fatal("process exit", code=code)
        else:
            self.shutdown()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Broadcast cancellation: stop all timers, drop the socket clients and
        release the DB pool."""
        self.cancelled.set()
        self.ctx.scheduler.stop(timeout=1.0)
        self.ctx.sweeper.stop(timeout=1.0)
        self.disconnect_sockets()
        try:
            self.ctx.engine.dispose()
        except Exception:
            logger.warning("Error disposing database engine", exc_info=True)

    def disconnect_sockets(self) -> int:
        """Disconnect every Socket.IO client.  Returns how many were dropped."""
        server = self.ctx.socketio.server
        if server is None:
            return 0

        dropped = 0
        for namespace in list(server.manager.get_namespaces()):
            for sid, _eio_sid in list(server.manager.get_participants(namespace, None)):
                try:
                    server.disconnect(sid, namespace=namespace)
                    dropped += 1
                except Exception:
                    logger.warning("Error disconnecting socket", exc_info=True, extra={"sid": sid})
        if dropped:
            logger.info(f"Disconnected {dropped} socket client(s)")
        return dropped

    def shutdown(self) -> None:
        """Graceful stop.  In-flight requests are left to the server to drain."""
        if self.cancelled.is_set():
            return
        logger.info("Shutting down")
        self.cancel()
