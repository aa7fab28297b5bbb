import eventlet

eventlet.monkey_patch()

from pcr_app import create_app  # noqa: E402
from pcr_app.context import get_context  # noqa: E402

app = create_app()

# gunicorn has already bound the listener when a worker imports this module;
# it also owns SIGTERM/SIGINT, so only the crash hooks are installed here.
_supervisor = get_context(app).supervisor
_supervisor.install_crash_handlers(signals=False)
_supervisor.bootstrap()

if __name__ == "__main__":
    # This file is intended to be run by Gunicorn:
    # gunicorn --worker-class eventlet -w 1 wsgi:app
    get_context(app).socketio.run(app)
