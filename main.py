"""
PCR portal server — entry point.

All application logic lives inside the ``pcr_app`` package.
Run with:  uv run python main.py
"""

import eventlet

eventlet.monkey_patch()

from pcr_app import create_app  # noqa: E402
from pcr_app.context import get_context  # noqa: E402

app = create_app()

if __name__ == "__main__":
    get_context(app).supervisor.serve()
