"""The object that ties one running server together."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from flask import Flask, current_app
from flask_socketio import SocketIO
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pcr_app.services.scheduler import TaskScheduler
from pcr_app.sessions.store import SessionStore

if TYPE_CHECKING:
    from pcr_app.supervisor import Supervisor

EXTENSION_KEY = "pcr"


@dataclass
class AppContext:
    """Built once by ``create_app`` and handed to every component that needs
    shared state: routes reach it through :func:`get_context`, background
    tasks and socket handlers receive it directly."""

    config: Dict[str, Any]
    engine: Engine
    session_factory: sessionmaker[Session]
    session_store: SessionStore
    socketio: SocketIO
    scheduler: TaskScheduler
    sweeper: TaskScheduler
    supervisor: "Supervisor" = field(init=False)

    def is_production(self) -> bool:
        return self.config.get("APP_ENV") == "production"


def get_context(app: Optional[Flask] = None) -> AppContext:
    return (app or current_app).extensions[EXTENSION_KEY]
