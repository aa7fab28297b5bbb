"""SocketIO event handlers."""

import logging

from flask import request, session
from flask_socketio import SocketIO, emit, join_room

from pcr_app.services.notifications import user_room

logger = logging.getLogger(__name__)


def register_socket_handlers(socketio: SocketIO) -> None:
    @socketio.on("connect")
    def handle_connect(auth=None):
        logger.info(f"Socket connected: {request.sid}")
        user_id = session.get("user_id", "")
        if user_id:
            join_room(user_room(user_id))
        emit("connected", {"sid": request.sid, "user_id": user_id or None})

    @socketio.on("disconnect")
    def handle_disconnect(*args):
        logger.info(f"Socket disconnected: {request.sid}")
