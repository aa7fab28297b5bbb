from .interface import DatabaseSessionInterface, ServerSession
from .store import SessionStore

__all__ = ["DatabaseSessionInterface", "ServerSession", "SessionStore"]
