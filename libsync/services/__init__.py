"""Services for discovery, sessions, the request pipeline and push tokens."""
from .discovery import ServerDiscoveryService
from .local_store import LocalStore, PushRegistration
from .pipeline import RequestPipeline
from .push_tokens import PushTokenManager, PushTokenState
from .scheduler import SchedulerService
from .session_manager import Session, SessionManager, SessionState

__all__ = [
    "ServerDiscoveryService",
    "LocalStore",
    "PushRegistration",
    "RequestPipeline",
    "PushTokenManager",
    "PushTokenState",
    "SchedulerService",
    "Session",
    "SessionManager",
    "SessionState",
]
