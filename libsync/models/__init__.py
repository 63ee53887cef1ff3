"""Database models."""
from .local_state import LocalState
from .server_endpoint import ServerEndpointRecord
from .push_registration import PushRegistrationRecord

__all__ = ["LocalState", "ServerEndpointRecord", "PushRegistrationRecord"]
