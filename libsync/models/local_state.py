"""LocalState model - key-value store for persisted client state."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime

from ..database import Base


class LocalState(Base):
    """Client state stored as key-value pairs."""

    __tablename__ = "local_state"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Canonical keys
AUTH_TOKEN_KEY = "auth_token"
USER_DATA_KEY = "user_data"
DATA_SOURCE_KEY = "api_mode"  # real, mock - owned by the settings screen

# Older app versions wrote the same value under a second key. These are folded
# into the canonical slots once at start-up and then removed.
LEGACY_KEY_ALIASES = {
    "token": AUTH_TOKEN_KEY,
    "userData": USER_DATA_KEY,
}

# Legacy keys that now live in their own tables
LEGACY_SERVER_ADDRESS_KEY = "server_ip"
LEGACY_PUSH_TOKEN_KEY = "expo_push_token"
