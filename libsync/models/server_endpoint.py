"""ServerEndpointRecord model - the last backend address that answered a probe."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base


class ServerEndpointRecord(Base):
    """Persisted last-good server address. Only row id=1 is used."""

    __tablename__ = "server_endpoints"

    id = Column(Integer, primary_key=True)
    scheme = Column(String, nullable=False, default="http")  # http, https
    host = Column(String, nullable=False)
    port = Column(Integer, nullable=True)  # NULL = scheme default
    last_verified_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
