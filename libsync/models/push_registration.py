"""PushRegistrationRecord model - this installation's push token."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base


class PushRegistrationRecord(Base):
    """Device push token and its server sync state. Only row id=1 is used."""

    __tablename__ = "push_registrations"

    id = Column(Integer, primary_key=True)
    device_token = Column(String, nullable=False)
    platform = Column(String, default="android")  # android, ios
    synced = Column(Integer, default=0)  # 0 or 1
    registered_at = Column(DateTime, default=datetime.utcnow)
    synced_at = Column(DateTime, nullable=True)
