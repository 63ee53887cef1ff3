"""Push token schemas."""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PushTokenRequest(BaseModel):
    """Body of POST /users/push-token."""
    model_config = ConfigDict(populate_by_name=True)

    push_token: str = Field(..., min_length=1, serialization_alias="pushToken")
    platform: str = "android"


class PushTokenResponse(BaseModel):
    """Acknowledgement from the backend."""
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: Optional[str] = None
    user: Optional[dict] = None
