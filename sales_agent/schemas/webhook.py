from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WahaMedia(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    mimetype: Optional[str] = None


class WahaMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    sender: Optional[str] = Field(default=None, alias="from")
    body: Optional[str] = None
    from_me: bool = Field(default=False, alias="fromMe")
    has_media: bool = Field(default=False, alias="hasMedia")
    type: Optional[str] = None
    timestamp: Optional[int] = None
    media: Optional[WahaMedia] = None
    raw_data: Optional[dict[str, Any]] = Field(default=None, alias="_data")


class WahaWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Optional[str] = None
    session: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


class WebhookAck(BaseModel):
    status: str = "received"
    processed: bool = False
    intent: Optional[str] = None
    reason: Optional[str] = None
