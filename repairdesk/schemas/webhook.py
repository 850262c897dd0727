from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundMessage(BaseModel):
    """Simplified gateway payload: ``{"from": "<phone or JID>", "text": "..."}``."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from", min_length=1)
    text: str = Field(min_length=1)


class ProviderEvent(BaseModel):
    """Raw event forwarded by the gateway (``messages.upsert`` and friends)."""

    event: str = Field(min_length=1)
    data: Any = None


class WebhookResponse(BaseModel):
    success: bool
    handled: Optional[bool] = None
