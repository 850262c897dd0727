from repairdesk.schemas.sop import SopMetadata, SopStage, coerce_sop_metadata
from repairdesk.schemas.webhook import InboundMessage, ProviderEvent, WebhookResponse

__all__ = [
    "InboundMessage",
    "ProviderEvent",
    "WebhookResponse",
    "SopMetadata",
    "SopStage",
    "coerce_sop_metadata",
]
