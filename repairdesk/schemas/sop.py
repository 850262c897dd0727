"""
Conversation session snapshot stored under ``metadata["sop"]`` of every
WhatsApp log row.

The newest row for a session id is the session state. Decoding is defensive:
anything that does not validate collapses to the all-null default.
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from repairdesk.services.intent_service import Command, parse_command
from repairdesk.services.state_machine import TicketStatus

SOP_METADATA_VERSION = 1
SOP_METADATA_KEY = "sop"


class SopStage(str, Enum):
    INTAKE_ACK = "intake_ack"
    DIAGNOSIS_SUMMARY = "diagnosis_summary"
    AWAITING_APPROVAL = "awaiting_approval"
    REPAIR_UPDATES = "repair_updates"
    DONE_INVOICE = "done_invoice"
    PICKUP_READY = "pickup_ready"
    PICKUP_COMPLETE = "pickup_complete"
    REVIEW_REMINDER = "review_reminder"


STAGE_ALIASES = {
    "diagnosis_approval": SopStage.AWAITING_APPROVAL,
    "repair_update": SopStage.REPAIR_UPDATES,
}


def normalize_stage(value) -> Optional[SopStage]:
    if value is None or value == "":
        return None
    if isinstance(value, SopStage):
        return value
    if isinstance(value, str) and value in STAGE_ALIASES:
        return STAGE_ALIASES[value]
    return SopStage(value)


class SopMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    version: int = SOP_METADATA_VERSION
    stage: Optional[SopStage] = None
    ticketId: Optional[UUID] = None
    lastCommand: Optional[Command] = None
    ticketStatus: Optional[TicketStatus] = None

    @field_validator("version", mode="before")
    @classmethod
    def _check_version(cls, value):
        if value is None:
            return SOP_METADATA_VERSION
        if value != SOP_METADATA_VERSION:
            raise ValueError(f"unsupported sop metadata version: {value}")
        return value

    @field_validator("stage", mode="before")
    @classmethod
    def _normalize_stage(cls, value):
        return normalize_stage(value)

    @field_validator("lastCommand", mode="before")
    @classmethod
    def _reject_unknown_command(cls, value):
        if value is None:
            return None
        if parse_command(value) is None:
            raise ValueError(f"invalid lastCommand: {value}")
        return value

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe dict for the ``sop`` key."""
        return {
            "version": self.version,
            "stage": self.stage.value if self.stage else None,
            "ticketId": str(self.ticketId) if self.ticketId else None,
            "lastCommand": self.lastCommand.value if self.lastCommand else None,
            "ticketStatus": self.ticketStatus.value if self.ticketStatus else None,
        }


EMPTY_SOP_METADATA = SopMetadata()


def coerce_sop_metadata(value: Any) -> SopMetadata:
    """Decode a stored metadata blob (with or without the ``sop`` wrapper)."""
    if not isinstance(value, dict):
        return EMPTY_SOP_METADATA

    container = value.get(SOP_METADATA_KEY) if SOP_METADATA_KEY in value else value
    if not isinstance(container, dict):
        return EMPTY_SOP_METADATA

    try:
        return SopMetadata.model_validate(container)
    except (ValidationError, ValueError):
        return EMPTY_SOP_METADATA


def build_message_metadata(sop: SopMetadata, **extra: Any) -> dict[str, Any]:
    """Freeform audit metadata with the SOP snapshot nested under ``sop``."""
    metadata = {key: value for key, value in extra.items()}
    metadata[SOP_METADATA_KEY] = sop.to_payload()
    return metadata
