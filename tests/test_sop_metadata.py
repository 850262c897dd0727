from uuid import UUID, uuid4

import pytest

from repairdesk.schemas.sop import (
    EMPTY_SOP_METADATA,
    SopMetadata,
    SopStage,
    build_message_metadata,
    coerce_sop_metadata,
)
from repairdesk.services.intent_service import Command
from repairdesk.services.session_service import next_session_state
from repairdesk.services.state_machine import TicketStatus

FIXED_TICKET_ID = UUID("0b6f3d5e-8a51-4f4e-9d0e-5c7d1c2b9a10")
STORED_COMMANDS = [None] + [command for command in Command if command != Command.UNKNOWN]


class TestCoerceSopMetadata:
    def test_wrapped_payload(self):
        ticket_id = uuid4()
        sop = coerce_sop_metadata(
            {
                "from": "60123456789",
                "sop": {
                    "version": 1,
                    "stage": "awaiting_approval",
                    "ticketId": str(ticket_id),
                    "lastCommand": "status",
                    "ticketStatus": "awaiting_approval",
                },
            }
        )
        assert sop.stage == SopStage.AWAITING_APPROVAL
        assert sop.ticketId == ticket_id
        assert sop.lastCommand == Command.STATUS
        assert sop.ticketStatus == TicketStatus.AWAITING_APPROVAL

    def test_unwrapped_payload_without_version(self):
        sop = coerce_sop_metadata({"stage": "pickup_ready", "ticketStatus": "done"})
        assert sop.version == 1
        assert sop.stage == SopStage.PICKUP_READY
        assert sop.ticketStatus == TicketStatus.DONE

    def test_legacy_stage_aliases(self):
        assert coerce_sop_metadata({"stage": "diagnosis_approval"}).stage == SopStage.AWAITING_APPROVAL
        assert coerce_sop_metadata({"stage": "repair_update"}).stage == SopStage.REPAIR_UPDATES

    def test_invalid_values_fall_back_to_empty(self):
        assert coerce_sop_metadata({"sop": {"stage": "teleported"}}) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata({"sop": {"ticketId": "not-a-uuid"}}) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata({"sop": {"lastCommand": "unknown"}}) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata({"sop": {"version": 2, "stage": "intake_ack"}}) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata({"sop": "garbage"}) == EMPTY_SOP_METADATA

    def test_non_dict_input(self):
        assert coerce_sop_metadata(None) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata([1, 2]) == EMPTY_SOP_METADATA
        assert coerce_sop_metadata("sop") == EMPTY_SOP_METADATA

    @pytest.mark.parametrize("ticket_id", [None, FIXED_TICKET_ID])
    @pytest.mark.parametrize("ticket_status", [None, *TicketStatus])
    @pytest.mark.parametrize("last_command", STORED_COMMANDS)
    @pytest.mark.parametrize("stage", [None, *SopStage])
    def test_every_snapshot_survives_storage(self, stage, last_command, ticket_status, ticket_id):
        sop = SopMetadata(stage=stage, ticketId=ticket_id, lastCommand=last_command, ticketStatus=ticket_status)
        assert coerce_sop_metadata(build_message_metadata(sop)) == sop

    def test_stored_payload_decodes_to_same_snapshot(self):
        sop = SopMetadata(
            stage=SopStage.DONE_INVOICE,
            ticketId=uuid4(),
            lastCommand=Command.INVOICE,
            ticketStatus=TicketStatus.DONE,
        )
        stored = build_message_metadata(sop, command="invoice")
        assert stored["command"] == "invoice"
        assert stored["sop"]["version"] == 1
        assert coerce_sop_metadata(stored) == sop


class TestNextSessionState:
    def test_unknown_keeps_previous_last_command(self):
        previous = SopMetadata(lastCommand=Command.PICKUP)
        state = next_session_state(previous, Command.UNKNOWN)
        assert state.lastCommand == Command.PICKUP

    def test_known_command_replaces_last_command(self):
        previous = SopMetadata(lastCommand=Command.PICKUP)
        assert next_session_state(previous, Command.STATUS).lastCommand == Command.STATUS

    def test_stage_derived_from_status_when_missing(self):
        state = next_session_state(EMPTY_SOP_METADATA, Command.STATUS, ticket_status=TicketStatus.REPAIRING)
        assert state.stage == SopStage.REPAIR_UPDATES
        assert state.ticketStatus == TicketStatus.REPAIRING

    def test_missing_values_fall_back_to_previous(self):
        ticket_id = uuid4()
        previous = SopMetadata(stage=SopStage.PICKUP_READY, ticketId=ticket_id, ticketStatus=TicketStatus.DONE)
        state = next_session_state(previous, Command.SUPPORT)
        assert state.stage == SopStage.PICKUP_READY
        assert state.ticketId == ticket_id
        assert state.ticketStatus == TicketStatus.DONE
