import pytest

from repairdesk.services.state_machine import (
    InvalidTransitionError,
    TicketStatus,
    can_transition,
    parse_status,
    path_to,
    transition,
)


class TestValidTransitions:
    def test_intake_to_diagnosed(self):
        assert transition(TicketStatus.INTAKE, TicketStatus.DIAGNOSED) == TicketStatus.DIAGNOSED

    def test_awaiting_approval_to_approved(self):
        assert transition(TicketStatus.AWAITING_APPROVAL, TicketStatus.APPROVED) == TicketStatus.APPROVED

    def test_awaiting_approval_to_rejected(self):
        assert transition(TicketStatus.AWAITING_APPROVAL, TicketStatus.REJECTED) == TicketStatus.REJECTED

    def test_approved_can_skip_straight_to_done(self):
        assert can_transition(TicketStatus.APPROVED, TicketStatus.DONE)

    def test_done_to_picked_up(self):
        assert transition(TicketStatus.DONE, TicketStatus.PICKED_UP) == TicketStatus.PICKED_UP


class TestInvalidTransitions:
    def test_intake_cannot_be_approved(self):
        with pytest.raises(InvalidTransitionError):
            transition(TicketStatus.INTAKE, TicketStatus.APPROVED)

    def test_picked_up_is_terminal(self):
        for status in TicketStatus:
            assert not can_transition(TicketStatus.PICKED_UP, status)

    def test_rejected_is_terminal_by_default(self):
        assert not can_transition(TicketStatus.REJECTED, TicketStatus.APPROVED)

    def test_same_state(self):
        with pytest.raises(InvalidTransitionError):
            transition(TicketStatus.REPAIRING, TicketStatus.REPAIRING)

    def test_error_message_names_both_states(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(TicketStatus.DONE, TicketStatus.INTAKE)
        assert "done -> intake" in str(exc_info.value)


class TestReapproval:
    def test_rejected_can_be_approved_when_enabled(self):
        assert transition(TicketStatus.REJECTED, TicketStatus.APPROVED, allow_reapproval=True) == TicketStatus.APPROVED

    def test_rejected_can_return_to_awaiting_approval_when_enabled(self):
        assert can_transition(TicketStatus.REJECTED, TicketStatus.AWAITING_APPROVAL, allow_reapproval=True)

    def test_flag_does_not_open_other_states(self):
        assert not can_transition(TicketStatus.PICKED_UP, TicketStatus.APPROVED, allow_reapproval=True)


class TestPathTo:
    def test_intake_to_awaiting_approval_walks_through_diagnosed(self):
        assert path_to(TicketStatus.INTAKE, TicketStatus.AWAITING_APPROVAL) == [
            TicketStatus.DIAGNOSED,
            TicketStatus.AWAITING_APPROVAL,
        ]

    def test_shortest_path_is_chosen(self):
        assert path_to(TicketStatus.APPROVED, TicketStatus.PICKED_UP) == [TicketStatus.DONE, TicketStatus.PICKED_UP]

    def test_unreachable_target_raises(self):
        with pytest.raises(InvalidTransitionError):
            path_to(TicketStatus.REJECTED, TicketStatus.DONE)

    def test_same_status_raises(self):
        with pytest.raises(InvalidTransitionError):
            path_to(TicketStatus.DONE, TicketStatus.DONE)


class TestLifecycle:
    def test_full_happy_path(self):
        status = TicketStatus.INTAKE
        for target in (
            TicketStatus.DIAGNOSED,
            TicketStatus.AWAITING_APPROVAL,
            TicketStatus.APPROVED,
            TicketStatus.REPAIRING,
            TicketStatus.DONE,
            TicketStatus.PICKED_UP,
        ):
            status = transition(status, target)
        assert status == TicketStatus.PICKED_UP

    def test_reject_from_repairing_fails(self):
        with pytest.raises(InvalidTransitionError):
            transition(TicketStatus.REPAIRING, TicketStatus.REJECTED)


class TestParseStatus:
    def test_known_value(self):
        assert parse_status("awaiting_approval") == TicketStatus.AWAITING_APPROVAL

    def test_unknown_and_none(self):
        assert parse_status("lost") is None
        assert parse_status(None) is None
