from enum import Enum


class TicketStatus(str, Enum):
    INTAKE = "intake"
    DIAGNOSED = "diagnosed"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    REPAIRING = "repairing"
    DONE = "done"
    PICKED_UP = "picked_up"


VALID_TRANSITIONS = {
    TicketStatus.INTAKE: [TicketStatus.DIAGNOSED],
    TicketStatus.DIAGNOSED: [TicketStatus.AWAITING_APPROVAL],
    TicketStatus.AWAITING_APPROVAL: [TicketStatus.APPROVED, TicketStatus.REJECTED],
    TicketStatus.APPROVED: [TicketStatus.REPAIRING, TicketStatus.DONE],
    TicketStatus.REJECTED: [],
    TicketStatus.REPAIRING: [TicketStatus.DONE],
    TicketStatus.DONE: [TicketStatus.PICKED_UP],
    TicketStatus.PICKED_UP: [],
}

# Only reachable when re-approval after a rejection is enabled.
REAPPROVAL_TRANSITIONS = [TicketStatus.AWAITING_APPROVAL, TicketStatus.APPROVED]

DECISION_STATUSES = {TicketStatus.APPROVED, TicketStatus.REJECTED}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: TicketStatus, to_state: TicketStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def parse_status(value) -> TicketStatus | None:
    """Coerce a raw column value into a TicketStatus, or None if unknown."""
    if isinstance(value, TicketStatus):
        return value
    try:
        return TicketStatus(value)
    except (TypeError, ValueError):
        return None


def allowed_transitions(from_state: TicketStatus, allow_reapproval: bool = False) -> list[TicketStatus]:
    allowed = list(VALID_TRANSITIONS.get(from_state, []))
    if allow_reapproval and from_state == TicketStatus.REJECTED:
        allowed.extend(REAPPROVAL_TRANSITIONS)
    return allowed


def can_transition(from_state: TicketStatus, to_state: TicketStatus, allow_reapproval: bool = False) -> bool:
    """Check if transition is valid."""
    return to_state in allowed_transitions(from_state, allow_reapproval=allow_reapproval)


def transition(from_state: TicketStatus, to_state: TicketStatus, allow_reapproval: bool = False) -> TicketStatus:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state, allow_reapproval=allow_reapproval):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def path_to(from_state: TicketStatus, to_state: TicketStatus, allow_reapproval: bool = False) -> list[TicketStatus]:
    """
    Shortest chain of valid transitions from one status to another.

    Staff actions may skip intermediate steps (recording a diagnosis on a fresh
    intake ticket moves it through diagnosed to awaiting_approval). Raises
    InvalidTransitionError when the target is unreachable.
    """
    if from_state == to_state:
        raise InvalidTransitionError(from_state, to_state)

    frontier = [[from_state]]
    seen = {from_state}
    while frontier:
        chain = frontier.pop(0)
        for nxt in allowed_transitions(chain[-1], allow_reapproval=allow_reapproval):
            if nxt in seen:
                continue
            if nxt == to_state:
                return chain[1:] + [nxt]
            seen.add(nxt)
            frontier.append(chain + [nxt])
    raise InvalidTransitionError(from_state, to_state)

