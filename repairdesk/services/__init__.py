from repairdesk.services.intent_service import (
    Command,
    IntentClassifier,
    IntentConfig,
    classify_command,
    is_decision,
)
from repairdesk.services.state_machine import (
    InvalidTransitionError,
    TicketStatus,
    can_transition,
    path_to,
    transition,
)
