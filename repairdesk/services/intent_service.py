import re
from dataclasses import dataclass, field
from enum import Enum

from repairdesk.logging_config import get_logger

logger = get_logger("intent_service")


class Command(str, Enum):
    STATUS = "status"
    INVOICE = "invoice"
    PICKUP = "pickup"
    SUPPORT = "support"
    APPROVE = "approve"
    REJECT = "reject"
    UNKNOWN = "unknown"


DECISION_COMMANDS = {Command.APPROVE, Command.REJECT}

# Reject must be tested before approve: "tak setuju" contains "setuju".
CLASSIFICATION_ORDER = (
    Command.REJECT,
    Command.APPROVE,
    Command.PICKUP,
    Command.INVOICE,
    Command.STATUS,
    Command.SUPPORT,
)


@dataclass(frozen=True)
class IntentConfig:
    """Keyword sets per command. Entries are regex fragments matched on word boundaries."""

    keywords: dict = field(
        default_factory=lambda: {
            Command.REJECT: (r"tak\s*setuju", r"tidak\s*setuju", "tolak", "reject", "no"),
            Command.APPROVE: ("setuju", "approve", "lulus", "ya", "yes", "ok"),
            Command.PICKUP: ("pickup", "ambik", "ambil", "collect", "pengambilan"),
            Command.INVOICE: ("invoice", "invois", "resit", "bill", "bayar", "bayaran", "payment"),
            Command.STATUS: ("status", "progress", "kemajuan", "update"),
            Command.SUPPORT: ("staf", "staff", "manusia", "agent", "bantuan", "tolong", "hubungi"),
        }
    )
    menu_shortcuts: dict = field(
        default_factory=lambda: {
            Command.STATUS: "1",
            Command.INVOICE: "2",
            Command.PICKUP: "3",
            Command.SUPPORT: "4",
        }
    )
    order: tuple = CLASSIFICATION_ORDER


class IntentClassifier:
    """Ordered regex classifier. First matching command wins."""

    def __init__(self, config: IntentConfig | None = None):
        self.config = config or IntentConfig()
        self._patterns: list[tuple[Command, re.Pattern]] = []
        for command in self.config.order:
            fragments = list(self.config.keywords.get(command, ()))
            shortcut = self.config.menu_shortcuts.get(command)
            if shortcut:
                fragments.insert(0, re.escape(shortcut))
            if not fragments:
                continue
            pattern = re.compile(r"(?<!\w)(" + "|".join(fragments) + r")(?!\w)", re.IGNORECASE)
            self._patterns.append((command, pattern))

    def classify(self, message: str | None) -> Command:
        normalized = (message or "").strip().casefold()
        if not normalized:
            return Command.UNKNOWN

        for command, pattern in self._patterns:
            if pattern.search(normalized):
                return command

        return Command.UNKNOWN


_default_classifier = IntentClassifier()


def classify_command(message: str | None) -> Command:
    """Classify inbound chat text with the default keyword set."""
    command = _default_classifier.classify(message)
    logger.debug("Classified message", extra={"context": {"command": command.value}})
    return command


def is_decision(command: Command) -> bool:
    """Check if the command is an approve/reject decision."""
    return command in DECISION_COMMANDS


def parse_command(value) -> Command | None:
    """Coerce a stored value into a Command. `unknown` is never stored, so it maps to None."""
    try:
        command = Command(value)
    except (TypeError, ValueError):
        return None
    return None if command == Command.UNKNOWN else command
