import json
import logging
from decimal import Decimal

from repairdesk.logging_config import JSONFormatter, bind_logger, get_logger


def _record(message="Ticket opened", **extra):
    record = logging.LogRecord("repairdesk.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_nested_context(self):
        line = JSONFormatter().format(_record(context={"ticket_number": "T-0001", "cost": Decimal("250.00")}))
        data = json.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "repairdesk.test"
        assert data["message"] == "Ticket opened"
        assert data["context"] == {"ticket_number": "T-0001", "cost": "250.00"}

    def test_no_context_key_without_context(self):
        assert "context" not in json.loads(JSONFormatter().format(_record()))


class TestContextLogger:
    def test_bound_fields_ride_along(self, caplog):
        caplog.set_level(logging.INFO, logger="repairdesk.sop_engine")
        log = bind_logger(get_logger("sop_engine"), session_id="60123456789")

        log.info("Inbound WhatsApp message handled", context={"command": "status"})

        record = caplog.records[-1]
        assert record.name == "repairdesk.sop_engine"
        assert record.context == {"session_id": "60123456789", "command": "status"}

    def test_call_context_wins_and_bind_extends(self, caplog):
        caplog.set_level(logging.INFO, logger="repairdesk.delivery_client")
        log = bind_logger(get_logger("delivery_client"), to="60123456789@s.whatsapp.net", attempt=0)

        log.bind(stage="pickup_ready").warning("WhatsApp delivery attempt failed", context={"attempt": 2})

        assert caplog.records[-1].context == {
            "to": "60123456789@s.whatsapp.net",
            "attempt": 2,
            "stage": "pickup_ready",
        }
