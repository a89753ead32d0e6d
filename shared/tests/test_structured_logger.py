"""
Structured logger tests: every line is a parseable JSON object.
"""

import json
import logging

from shared.structured_logger import StructuredLogger


def _entries(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records]


class TestStructuredLogger:

    def test_lock_event(self, caplog):
        logger = StructuredLogger(logging.getLogger("test.lock"))

        with caplog.at_level(logging.INFO, logger="test.lock"):
            logger.lock_event("acquire", "conflict", "booking_lock:t1:r1:2025-06-01:10:00",
                              extra={"remaining_ttl": 9000})

        entry = _entries(caplog)[0]
        assert entry["event_type"] == "lock_operation"
        assert entry["data"]["operation"] == "acquire"
        assert entry["data"]["remaining_ttl"] == 9000
        assert "lock_id" not in entry["data"]

    def test_state_transition(self, caplog):
        logger = StructuredLogger(logging.getLogger("test.fsm"))

        with caplog.at_level(logging.INFO, logger="test.fsm"):
            logger.state_transition("session-a", "acquiring", "locked", "acquired")

        entry = _entries(caplog)[0]
        assert entry["session_id"] == "session-a"
        assert entry["message"] == "acquiring -> locked (acquired)"
        assert entry["data"]["new_state"] == "locked"

    def test_lock_event_level(self, caplog):
        logger = StructuredLogger(logging.getLogger("test.level"))

        with caplog.at_level(logging.INFO, logger="test.level"):
            logger.lock_event("release", "lock_mismatch", "booking_lock:t1:r1:2025-06-01:10:00",
                              lock_id="stale", level=logging.WARNING)

        assert caplog.records[0].levelno == logging.WARNING
        entry = _entries(caplog)[0]
        assert entry["data"]["lock_id"] == "stale"
        assert "session_id" not in entry
