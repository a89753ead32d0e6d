import json
import logging
import time
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Emits one JSON object per log line on top of a standard `logging.Logger`.

    Used for lock operation outcomes on the service and for lifecycle state
    transitions on the client.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def _log(
        self,
        level: int,
        event_type: str,
        message: str,
        data: Dict[str, Any],
        session_id: Optional[str] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": time.time(),
            "event_type": event_type,
            "message": message,
            "data": data,
        }
        if session_id is not None:
            entry["session_id"] = session_id

        self.logger.log(level, json.dumps(entry, default=str))

    def lock_event(
        self,
        operation: str,
        outcome: str,
        key: str,
        lock_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        level: int = logging.INFO,
    ) -> None:
        """One lock operation and its outcome."""
        data: Dict[str, Any] = {"operation": operation, "outcome": outcome, "key": key}
        if lock_id:
            data["lock_id"] = lock_id
        if extra:
            data.update(extra)
        self._log(level, "lock_operation", f"{operation} {outcome} {key}", data)

    def state_transition(self, session_id: str, old_state: str, new_state: str, trigger: str) -> None:
        self._log(
            logging.INFO,
            "state_transition",
            f"{old_state} -> {new_state} ({trigger})",
            {"old_state": old_state, "new_state": new_state, "trigger": trigger},
            session_id=session_id,
        )
