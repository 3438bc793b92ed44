from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import RLock
from typing import Any, Optional

from orgflow.core.config import settings
from orgflow.core.errors import StoreUnavailable


logger = logging.getLogger(__name__)


class EventLogger:
    """Append-only JSON-lines audit trail of hierarchy and workflow actions.

    Events are written after the change they describe has been committed, so a
    failed append is reported through the application log and never raised.
    """

    def __init__(self, event_path: Path | None = None) -> None:
        self.event_path = event_path or settings.event_log_path
        self.event_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = RLock()

    def log_event(
        self,
        event_type: str,
        actor_id: str,
        actor_role: Any,
        details: dict[str, Any],
    ) -> bool:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "actor_id": actor_id,
            "actor_role": actor_role.value if isinstance(actor_role, Enum) else str(actor_role),
            "details": details,
        }
        return self._append(json.dumps(record, default=str))

    def _append(self, line: str) -> bool:
        try:
            with self.lock, self.event_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            logger.exception("Could not append audit event to %s: %s", self.event_path, line)
            return False
        return True

    def read_events(self) -> list[dict[str, Any]]:
        if not self.event_path.exists():
            return []

        events: list[dict[str, Any]] = []
        skipped = 0
        try:
            with self.lock, self.event_path.open(encoding="utf-8") as handle:
                for raw in handle:
                    if not raw.strip():
                        continue
                    try:
                        events.append(json.loads(raw))
                    except json.JSONDecodeError:
                        skipped += 1
        except OSError as exc:
            raise StoreUnavailable(f"Audit trail {self.event_path} is unreadable") from exc

        if skipped:
            logger.warning("Skipped %d malformed audit lines in %s", skipped, self.event_path)
        return events

    def recent_events(
        self,
        limit: int = 100,
        event_type: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Newest ``limit`` events, oldest first, optionally filtered."""
        events = self.read_events()
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        if actor_id:
            events = [e for e in events if e.get("actor_id") == actor_id]
        return events[-limit:]
