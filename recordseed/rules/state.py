"""
Durable per-session state.

One JSON document per session under the state directory holds the
validation-rule snapshot of that session. Every write goes to a temporary
file in the same directory followed by ``os.replace`` so a crash leaves
either the previous or the new document, never a torn one.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List

from recordseed.domain.models import ValidationRuleSnapshot, utcnow
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

RULES_KEY = "disabledValidationRules"


class SessionStateStore:
    """File-backed session state, safe to share between threads."""

    def __init__(self, state_dir: Path | str) -> None:
        self.state_dir = Path(state_dir)
        self._lock = threading.Lock()

    def path_for(self, session_id: str) -> Path:
        return self.state_dir / f"{session_id}.json"

    def load(self, session_id: str) -> Dict[str, Any]:
        path = self.path_for(session_id)
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, session_id: str, document: Dict[str, Any]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(session_id)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{session_id}.", suffix=".tmp", dir=self.state_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save_rule_snapshot(
        self, session_id: str, snapshots: Iterable[ValidationRuleSnapshot]
    ) -> None:
        """Replace the session's snapshot with ``snapshots``."""
        with self._lock:
            document = self.load(session_id)
            document.update(
                {
                    "sessionId": session_id,
                    "updatedAt": utcnow().isoformat(),
                    RULES_KEY: [snapshot.to_document() for snapshot in snapshots],
                }
            )
            self._write(session_id, document)

    def load_rule_snapshot(self, session_id: str) -> List[ValidationRuleSnapshot]:
        document = self.load(session_id)
        return [ValidationRuleSnapshot.model_validate(entry) for entry in document.get(RULES_KEY, [])]

    def remove_rules(self, session_id: str, full_names: Iterable[str]) -> List[ValidationRuleSnapshot]:
        """Drop restored rules from the snapshot; returns what is still pending."""
        names = set(full_names)
        with self._lock:
            document = self.load(session_id)
            if not document:
                return []
            remaining = [
                entry
                for entry in document.get(RULES_KEY, [])
                if entry.get("fullyQualifiedName") not in names
            ]
            document[RULES_KEY] = remaining
            document["updatedAt"] = utcnow().isoformat()
            if not remaining:
                document["restoredAt"] = document["updatedAt"]
            self._write(session_id, document)
        return [ValidationRuleSnapshot.model_validate(entry) for entry in remaining]

    def pending_sessions(self) -> Dict[str, int]:
        """Session id -> number of rules still awaiting restoration."""
        if not self.state_dir.exists():
            return {}
        pending: Dict[str, int] = {}
        for path in sorted(self.state_dir.glob("*.json")):
            try:
                with path.open("r", encoding="utf-8") as f:
                    document = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                log.warning(f"[STATE] Unreadable state file {path.name}", extra={"error": str(exc)})
                continue
            count = len(document.get(RULES_KEY, []))
            if count:
                pending[document.get("sessionId", path.stem)] = count
        return pending


__all__ = ["SessionStateStore", "RULES_KEY"]
