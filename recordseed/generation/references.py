"""
Identifier pools for cross-entity references.

Each load session owns one ``ReferenceResolver``. After every create call
the orchestrator appends the identifiers of successfully created records;
synthesis of later entity types reads them back. Pools only grow, so a
later entity type always sees every identifier created so far in the run.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


class ReferenceResolver:
    """Append-only, session-scoped identifier pools keyed by entity type."""

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        self._pools: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def append(self, entity_type: str, identifiers: Iterable[str]) -> int:
        """Add created identifiers for ``entity_type``; returns the new pool size."""
        new_ids = [identifier for identifier in identifiers if identifier]
        with self._lock:
            pool = self._pools.setdefault(entity_type, [])
            pool.extend(new_ids)
            return len(pool)

    def get(self, entity_type: str) -> Tuple[str, ...]:
        """Snapshot of the pool for ``entity_type`` (empty when nothing was created)."""
        with self._lock:
            return tuple(self._pools.get(entity_type, ()))

    def size(self, entity_type: str) -> int:
        with self._lock:
            return len(self._pools.get(entity_type, ()))

    def pick(self, targets: Sequence[str], record_index: int) -> Optional[str]:
        """
        Round-robin choice for a reference field.

        Uses the first target entity type with a non-empty pool and returns
        ``pool[record_index % len(pool)]``; None when every pool is empty.
        """
        with self._lock:
            for target in targets:
                pool = self._pools.get(target)
                if pool:
                    return pool[record_index % len(pool)]
        return None

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {name: len(pool) for name, pool in self._pools.items()}


__all__ = ["ReferenceResolver"]
