"""
Dependent-picklist decoding.

A dependent picklist value carries a ``validFor`` bitmap: base64 bytes where
bit ``i`` (MSB-first within each byte) is set when the value is allowed for
the controller's ``i``-th active value. Decoding inverts that into a mapping
``controller value -> sorted dependent values``.

Decoded mappings are cached per session, entity type, field pair and the
controller's active-value list, so a reordered controller is decoded again
instead of being served a stale table.
"""

from __future__ import annotations

import base64
import binascii
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Tuple

from recordseed.domain.errors import SchemaError
from recordseed.domain.models import FieldDescriptor
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CACHE_SIZE = 50


def decode_valid_for(bitmap: str) -> List[int]:
    """
    Return the controller positions encoded in a ``validFor`` bitmap.

    Raises
    ------
    binascii.Error
        If ``bitmap`` is not valid base64.
    """
    raw = base64.b64decode(bitmap, validate=True)
    return [
        byte_index * 8 + bit
        for byte_index, byte in enumerate(raw)
        for bit in range(8)
        if byte & (0x80 >> bit)
    ]


@dataclass(frozen=True)
class DependencyMapping:
    """Decoded validity table for one controller/dependent field pair."""

    controller_field: str
    dependent_field: str
    controller_values: Tuple[str, ...]
    mapping: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    skipped: Tuple[str, ...] = ()

    def valid_for(self, controller_value: str) -> Tuple[str, ...]:
        return self.mapping.get(controller_value, ())

    def controllers_allowing(self, dependent_value: str) -> List[str]:
        """Controller values (in controller order) for which ``dependent_value`` is valid."""
        return [c for c in self.controller_values if dependent_value in self.mapping.get(c, ())]

    @property
    def dependent_values(self) -> List[str]:
        """Every dependent value valid for at least one controller value."""
        return sorted({value for values in self.mapping.values() for value in values})

    @property
    def pair_count(self) -> int:
        return sum(len(values) for values in self.mapping.values())


def decode_dependency(
    controller: FieldDescriptor, dependent: FieldDescriptor
) -> DependencyMapping:
    """
    Decode the ``validFor`` bitmaps of ``dependent`` against ``controller``.

    Dependent values with a missing or malformed bitmap are skipped and
    logged; the rest of the decode proceeds.

    Raises
    ------
    SchemaError
        If the controller has no active picklist values to index into.
    """
    controller_values = tuple(controller.active_picklist_values)
    if not controller_values:
        raise SchemaError(
            "Controlling field has no active picklist values",
            field_name=controller.name,
        )

    table: Dict[str, List[str]] = {value: [] for value in controller_values}
    skipped: List[str] = []
    for entry in dependent.picklist_values:
        if not entry.active:
            continue
        if not entry.valid_for:
            log.debug(
                f"[PICKLIST] {dependent.name}={entry.value!r} has no validFor bitmap; skipped",
                extra={"field": dependent.name, "value": entry.value},
            )
            skipped.append(entry.value)
            continue
        try:
            positions = decode_valid_for(entry.valid_for)
        except (binascii.Error, ValueError) as exc:
            log.warning(
                f"[PICKLIST] Malformed validFor for {dependent.name}={entry.value!r}; skipped",
                extra={"field": dependent.name, "value": entry.value, "error": str(exc)},
            )
            skipped.append(entry.value)
            continue
        for position in positions:
            if position < len(controller_values):
                table[controller_values[position]].append(entry.value)

    return DependencyMapping(
        controller_field=controller.name,
        dependent_field=dependent.name,
        controller_values=controller_values,
        mapping={key: tuple(sorted(values)) for key, values in table.items()},
        skipped=tuple(skipped),
    )


class PicklistDependencyCache:
    """
    Thread-safe LRU cache of decoded mappings.

    Entries are immutable once built, so one cache can serve concurrent
    sessions; keys include the session id so sessions never see each
    other's metadata.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        self._max_size = max_size
        self._entries: "OrderedDict[Hashable, DependencyMapping]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key_for(
        session_id: str,
        entity_type: str,
        controller: FieldDescriptor,
        dependent: FieldDescriptor,
    ) -> Tuple[Hashable, ...]:
        return (
            session_id,
            entity_type,
            controller.name,
            dependent.name,
            tuple(controller.active_picklist_values),
        )

    def get_or_decode(
        self,
        session_id: str,
        entity_type: str,
        controller: FieldDescriptor,
        dependent: FieldDescriptor,
    ) -> DependencyMapping:
        key = self.key_for(session_id, entity_type, controller, dependent)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return cached
            self.misses += 1

        mapping = decode_dependency(controller, dependent)
        log.debug(
            f"[PICKLIST] Decoded {entity_type}.{controller.name} -> {dependent.name}",
            extra={"entity": entity_type, "pairs": mapping.pair_count, "skipped": len(mapping.skipped)},
        )
        with self._lock:
            self._entries[key] = mapping
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
        return mapping

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            for key in [k for k in self._entries if k[0] == session_id]:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


_shared_cache: Optional[PicklistDependencyCache] = None
_shared_lock = threading.Lock()


def shared_cache(max_size: int = DEFAULT_CACHE_SIZE) -> PicklistDependencyCache:
    """Process-wide cache used when a synthesizer is not given its own."""
    global _shared_cache
    with _shared_lock:
        if _shared_cache is None:
            _shared_cache = PicklistDependencyCache(max_size=max_size)
        return _shared_cache


__all__ = [
    "DependencyMapping",
    "PicklistDependencyCache",
    "decode_dependency",
    "decode_valid_for",
    "shared_cache",
]
