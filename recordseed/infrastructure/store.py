"""
Remote store client interface and an in-memory implementation.

The engine talks to the store only through ``RemoteStoreClient``:
describe an entity type, create a batch of records, and list/read/update
validation rules. ``InMemoryStoreClient`` implements the same contract
without a network; ``run --dry-run`` routes creates through it.
"""

from __future__ import annotations

import abc
import threading
import zlib
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from recordseed.domain.errors import FatalSetupError, SchemaError
from recordseed.domain.models import (
    CreateOutcome,
    SchemaDescriptor,
    ValidationRule,
    ValidationRuleRef,
)
from recordseed.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class RemoteStoreClient(Protocol):
    """
    Capabilities the engine consumes from the remote store.

    ``create`` is called once per entity type per run and returns one
    outcome per submitted record, in submission order.
    """

    def describe(self, entity_type: str) -> SchemaDescriptor:
        ...

    def create(self, entity_type: str, records: Sequence[Mapping[str, Any]]) -> List[CreateOutcome]:
        ...

    def list_validation_rules(self, entity_types: Sequence[str]) -> List[ValidationRuleRef]:
        ...

    def read_rule(self, ref: ValidationRuleRef) -> ValidationRule:
        ...

    def update_rule(self, rule: ValidationRule) -> None:
        ...


class AbstractStoreClient(abc.ABC):
    """
    Optional ABC helper for class-based clients.

    Subclasses implement the five store operations.
    """

    @abc.abstractmethod
    def describe(self, entity_type: str) -> SchemaDescriptor:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def create(
        self, entity_type: str, records: Sequence[Mapping[str, Any]]
    ) -> List[CreateOutcome]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def list_validation_rules(
        self, entity_types: Sequence[str]
    ) -> List[ValidationRuleRef]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def read_rule(self, ref: ValidationRuleRef) -> ValidationRule:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def update_rule(self, rule: ValidationRule) -> None:  # pragma: no cover
        raise NotImplementedError


def fake_record_id(entity_type: str, sequence: int) -> str:
    """18 character identifier shaped like the store's, unique per entity type and sequence."""
    prefix = f"{zlib.crc32(entity_type.encode('utf-8')) % 46656:03d}"[:3]
    return f"{prefix}SEED{sequence:011d}"


class InMemoryStoreClient(AbstractStoreClient):
    """
    Store client that keeps everything in process memory.

    Parameters
    ----------
    schemas : iterable of SchemaDescriptor
        Metadata returned by ``describe``.
    rules : iterable of ValidationRule
        Validation rules available to list/read/update.
    """

    def __init__(
        self,
        schemas: Iterable[SchemaDescriptor] = (),
        rules: Iterable[ValidationRule] = (),
    ) -> None:
        self.schemas: Dict[str, SchemaDescriptor] = {s.entity_type: s for s in schemas}
        self.rules: Dict[str, ValidationRule] = {r.full_name: r for r in rules}
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.create_calls: List[str] = []
        self.rule_updates: List[ValidationRule] = []
        self._sequence = 0
        self._lock = threading.Lock()

    def describe(self, entity_type: str) -> SchemaDescriptor:
        try:
            return self.schemas[entity_type]
        except KeyError as exc:
            raise SchemaError("Entity type is not described", entity_type=entity_type) from exc

    def create(self, entity_type: str, records: Sequence[Mapping[str, Any]]) -> List[CreateOutcome]:
        outcomes: List[CreateOutcome] = []
        with self._lock:
            self.create_calls.append(entity_type)
            stored = self.records.setdefault(entity_type, [])
            for record in records:
                self._sequence += 1
                identifier = fake_record_id(entity_type, self._sequence)
                stored.append({"Id": identifier, **record})
                outcomes.append(CreateOutcome(success=True, id=identifier))
        return outcomes

    def list_validation_rules(self, entity_types: Sequence[str]) -> List[ValidationRuleRef]:
        prefixes = tuple(f"{name}." for name in entity_types)
        return [
            ValidationRuleRef(full_name=rule.full_name, rule_id=rule.rule_id)
            for rule in self.rules.values()
            if rule.full_name.startswith(prefixes) and rule.active
        ]

    def read_rule(self, ref: ValidationRuleRef) -> ValidationRule:
        try:
            return self.rules[ref.full_name]
        except KeyError as exc:
            raise LookupError(f"Unknown validation rule {ref.full_name}") from exc

    def update_rule(self, rule: ValidationRule) -> None:
        with self._lock:
            self.rules[rule.full_name] = rule
            self.rule_updates.append(rule)


class DryRunStoreClient(InMemoryStoreClient):
    """
    Describes entity types through a real client but creates nothing remotely.

    Validation rules are never listed, so a dry run leaves them untouched.
    """

    def __init__(self, delegate: RemoteStoreClient) -> None:
        super().__init__()
        self._delegate = delegate

    def describe(self, entity_type: str) -> SchemaDescriptor:
        if entity_type not in self.schemas:
            self.schemas[entity_type] = self._delegate.describe(entity_type)
        return self.schemas[entity_type]

    def list_validation_rules(self, entity_types: Sequence[str]) -> List[ValidationRuleRef]:
        return []


def discover_schemas(
    client: RemoteStoreClient, entity_types: Sequence[str]
) -> Dict[str, SchemaDescriptor]:
    """
    Describe every entity type once.

    Raises
    ------
    FatalSetupError
        If any entity type cannot be described; a run cannot be planned
        without its metadata.
    """
    schemas: Dict[str, SchemaDescriptor] = {}
    for entity_type in dict.fromkeys(entity_types):
        try:
            schemas[entity_type] = client.describe(entity_type)
        except Exception as exc:  # noqa: BLE001 - any describe failure blocks planning
            raise FatalSetupError(
                f"Could not describe {entity_type}: {exc}", details={"entity_type": entity_type}
            ) from exc
        log.info(
            f"[DESCRIBE] {entity_type}",
            extra={"entity": entity_type, "fields": len(schemas[entity_type].fields)},
        )
    return schemas


__all__ = [
    "AbstractStoreClient",
    "DryRunStoreClient",
    "InMemoryStoreClient",
    "RemoteStoreClient",
    "discover_schemas",
    "fake_record_id",
]
