"""
Batch record generation for one entity type.

Wraps the field synthesizer with the per-record loop: fields are ordered so
controllers precede dependents, every record gets a fresh ``RecordContext``,
and required references with no identifiers yet are reported once per
batch instead of once per record.
"""

from __future__ import annotations

from typing import Any, Dict, List

from recordseed.domain.errors import ReferenceUnavailable
from recordseed.domain.models import FieldDescriptor, SchemaDescriptor
from recordseed.generation.field_rules import find_rule, is_excluded
from recordseed.generation.synthesizer import (
    FieldValueSynthesizer,
    RecordContext,
    SessionScope,
    order_fields,
)
from recordseed.utils.logging import get_logger

log = get_logger(__name__)


class RecordGenerator:
    """Produces the record payloads submitted in one create call."""

    def __init__(self, synthesizer: FieldValueSynthesizer, scope: SessionScope) -> None:
        self._synthesizer = synthesizer
        self._scope = scope

    def unavailable_references(self, schema: SchemaDescriptor) -> List[ReferenceUnavailable]:
        """Required reference fields whose target pools are all empty right now."""
        problems: List[ReferenceUnavailable] = []
        for descriptor in schema.reference_fields():
            if not descriptor.required or is_excluded(schema.entity_type, descriptor):
                continue
            rule = find_rule(schema.entity_type, descriptor.name)
            if rule is not None and (rule.skip or rule.has_fixed):
                continue
            targets = tuple(t for t in descriptor.reference_targets if t != schema.entity_type)
            if not any(self._scope.resolver.size(target) for target in targets):
                problems.append(
                    ReferenceUnavailable(schema.entity_type, descriptor.name, targets)
                )
        return problems

    def generate_record(
        self, schema: SchemaDescriptor, fields: List[FieldDescriptor], index: int
    ) -> Dict[str, Any]:
        context = RecordContext()
        record: Dict[str, Any] = {}
        for descriptor in fields:
            value = self._synthesizer.synthesize(
                descriptor, index, schema.entity_type, self._scope, context
            )
            if value is not None:
                record[descriptor.name] = value
        if schema.default_record_type_id:
            record.setdefault("RecordTypeId", schema.default_record_type_id)
        return record

    def generate(self, schema: SchemaDescriptor, count: int) -> List[Dict[str, Any]]:
        """
        Generate ``count`` records for ``schema``.

        Parameters
        ----------
        schema : SchemaDescriptor
            Metadata of the entity type being generated.
        count : int
            Number of records; 0 yields an empty list.

        Returns
        -------
        list[dict]
            Field name to value payloads, in record index order.
        """
        for problem in self.unavailable_references(schema):
            log.warning(
                f"[REFERENCE UNAVAILABLE] {problem.entity_type}.{problem.field_name} is required "
                f"but no {'/'.join(problem.targets) or 'target'} records exist; field left unset",
                extra={
                    "entity": problem.entity_type,
                    "field": problem.field_name,
                    "targets": list(problem.targets),
                },
            )

        fields = order_fields(schema.fields)
        return [self.generate_record(schema, fields, index) for index in range(count)]


def find_record_issues(schema: SchemaDescriptor, record: Dict[str, Any]) -> List[str]:
    """
    Pre-submission checks: required fields absent and strings over their length.

    Issues are reported, not fixed; the store's own validation decides.
    """
    issues: List[str] = []
    for descriptor in schema.fields:
        if is_excluded(schema.entity_type, descriptor):
            continue
        value = record.get(descriptor.name)
        if descriptor.required and value is None:
            issues.append(f"{descriptor.name}: required field missing")
        if (
            isinstance(value, str)
            and descriptor.max_length > 0
            and descriptor.type not in ("picklist", "multipicklist", "reference")
            and len(value) > descriptor.max_length
        ):
            issues.append(f"{descriptor.name}: exceeds max length {descriptor.max_length}")
    return issues


__all__ = ["RecordGenerator", "find_record_issues"]
