from __future__ import annotations

from typing import Dict, Optional, Sequence

from recordseed.domain.models import FieldDescriptor, GenerationConfig, SchemaDescriptor
from recordseed.planning.graph import build_graph
from recordseed.planning.sequencer import (
    EXTRA_PASSES,
    build_sequence,
    declared_order,
    plan_sequence,
)


def _schema(name: str, refs: Optional[Dict[str, Sequence[str]]] = None, **field_kwargs) -> SchemaDescriptor:
    fields = [FieldDescriptor(name="Name", type="string", max_length=80)]
    for field_name, targets in (refs or {}).items():
        fields.append(
            FieldDescriptor(
                name=field_name,
                type="reference",
                reference_targets=tuple(targets),
                **field_kwargs,
            )
        )
    return SchemaDescriptor(entity_type=name, fields=tuple(fields))


class TestGraph:
    """Reference graph construction."""

    def test_edges_only_point_at_selected_types(self):
        schemas = [
            _schema("Contact", {"AccountId": ["Account"], "OwnerRef__c": ["User"]}),
            _schema("Account"),
        ]
        graph = build_graph(["Contact", "Account"], schemas)
        assert graph.dependencies("Contact") == ("Account",)
        assert graph.dependencies("Account") == ()
        assert graph.dependents("Account") == ["Contact"]

    def test_self_reference_is_kept_aside(self):
        graph = build_graph(["Account"], [_schema("Account", {"ParentId": ["Account"]})])
        assert graph.dependencies("Account") == ()
        assert graph.self_references["Account"] == ("ParentId",)
        assert graph.edge_count() == 0

    def test_non_writable_reference_imposes_no_order(self):
        schemas = [
            _schema("Contact", {"AccountId": ["Account"]}, writable=False),
            _schema("Account"),
        ]
        graph = build_graph(["Contact", "Account"], schemas)
        assert graph.dependencies("Contact") == ()

    def test_polymorphic_reference_adds_every_selected_target(self):
        schemas = [
            _schema("Task", {"WhatId": ["Account", "Opportunity", "Case"]}),
            _schema("Account"),
            _schema("Opportunity"),
        ]
        graph = build_graph(["Task", "Account", "Opportunity"], schemas)
        assert graph.dependencies("Task") == ("Account", "Opportunity")

    def test_missing_schema_means_no_dependencies(self):
        graph = build_graph(["Ghost"], [])
        assert graph.nodes == ("Ghost",)
        assert graph.dependencies("Ghost") == ()

    def test_to_document_omits_empty_edges(self):
        graph = build_graph(
            ["Contact", "Account"],
            [_schema("Contact", {"AccountId": ["Account"]}), _schema("Account")],
        )
        document = graph.to_document()
        assert document["nodes"] == ["Contact", "Account"]
        assert document["edges"] == {"Contact": ["Account"]}
        assert document["selfReferences"] == {}


class TestSequencer:
    """Load ordering over the reference graph."""

    def test_chain_is_ordered_dependencies_first(self):
        schemas = [
            _schema("C", {"BRef": ["B"]}),
            _schema("B", {"ARef": ["A"]}),
            _schema("A"),
        ]
        assert build_sequence(["C", "B", "A"], schemas) == ["A", "B", "C"]

    def test_independent_types_keep_declared_order(self):
        schemas = [_schema("X"), _schema("Y"), _schema("Z")]
        assert build_sequence(["Y", "Z", "X"], schemas) == ["Y", "Z", "X"]

    def test_cycle_is_flushed_in_declared_order(self):
        schemas = [
            _schema("A", {"BRef": ["B"]}),
            _schema("B", {"ARef": ["A"]}),
            _schema("C"),
        ]
        plan = plan_sequence(["A", "B", "C"], schemas)
        assert list(plan.order) == ["C", "A", "B"]
        assert plan.cyclic == ("A", "B")
        assert plan.batches == (("C",), ("A", "B"))

    def test_cycle_flush_places_every_remaining_type(self):
        schemas = [
            _schema("A", {"BRef": ["B"]}),
            _schema("B", {"ARef": ["A"]}),
            _schema("D", {"ARef": ["A"]}),
        ]
        plan = plan_sequence(["D", "A", "B"], schemas)
        assert list(plan.order) == ["D", "A", "B"]
        assert plan.cyclic == ("D", "A", "B")

    def test_self_reference_does_not_block_placement(self):
        schemas = [
            _schema("Account", {"ParentId": ["Account"]}),
            _schema("Contact", {"AccountId": ["Account"], "ReportsToId": ["Contact"]}),
        ]
        assert build_sequence(["Contact", "Account"], schemas) == ["Account", "Contact"]

    def test_every_type_appears_exactly_once(self):
        schemas = [_schema(name, {"Ref": ["A", "B", "C"]}) for name in ("A", "B", "C")]
        order = build_sequence(["A", "B", "C", "A"], schemas)
        assert sorted(order) == ["A", "B", "C"]
        assert len(order) == len(set(order))

    def test_pass_count_is_bounded(self):
        names = [f"E{i}" for i in range(6)]
        schemas = [
            _schema(name, {"Next": [names[(i + 1) % len(names)]]}) for i, name in enumerate(names)
        ]
        plan = plan_sequence(names, schemas)
        assert plan.passes <= len(names) + EXTRA_PASSES
        assert set(plan.order) == set(names)

    def test_empty_selection(self):
        assert build_sequence([], []) == []


class TestDeclaredOrder:
    """Generation configs applied before sequencing."""

    def test_lower_priority_offered_first(self):
        configs = [
            GenerationConfig(entity_type="A", load_priority=1),
            GenerationConfig(entity_type="B", load_priority=0),
        ]
        assert declared_order(["A", "B"], configs) == ["B", "A"]
        assert build_sequence(["A", "B"], [_schema("A"), _schema("B")], configs) == ["B", "A"]

    def test_priority_never_overrides_dependencies(self):
        configs = [
            GenerationConfig(entity_type="Contact", load_priority=0),
            GenerationConfig(entity_type="Account", load_priority=5),
        ]
        schemas = [_schema("Contact", {"AccountId": ["Account"]}), _schema("Account")]
        assert build_sequence(["Contact", "Account"], schemas, configs) == ["Account", "Contact"]

    def test_disabled_types_are_dropped(self):
        configs = [
            GenerationConfig(entity_type="A"),
            GenerationConfig(entity_type="B", enabled=False),
        ]
        assert declared_order(["A", "B"], configs) == ["A"]
