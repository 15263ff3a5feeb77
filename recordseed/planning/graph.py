"""
Reference graph between the entity types selected for a load run.

An edge ``A -> B`` means entity type ``A`` has a writable reference field
targeting ``B`` and ``B`` is selected too. References to entity types outside
the selection impose no ordering. A reference from an entity type to itself
is kept aside in ``self_references``: no ordering can satisfy it, so those
fields stay unset for the records created in that batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from recordseed.domain.models import SchemaDescriptor
from recordseed.generation.field_rules import is_excluded
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

SchemaSource = Union[Mapping[str, SchemaDescriptor], Iterable[SchemaDescriptor]]


@dataclass(frozen=True)
class DependencyGraph:
    """
    Immutable reference graph restricted to the selected entity types.

    Attributes
    ----------
    nodes : tuple[str, ...]
        Selected entity types in declared order.
    edges : dict[str, tuple[str, ...]]
        For each node, the selected entity types it references, in field order.
    self_references : dict[str, tuple[str, ...]]
        For each node, names of reference fields that target the node itself.
    """

    nodes: Tuple[str, ...]
    edges: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    self_references: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def dependencies(self, node: str) -> Tuple[str, ...]:
        return self.edges.get(node, ())

    def dependents(self, node: str) -> List[str]:
        return [other for other in self.nodes if node in self.dependencies(other)]

    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.edges.values())

    def to_document(self) -> dict:
        return {
            "nodes": list(self.nodes),
            "edges": {node: list(targets) for node, targets in self.edges.items() if targets},
            "selfReferences": {
                node: list(names) for node, names in self.self_references.items() if names
            },
        }


def index_schemas(schemas: SchemaSource) -> Dict[str, SchemaDescriptor]:
    """Accept either a mapping or an iterable of descriptors and key them by entity type."""
    if isinstance(schemas, Mapping):
        return dict(schemas)
    return {schema.entity_type: schema for schema in schemas}


def build_graph(selected: Sequence[str], schemas: SchemaSource) -> DependencyGraph:
    """
    Build the reference graph for ``selected`` from their schema descriptors.

    Parameters
    ----------
    selected : sequence[str]
        Entity types chosen for the run, in declared order. Duplicates are dropped.
    schemas : mapping or iterable of SchemaDescriptor
        Metadata for (at least) the selected entity types.

    Returns
    -------
    DependencyGraph
        Graph whose edges only point at selected entity types.
    """
    nodes: List[str] = list(dict.fromkeys(selected))
    selected_set = set(nodes)
    by_name = index_schemas(schemas)

    edges: Dict[str, Tuple[str, ...]] = {}
    self_refs: Dict[str, Tuple[str, ...]] = {}
    for node in nodes:
        schema = by_name.get(node)
        if schema is None:
            log.warning(
                f"[GRAPH] No schema for {node}; treating it as having no dependencies",
                extra={"entity": node},
            )
            edges[node] = ()
            continue

        targets: List[str] = []
        own_fields: List[str] = []
        for descriptor in schema.reference_fields():
            if is_excluded(node, descriptor):
                continue
            for target in descriptor.reference_targets:
                if target == node:
                    own_fields.append(descriptor.name)
                elif target in selected_set and target not in targets:
                    targets.append(target)
        edges[node] = tuple(targets)
        self_refs[node] = tuple(dict.fromkeys(own_fields))

    graph = DependencyGraph(nodes=tuple(nodes), edges=edges, self_references=self_refs)
    log.debug(
        "[GRAPH] Built reference graph",
        extra={"nodes": len(graph.nodes), "edges": graph.edge_count()},
    )
    return graph


__all__ = ["DependencyGraph", "SchemaSource", "build_graph", "index_schemas"]
