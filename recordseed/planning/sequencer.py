"""
Load ordering for the selected entity types.

Repeated batch extraction over the reference graph: every pass places all
not-yet-placed entity types whose selected dependencies are already placed.
A pass that places nothing means the remainder is cyclic; it is flushed as a
final batch in declared order. Passes are capped at ``len(nodes) + 2`` so the
loop terminates on any input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from recordseed.domain.models import GenerationConfig
from recordseed.planning.graph import DependencyGraph, SchemaSource, build_graph
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

EXTRA_PASSES = 2


@dataclass(frozen=True)
class SequencePlan:
    """
    Result of sequencing a graph.

    ``order`` is the load sequence; ``batches`` records how it was extracted and
    ``cyclic`` lists the entity types placed by a cycle flush.
    """

    order: Tuple[str, ...]
    batches: Tuple[Tuple[str, ...], ...] = ()
    cyclic: Tuple[str, ...] = ()
    passes: int = 0

    def position(self, entity_type: str) -> int:
        return self.order.index(entity_type)

    def to_document(self) -> dict:
        return {
            "order": list(self.order),
            "batches": [list(batch) for batch in self.batches],
            "cyclic": list(self.cyclic),
            "passes": self.passes,
        }


def sequence_graph(graph: DependencyGraph) -> SequencePlan:
    """
    Convert a reference graph into a load order.

    Ties inside a batch keep the graph's node order, so the result is
    deterministic for a given declared order.
    """
    remaining: List[str] = list(graph.nodes)
    placed: set[str] = set()
    order: List[str] = []
    batches: List[Tuple[str, ...]] = []
    cyclic: List[str] = []
    max_passes = len(graph.nodes) + EXTRA_PASSES
    passes = 0

    while remaining and passes < max_passes:
        passes += 1
        batch = [
            node
            for node in remaining
            if all(dep in placed for dep in graph.dependencies(node))
        ]
        if not batch:
            batch = list(remaining)
            cyclic.extend(batch)
            log.warning(
                f"[SEQUENCE] Reference cycle among {', '.join(batch)}; flushing in declared order",
                extra={"entities": batch, "pass": passes},
            )
        order.extend(batch)
        placed.update(batch)
        batches.append(tuple(batch))
        remaining = [node for node in remaining if node not in placed]

    if remaining:
        # Unreachable for well-formed graphs; keeps the output total regardless.
        order.extend(remaining)
        cyclic.extend(remaining)
        batches.append(tuple(remaining))

    return SequencePlan(
        order=tuple(order), batches=tuple(batches), cyclic=tuple(cyclic), passes=passes
    )


def declared_order(
    selected: Sequence[str], configs: Optional[Iterable[GenerationConfig]] = None
) -> List[str]:
    """
    Apply generation configs to the selection.

    Disabled entity types are dropped; the rest are stably ordered by
    ``load_priority`` (lower first), keeping selection order for equal priority.
    """
    if configs is None:
        return list(dict.fromkeys(selected))
    by_name = {config.entity_type: config for config in configs}
    chosen = [
        name
        for name in dict.fromkeys(selected)
        if name not in by_name or by_name[name].enabled
    ]
    return sorted(
        chosen, key=lambda name: by_name[name].load_priority if name in by_name else 0
    )


def plan_sequence(
    selected: Sequence[str],
    schemas: SchemaSource,
    configs: Optional[Iterable[GenerationConfig]] = None,
) -> SequencePlan:
    """Build the graph for ``selected`` and sequence it, keeping the extraction details."""
    graph = build_graph(declared_order(selected, configs), schemas)
    plan = sequence_graph(graph)
    log.info(
        f"[SEQUENCE] {' -> '.join(plan.order) or '(empty)'}",
        extra={"order": list(plan.order), "passes": plan.passes, "cyclic": list(plan.cyclic)},
    )
    return plan


def build_sequence(
    selected: Sequence[str],
    schemas: SchemaSource,
    configs: Optional[Iterable[GenerationConfig]] = None,
) -> List[str]:
    """
    Order ``selected`` so referenced entity types load before their referrers.

    Parameters
    ----------
    selected : sequence[str]
        Entity types chosen by the operator, in declared order.
    schemas : mapping or iterable of SchemaDescriptor
        Metadata for the selected entity types.
    configs : iterable of GenerationConfig, optional
        When given, disabled entity types are dropped and ``load_priority``
        decides the declared order used for tie-breaks.

    Returns
    -------
    list[str]
        The load sequence. Each entity type appears exactly once.
    """
    return list(plan_sequence(selected, schemas, configs).order)


__all__ = [
    "EXTRA_PASSES",
    "SequencePlan",
    "build_sequence",
    "declared_order",
    "plan_sequence",
    "sequence_graph",
]
