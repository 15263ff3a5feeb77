"""
recordseed - dependency-ordered synthetic record loading for Salesforce-like stores.

This package generates realistic records for a chosen set of entity types and
loads them so that every reference field points at a record that already
exists:

- Schema graph building and topological load sequencing
- Dependent-picklist decoding with a bounded per-session cache
- Per-field value synthesis honoring lengths, picklists and overrides
- Round-robin reference resolution across previously created records
- Validation-rule suspension with durable, idempotent restoration
- A load orchestrator with progress events and per-session JSON logs
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from recordseed.config import Settings, get_settings
from recordseed.domain.models import (
    FieldDescriptor,
    GenerationConfig,
    LoadResult,
    ProgressEvent,
    RunSummary,
    SchemaDescriptor,
)
from recordseed.orchestrator import LoadOrchestrator, RunOptions, start_run
from recordseed.planning.graph import build_graph
from recordseed.planning.sequencer import build_sequence, plan_sequence
from recordseed.utils.logging import configure_logging, get_logger
from recordseed.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain models
    "FieldDescriptor",
    "GenerationConfig",
    "LoadResult",
    "ProgressEvent",
    "RunSummary",
    "SchemaDescriptor",
    # Planning
    "build_graph",
    "build_sequence",
    "plan_sequence",
    # Orchestration
    "LoadOrchestrator",
    "RunOptions",
    "start_run",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
