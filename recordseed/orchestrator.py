"""
Load orchestrator: sequences the engine components into one load run.

Run lifecycle::

    Initializing -> (rule suspension) -> for each entity type in load order:
        Generating -> Loading -> Recording
    -> rule restoration -> Finalized

Any step may move the run to Errored; restoration and the final session
summary still happen. A failure inside one entity type is recorded as a
100%-failed ``LoadResult`` and the run moves on to the next entity type.

Usage (example from CLI):
    from recordseed.orchestrator import start_run

    handle = start_run(session_id, configs, schemas, client=client)
    summary = handle.wait()

Outputs are saved under ``logs/<session_id>/`` (see ``recordseed.load_log``).
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import zip_longest
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from recordseed.config import Settings, get_settings
from recordseed.domain.errors import DurableLogError, RemoteCreateFailure, SchemaError
from recordseed.domain.models import (
    CreateOutcome,
    GenerationConfig,
    LoadResult,
    ProgressEvent,
    ProgressStatus,
    RecordError,
    RecordOutcome,
    RestoreReport,
    RunStatus,
    RunSummary,
    SchemaDescriptor,
    utcnow,
)
from recordseed.generation.picklists import PicklistDependencyCache, shared_cache
from recordseed.generation.records import RecordGenerator, find_record_issues
from recordseed.generation.references import ReferenceResolver
from recordseed.generation.synthesizer import FieldValueSynthesizer, SessionScope
from recordseed.infrastructure.store import RemoteStoreClient
from recordseed.load_log import LoadLogWriter, build_session_summary
from recordseed.planning.graph import SchemaSource, index_schemas
from recordseed.planning.sequencer import build_sequence
from recordseed.rules.state import SessionStateStore
from recordseed.rules.suspension import ValidationRuleManager
from recordseed.utils.logging import get_logger
from recordseed.utils.profiler import profile_block

log = get_logger(__name__)

ProgressListener = Callable[[ProgressEvent], None]

PROCESSING_ERROR = "PROCESSING_ERROR"
REMOTE_CREATE_FAILURE = "REMOTE_CREATE_FAILURE"


def new_session_id() -> str:
    """Identifier of the form ``load_<UTC timestamp>_<6 hex chars>``."""
    return f"load_{datetime.now(timezone.utc):%Y%m%dT%H%M%S}_{secrets.token_hex(3)}"


def _round_float(value: float, decimals: int = 2) -> float:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals)


@dataclass(frozen=True)
class RunOptions:
    """Per-run knobs, defaulting to the environment settings."""

    logs_dir: Path = Path("logs")
    state_dir: Path = Path(".seed_state")
    entity_pause_seconds: float = 0.5
    seed: int = 42
    suspend_validation_rules: bool = True
    picklist_cache_size: int = 50

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RunOptions":
        settings = settings or get_settings()
        return cls(
            logs_dir=Path(settings.logs_dir),
            state_dir=Path(settings.state_dir),
            entity_pause_seconds=settings.entity_pause_seconds,
            seed=settings.seed,
            suspend_validation_rules=settings.suspend_validation_rules,
            picklist_cache_size=settings.picklist_cache_size,
        )


class LoadOrchestrator:
    """
    Drives one load run for one session.

    Parameters
    ----------
    client : RemoteStoreClient
        Store receiving the create calls and validation-rule toggles.
    session_id : str, optional
        Session identifier; generated when omitted.
    options : RunOptions, optional
        Directories, pause, seed, and whether to suspend validation rules.
    listeners : iterable of callables, optional
        Receive every ``ProgressEvent`` in emission order.
    cache : PicklistDependencyCache, optional
        Decoded dependent-picklist cache; the process-wide cache by default.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        session_id: Optional[str] = None,
        options: Optional[RunOptions] = None,
        listeners: Iterable[ProgressListener] = (),
        cache: Optional[PicklistDependencyCache] = None,
    ) -> None:
        self.client = client
        self.session_id = session_id or new_session_id()
        self.options = options or RunOptions.from_settings()
        self.resolver = ReferenceResolver(self.session_id)
        self.results: List[LoadResult] = []
        self._listeners: List[ProgressListener] = list(listeners)
        self._cancel = threading.Event()
        self._synthesizer = FieldValueSynthesizer(
            cache=cache or shared_cache(self.options.picklist_cache_size)
        )
        self._writer = LoadLogWriter(self.options.logs_dir, self.session_id)
        self._state_store = SessionStateStore(self.options.state_dir)

    # ------------------------------------------------------------------ #
    # Progress and cancellation
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def cancel(self) -> None:
        """Stop before the next entity type; the current batch finishes."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _emit(self, event: ProgressEvent) -> None:
        log.debug(
            f"[PROGRESS] {event.entity_type} {event.status.value}",
            extra={"session_id": self.session_id, **event.to_document()},
        )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001 - a listener never stalls the pipeline
                log.exception(
                    "Progress listener raised", extra={"session_id": self.session_id}
                )

    # ------------------------------------------------------------------ #
    # Per-entity pipeline
    # ------------------------------------------------------------------ #

    @staticmethod
    def _partition(
        records: Sequence[Dict[str, Any]], outcomes: Sequence[CreateOutcome]
    ) -> List[RecordOutcome]:
        partitioned: List[RecordOutcome] = []
        for index, (record, outcome) in enumerate(zip_longest(records, outcomes)):
            if record is None:
                break
            if outcome is None:
                outcome = CreateOutcome(
                    success=False,
                    errors=[RecordError(status_code="NO_RESULT", message="No result returned")],
                )
            if outcome.success and outcome.id:
                partitioned.append(RecordOutcome(index=index, id=outcome.id, data=record))
            else:
                errors = outcome.errors or [
                    RecordError(status_code="UNKNOWN", message="Create failed without error detail")
                ]
                partitioned.append(RecordOutcome(index=index, data=record, errors=errors))
        return partitioned

    def _create(
        self, entity_type: str, records: List[Dict[str, Any]]
    ) -> Tuple[List[CreateOutcome], Optional[str]]:
        try:
            return self.client.create(entity_type, records), None
        except Exception as exc:  # noqa: BLE001 - the whole batch is marked failed
            failure = RemoteCreateFailure(entity_type, exc)
            log.error(
                f"[CREATE FAILED] {entity_type}",
                extra={"session_id": self.session_id, "entity": entity_type, "error": str(exc)},
            )
            synthetic = RecordError(status_code=REMOTE_CREATE_FAILURE, message=str(exc))
            return [CreateOutcome(success=False, errors=[synthetic]) for _ in records], failure.message

    def _process_entity(
        self,
        schema: SchemaDescriptor,
        count: int,
        generator: RecordGenerator,
    ) -> Tuple[List[RecordOutcome], Optional[str]]:
        entity_type = schema.entity_type
        self._emit(
            ProgressEvent(entity_type=entity_type, status=ProgressStatus.GENERATING, total_count=count)
        )
        records = generator.generate(schema, count)
        self._emit(
            ProgressEvent(
                entity_type=entity_type,
                status=ProgressStatus.GENERATING,
                generated_count=len(records),
                total_count=count,
            )
        )
        flagged = sum(1 for record in records if find_record_issues(schema, record))
        if flagged:
            log.warning(
                f"[PRECHECK] {flagged}/{len(records)} {entity_type} record(s) may be rejected",
                extra={"session_id": self.session_id, "entity": entity_type, "flagged": flagged},
            )
        if not records:
            return [], None

        self._emit(
            ProgressEvent(
                entity_type=entity_type,
                status=ProgressStatus.LOADING,
                generated_count=len(records),
                total_count=count,
            )
        )
        outcomes, error_message = self._create(entity_type, records)
        partitioned = self._partition(records, outcomes)
        created = [o.id for o in partitioned if o.success and o.id]
        pool_size = self.resolver.append(entity_type, created)
        log.debug(
            f"[POOL] {entity_type} identifiers available: {pool_size}",
            extra={"session_id": self.session_id, "entity": entity_type},
        )
        return partitioned, error_message

    def _load_entity(
        self,
        entity_type: str,
        count: int,
        schemas: Mapping[str, SchemaDescriptor],
        generator: RecordGenerator,
    ) -> LoadResult:
        log.info(
            f"[ENTITY START] {entity_type}",
            extra={"session_id": self.session_id, "entity": entity_type, "records": count},
        )
        error_message: Optional[str] = None
        with profile_block(entity_type) as stats:
            try:
                schema = schemas.get(entity_type)
                if schema is None:
                    raise SchemaError("Entity type was not described", entity_type=entity_type)
                outcomes, error_message = self._process_entity(schema, count, generator)
            except Exception as exc:  # noqa: BLE001 - intentional broad catch to record failures
                log.exception(
                    f"[ENTITY FAILED] {entity_type}",
                    extra={"session_id": self.session_id, "entity": entity_type},
                )
                error_message = str(exc)
                synthetic = RecordError(status_code=PROCESSING_ERROR, message=str(exc))
                outcomes = [
                    RecordOutcome(index=index, errors=[synthetic]) for index in range(count)
                ]

        created = sum(1 for o in outcomes if o.success)
        attempted = len(outcomes)
        result = LoadResult(
            entity_type=entity_type,
            attempted=attempted,
            created=created,
            failed=attempted - created,
            success_rate_pct=_round_float(created / attempted * 100) if attempted else 0.0,
            elapsed_ms=stats.elapsed_ms,
            per_record_outcomes=outcomes,
            error_message=error_message,
        )
        self._emit(
            ProgressEvent(
                entity_type=entity_type,
                status=ProgressStatus.ERROR if error_message else ProgressStatus.COMPLETED,
                generated_count=attempted,
                loaded_count=created,
                total_count=count,
                error_message=error_message,
            )
        )
        log.info(
            f"[ENTITY COMPLETE] {entity_type}: {created}/{attempted} created",
            extra={
                "session_id": self.session_id,
                "entity": entity_type,
                "records_created": created,
                "records_failed": attempted - created,
                "elapsed_ms": stats.elapsed_ms,
                "peak_rss_bytes": stats.peak_rss_bytes,
            },
        )
        return result

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    def run(self, configs: Sequence[GenerationConfig], schemas: SchemaSource) -> RunSummary:
        """
        Execute the load run synchronously.

        Parameters
        ----------
        configs : sequence[GenerationConfig]
            One entry per entity type; disabled entries are skipped.
        schemas : mapping or iterable of SchemaDescriptor
            Metadata for every enabled entity type.

        Returns
        -------
        RunSummary
            Final status, load sequence, results in load order, and the
            validation-rule restoration report.
        """
        started_at = utcnow()
        status = RunStatus.RUNNING
        fatal_error: Optional[str] = None
        restore_report: Optional[RestoreReport] = None
        sequence: List[str] = []
        manager: Optional[ValidationRuleManager] = None
        by_name = index_schemas(schemas)
        counts = {c.entity_type: c.target_record_count for c in configs if c.enabled}

        log.info(
            f"[RUN START] {self.session_id}",
            extra={"session_id": self.session_id, "entities": list(counts)},
        )
        try:
            sequence = build_sequence(list(counts), by_name, configs)
            for entity_type in sequence:
                self._emit(
                    ProgressEvent(
                        entity_type=entity_type,
                        status=ProgressStatus.PENDING,
                        total_count=counts[entity_type],
                    )
                )

            if self.options.suspend_validation_rules and sequence:
                manager = ValidationRuleManager(self.client, self._state_store, self.session_id)
                manager.suspend(sequence)

            scope = SessionScope(
                session_id=self.session_id,
                resolver=self.resolver,
                schemas=by_name,
                seed=self.options.seed,
            )
            generator = RecordGenerator(self._synthesizer, scope)

            status = RunStatus.COMPLETED
            for position, entity_type in enumerate(sequence):
                if self._cancel.is_set():
                    status = RunStatus.CANCELLED
                    log.warning(
                        f"[RUN CANCELLED] before {entity_type}",
                        extra={"session_id": self.session_id, "remaining": sequence[position:]},
                    )
                    break
                result = self._load_entity(entity_type, counts[entity_type], by_name, generator)
                self.results.append(result)
                self._writer.write_entity_log(result, started_at)
                self._writer.write_session_summary(
                    build_session_summary(
                        self.session_id, started_at, self.results, RunStatus.RUNNING, sequence
                    )
                )
                if position < len(sequence) - 1 and self.options.entity_pause_seconds > 0:
                    self._cancel.wait(self.options.entity_pause_seconds)
        except DurableLogError as exc:
            status = RunStatus.ERRORED
            fatal_error = str(exc)
            log.error(f"[RUN ERRORED] {exc}", extra={"session_id": self.session_id})
        except Exception as exc:  # noqa: BLE001 - fatal errors still reach restoration
            status = RunStatus.ERRORED
            fatal_error = str(exc)
            log.exception(f"[RUN ERRORED] {exc}", extra={"session_id": self.session_id})
        finally:
            if manager is not None:
                try:
                    restore_report = manager.restore()
                except Exception as exc:  # noqa: BLE001 - the summary must still be written
                    status = RunStatus.ERRORED
                    fatal_error = fatal_error or f"Validation rule restoration failed: {exc}"
                    log.warning(
                        f"[RULES RESTORE FAILURE] {exc}; retry with restore-rules --session "
                        f"{self.session_id}",
                        extra={
                            "session_id": self.session_id,
                            "error_type": "RulesRestoreFailure",
                            "error": str(exc),
                        },
                    )

        finished_at = utcnow()
        try:
            self._writer.write_session_summary(
                build_session_summary(
                    self.session_id,
                    started_at,
                    self.results,
                    status,
                    sequence,
                    finished_at=finished_at,
                    fatal_error=fatal_error,
                    restore_report=restore_report,
                )
            )
        except DurableLogError as exc:
            log.error(
                f"[RUN] Session summary could not be written: {exc}",
                extra={"session_id": self.session_id},
            )

        log.info(
            f"[RUN COMPLETE] {self.session_id} {status.value}",
            extra={
                "session_id": self.session_id,
                "status": status.value,
                "entities": len(self.results),
                "records_created": sum(r.created for r in self.results),
                "records_failed": sum(r.failed for r in self.results),
            },
        )
        return RunSummary(
            session_id=self.session_id,
            status=status,
            sequence=sequence,
            results=list(self.results),
            restore_report=restore_report,
            fatal_error=fatal_error,
            started_at=started_at,
            finished_at=finished_at,
        )


class RunHandle:
    """Background load run started by ``start_run``."""

    def __init__(self, orchestrator: LoadOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.session_id = orchestrator.session_id
        self.summary: Optional[RunSummary] = None
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def _start(self, configs: Sequence[GenerationConfig], schemas: SchemaSource) -> None:
        def _target() -> None:
            try:
                self.summary = self.orchestrator.run(configs, schemas)
            except BaseException as exc:  # noqa: BLE001 - surfaced through wait()
                self.error = exc
            finally:
                _release(self.session_id)

        self._thread = threading.Thread(
            target=_target, name=f"load-run-{self.session_id}", daemon=False
        )
        self._thread.start()

    @property
    def done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def cancel(self) -> None:
        self.orchestrator.cancel()

    def wait(self, timeout: Optional[float] = None) -> Optional[RunSummary]:
        """Block until the run finishes (or ``timeout`` elapses) and return its summary."""
        if self._thread is not None:
            self._thread.join(timeout)
        if self.error is not None:
            raise self.error
        return self.summary


_active_runs: Dict[str, RunHandle] = {}
_active_lock = threading.Lock()


def _release(session_id: str) -> None:
    with _active_lock:
        _active_runs.pop(session_id, None)


def active_runs() -> List[str]:
    with _active_lock:
        return sorted(_active_runs)


def start_run(
    session_id: Optional[str],
    configs: Sequence[GenerationConfig],
    schemas: SchemaSource,
    client: RemoteStoreClient,
    options: Optional[RunOptions] = None,
    listeners: Iterable[ProgressListener] = (),
) -> RunHandle:
    """
    Start a load run on a background thread and return immediately.

    Raises
    ------
    ValueError
        If a run for ``session_id`` is already in progress.
    """
    orchestrator = LoadOrchestrator(
        client, session_id=session_id, options=options, listeners=listeners
    )
    handle = RunHandle(orchestrator)
    with _active_lock:
        if handle.session_id in _active_runs:
            raise ValueError(f"A load run is already active for session {handle.session_id}")
        _active_runs[handle.session_id] = handle
    try:
        handle._start(list(configs), schemas)
    except BaseException:
        _release(handle.session_id)
        raise
    return handle


__all__ = [
    "LoadOrchestrator",
    "ProgressListener",
    "RunHandle",
    "RunOptions",
    "active_runs",
    "new_session_id",
    "start_run",
]
