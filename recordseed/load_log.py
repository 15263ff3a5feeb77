"""
Durable JSON logs of a load run.

Outputs are written under ``<logs_dir>/<session_id>/``:
- ``<session_id>_<EntityType>.json`` per entity type, with every record outcome
- ``<session_id>.json``, the session summary, rewritten after each entity type
  and once more when the run finalizes
- ``<logs_dir>/latest.json``, a copy of the most recent session summary

A write failure raises ``DurableLogError``, which terminates the run.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from recordseed.domain.errors import DurableLogError
from recordseed.domain.models import LoadResult, RestoreReport, RunStatus
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

TOP_ERROR_COUNT = 5


def _round_float(value: float, decimals: int = 2) -> float:
    return round(value, decimals)


def most_common_errors(results: Sequence[LoadResult], limit: int = TOP_ERROR_COUNT) -> List[Dict[str, Any]]:
    """Most frequent ``"statusCode: message"`` keys across all record outcomes."""
    counter: Counter[str] = Counter()
    for result in results:
        for outcome in result.per_record_outcomes:
            for error in outcome.errors or ():
                counter[error.key] += 1
    return [{"error": key, "count": count} for key, count in counter.most_common(limit)]


def build_session_summary(
    session_id: str,
    started_at: datetime,
    results: Sequence[LoadResult],
    status: RunStatus,
    sequence: Sequence[str] = (),
    finished_at: Optional[datetime] = None,
    fatal_error: Optional[str] = None,
    restore_report: Optional[RestoreReport] = None,
) -> Dict[str, Any]:
    """
    Aggregate the load results of a session into one document.

    Parameters
    ----------
    session_id : str
        Session identifier.
    started_at : datetime
        When the run started.
    results : sequence[LoadResult]
        Results recorded so far, in load order.
    status : RunStatus
        Current run status.
    sequence : sequence[str]
        Planned load sequence.
    finished_at : datetime, optional
        When the run finished; None while it is still running.
    fatal_error : str, optional
        Message of the error that terminated the run, if any.
    restore_report : RestoreReport, optional
        Outcome of validation-rule restoration.
    """
    attempted = sum(r.attempted for r in results)
    created = sum(r.created for r in results)
    failed = sum(r.failed for r in results)
    total_ms = sum(r.elapsed_ms for r in results)
    duration_ms = (
        int((finished_at - started_at).total_seconds() * 1000) if finished_at else None
    )
    document: Dict[str, Any] = {
        "sessionInfo": {
            "sessionId": session_id,
            "startTime": started_at.isoformat(),
            "endTime": finished_at.isoformat() if finished_at else None,
            "durationMs": duration_ms,
            "status": status.value,
            "fatalError": fatal_error,
            "loadSequence": list(sequence),
        },
        "summary": {
            "entityTypesProcessed": len(results),
            "totalRecordsAttempted": attempted,
            "totalRecordsCreated": created,
            "totalRecordsFailed": failed,
            "overallSuccessRatePct": _round_float(created / attempted * 100) if attempted else 0.0,
            "totalTimeMs": total_ms,
            "averageTimePerEntityMs": int(total_ms / len(results)) if results else 0,
            "entityTypesWithErrors": [r.entity_type for r in results if r.failed or r.error_message],
            "mostCommonErrors": most_common_errors(results),
        },
        "entityResults": [
            r.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"per_record_outcomes"})
            for r in results
        ],
    }
    if restore_report is not None:
        document["validationRules"] = restore_report.model_dump(mode="json", by_alias=True)
    return document


class LoadLogWriter:
    """Writes the durable logs of one session."""

    def __init__(self, logs_dir: Path | str, session_id: str) -> None:
        self.logs_dir = Path(logs_dir)
        self.session_id = session_id
        self.session_dir = self.logs_dir / session_id

    def entity_log_path(self, entity_type: str) -> Path:
        return self.session_dir / f"{self.session_id}_{entity_type}.json"

    @property
    def summary_path(self) -> Path:
        return self.session_dir / f"{self.session_id}.json"

    def _dump(self, path: Path, payload: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
        except (OSError, TypeError, ValueError) as exc:
            raise DurableLogError(str(path), exc) from exc

    def write_entity_log(self, result: LoadResult, started_at: datetime) -> Path:
        """Persist one entity type's result with its record-level outcomes."""
        path = self.entity_log_path(result.entity_type)
        payload = {
            "sessionInfo": {
                "sessionId": self.session_id,
                "startTime": started_at.isoformat(),
            },
            "summary": {
                "objectName": result.entity_type,
                "recordsAttempted": result.attempted,
                "recordsCreated": result.created,
                "recordsFailed": result.failed,
                "successRatePct": result.success_rate_pct,
                "elapsedMs": result.elapsed_ms,
                "errorMessage": result.error_message,
            },
            "perRecordOutcomes": [o.to_document() for o in result.per_record_outcomes],
        }
        self._dump(path, payload)
        log.debug("Entity log persisted", extra={"entity": result.entity_type, "path": str(path)})
        return path

    def write_session_summary(self, document: Dict[str, Any]) -> Path:
        """Persist the session summary and refresh ``latest.json``."""
        self._dump(self.summary_path, document)
        self._dump(self.logs_dir / "latest.json", document)
        log.debug("Session summary persisted", extra={"path": str(self.summary_path)})
        return self.summary_path


__all__ = ["LoadLogWriter", "build_session_summary", "most_common_errors"]
