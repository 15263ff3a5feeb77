"""
Validation-rule suspension manager.

Lifecycle for one session::

    ACTIVE --suspend--> SUSPENDED --restore--> RESTORED
                                  \\--restore (failures)--> SUSPENDED_FAILED_RESTORE

Each deactivated rule is written to durable session state before the next
rule is touched, so a crash mid-run always leaves a restorable snapshot.
Restoration re-reads each rule, reactivates only rules that are still
inactive, and clears snapshot entries only for rules confirmed active.
"""

from __future__ import annotations

import contextlib
from typing import Generator, List, Optional, Sequence

from recordseed.domain.errors import RulesRestoreFailure, RulesSuspendFailure
from recordseed.domain.models import (
    RestoreReport,
    SuspensionState,
    ValidationRule,
    ValidationRuleSnapshot,
)
from recordseed.infrastructure.store import RemoteStoreClient
from recordseed.rules.state import SessionStateStore
from recordseed.utils.logging import get_logger

log = get_logger(__name__)


class ValidationRuleManager:
    """
    Suspends and restores the validation rules of one session.

    Parameters
    ----------
    client : RemoteStoreClient
        Store exposing list/read/update of validation rules.
    store : SessionStateStore
        Durable state where the snapshot lives.
    session_id : str
        Session the snapshot belongs to.
    """

    def __init__(self, client: RemoteStoreClient, store: SessionStateStore, session_id: str) -> None:
        self._client = client
        self._store = store
        self.session_id = session_id
        self.state = SuspensionState.ACTIVE
        self.last_report: Optional[RestoreReport] = None

    def suspend(self, entity_types: Sequence[str]) -> List[ValidationRuleSnapshot]:
        """
        Deactivate every active rule of ``entity_types``.

        Rules that cannot be read or updated are logged and left active.
        Returns the snapshot of rules actually deactivated.
        """
        try:
            refs = self._client.list_validation_rules(list(entity_types))
        except Exception as exc:  # noqa: BLE001 - run proceeds without suspension
            failure = RulesSuspendFailure(f"Could not list validation rules: {exc}")
            log.warning(f"[RULES] {failure}", extra={"session_id": self.session_id})
            return []

        snapshots = [
            s for s in self._store.load_rule_snapshot(self.session_id) if s.originally_active
        ]
        known = {s.full_name for s in snapshots}
        for ref in refs:
            if ref.full_name in known:
                continue
            try:
                rule = self._client.read_rule(ref)
                if not rule.active:
                    continue
                self._client.update_rule(rule.with_active(False))
            except Exception as exc:  # noqa: BLE001 - one rule never blocks the rest
                failure = RulesSuspendFailure(
                    f"Could not deactivate {ref.full_name}: {exc}", rule_name=ref.full_name
                )
                log.warning(f"[RULES] {failure}", extra={"session_id": self.session_id})
                continue

            snapshots.append(
                ValidationRuleSnapshot(
                    full_name=rule.full_name,
                    originally_active=True,
                    rule_id=rule.rule_id,
                    entity_type=ref.entity_type,
                    rule_name=ref.rule_name,
                    error_message=rule.error_message,
                )
            )
            try:
                self._store.save_rule_snapshot(self.session_id, snapshots)
            except OSError as exc:
                snapshots.pop()
                log.error(
                    f"[RULES] Could not persist snapshot after deactivating {rule.full_name}; "
                    "reactivating it and stopping suspension",
                    extra={"session_id": self.session_id, "error": str(exc)},
                )
                self._revert(rule)
                break
            self.state = SuspensionState.SUSPENDED
            log.info(
                f"[RULE SUSPENDED] {rule.full_name}",
                extra={"session_id": self.session_id, "rule": rule.full_name},
            )

        log.info(
            f"[RULES SUSPENDED] {len(snapshots)} of {len(refs)} rule(s)",
            extra={"session_id": self.session_id, "suspended": len(snapshots), "listed": len(refs)},
        )
        return list(snapshots)

    def _revert(self, rule: ValidationRule) -> None:
        try:
            self._client.update_rule(rule.with_active(True))
        except Exception as exc:  # noqa: BLE001 - logged for manual follow-up
            log.error(
                f"[RULES] Could not reactivate {rule.full_name}; reactivate it manually",
                extra={"session_id": self.session_id, "error": str(exc)},
            )

    def pending(self) -> List[ValidationRuleSnapshot]:
        return self._store.load_rule_snapshot(self.session_id)

    def restore(self, snapshot: Optional[Sequence[ValidationRuleSnapshot]] = None) -> RestoreReport:
        """
        Reactivate the rules of ``snapshot`` (default: the durable snapshot).

        Only entries still pending in durable state are considered, so a
        second call on an already-restored snapshot restores nothing and
        fails nothing.
        """
        pending = {s.full_name for s in self.pending()}
        entries = list(snapshot) if snapshot is not None else self.pending()
        report = RestoreReport()

        for entry in entries:
            if entry.full_name not in pending or not entry.originally_active:
                continue
            pending.discard(entry.full_name)
            try:
                rule = self._client.read_rule(entry.ref())
                if rule.active:
                    report.already_active.append(entry.full_name)
                    continue
                self._client.update_rule(rule.with_active(True))
                report.restored.append(entry.full_name)
            except Exception as exc:  # noqa: BLE001 - failures stay in the snapshot
                log.warning(
                    f"[RULES] Could not reactivate {entry.full_name}",
                    extra={"session_id": self.session_id, "rule": entry.full_name, "error": str(exc)},
                )
                report.failed.append(entry.full_name)

        cleared = report.restored + report.already_active
        if cleared:
            try:
                self._store.remove_rules(self.session_id, cleared)
            except OSError as exc:
                log.error(
                    "[RULES] Restored rules could not be cleared from session state",
                    extra={"session_id": self.session_id, "error": str(exc)},
                )

        if report.failed:
            self.state = SuspensionState.SUSPENDED_FAILED_RESTORE
            failure = RulesRestoreFailure(self.session_id, report.failed)
            log.warning(f"[RULES] {failure}", extra={"session_id": self.session_id})
        elif self.state is not SuspensionState.ACTIVE or cleared:
            self.state = SuspensionState.RESTORED

        log.info(
            f"[RULES RESTORED] {len(report.restored)} restored, {len(report.failed)} failed",
            extra={
                "session_id": self.session_id,
                "restored": len(report.restored),
                "failed": len(report.failed),
                "already_active": len(report.already_active),
            },
        )
        self.last_report = report
        return report

    @contextlib.contextmanager
    def suspended(self, entity_types: Sequence[str]) -> Generator[List[ValidationRuleSnapshot], None, None]:
        """
        Suspend rules for the duration of the block and always restore them.

        Example
        -------
            with manager.suspended(["Account", "Contact"]):
                load_everything()
        """
        snapshots = self.suspend(entity_types)
        try:
            yield snapshots
        finally:
            self.restore()


__all__ = ["ValidationRuleManager"]
