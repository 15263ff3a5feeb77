"""
Exceptions raised by recordseed.

This module defines the exception hierarchy:
- RecordSeedError (base, carries a ``details`` dict)
- SchemaError
- ReferenceUnavailable
- RemoteCreateFailure
- RulesSuspendFailure
- RulesRestoreFailure
- DurableLogError (terminates a run)
- FatalSetupError (terminates a run)

Only the last two stop a load run early. The others are degradations that
callers catch, log, and record against the affected field, entity type, or
validation rule.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "RecordSeedError",
    "SchemaError",
    "ReferenceUnavailable",
    "RemoteCreateFailure",
    "RulesSuspendFailure",
    "RulesRestoreFailure",
    "DurableLogError",
    "FatalSetupError",
]


class RecordSeedError(Exception):
    """Base class for every error raised by recordseed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        rendered = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({rendered})"


class SchemaError(RecordSeedError):
    """Field or picklist metadata is missing or malformed.

    The offending field is left out of the record; the entity type is still
    generated.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_type: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if entity_type:
            details["entity_type"] = entity_type
        if field_name:
            details["field"] = field_name
        super().__init__(message, details=details)
        self.entity_type = entity_type
        self.field_name = field_name


class ReferenceUnavailable(RecordSeedError):
    """A required reference field has no created identifier to point at yet."""

    def __init__(self, entity_type: str, field_name: str, targets: tuple[str, ...]) -> None:
        super().__init__(
            f"No identifiers available for required reference {entity_type}.{field_name}",
            details={"targets": ",".join(targets)},
        )
        self.entity_type = entity_type
        self.field_name = field_name
        self.targets = targets


class RemoteCreateFailure(RecordSeedError):
    """The batched create call for an entity type raised instead of returning outcomes."""

    def __init__(self, entity_type: str, cause: BaseException) -> None:
        super().__init__(
            f"Create call failed for {entity_type}: {cause}",
            details={"entity_type": entity_type},
        )
        self.entity_type = entity_type
        self.cause = cause


class RulesSuspendFailure(RecordSeedError):
    """Validation rules could not be listed or one of them could not be deactivated."""

    def __init__(self, message: str, *, rule_name: Optional[str] = None) -> None:
        super().__init__(message, details={"rule": rule_name} if rule_name else None)
        self.rule_name = rule_name


class RulesRestoreFailure(RecordSeedError):
    """One or more suspended validation rules could not be reactivated."""

    def __init__(self, session_id: str, failed: list[str]) -> None:
        super().__init__(
            f"{len(failed)} validation rule(s) left inactive for session {session_id}",
            details={"rules": ",".join(failed)},
        )
        self.session_id = session_id
        self.failed = failed


class DurableLogError(RecordSeedError):
    """A per-entity or session log could not be written to disk."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Failed to write load log {path}: {cause}", details={"path": path})
        self.path = path
        self.cause = cause


class FatalSetupError(RecordSeedError):
    """The run cannot start, e.g. the remote store is unreachable."""
