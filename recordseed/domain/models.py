"""
Domain models for recordseed.

Describes the metadata fetched from the remote store (entity schemas, fields,
picklist values, validation rules), the operator's per-entity generation
configuration, and the results a load run produces. Models serialize with
camelCase aliases so the durable JSON logs keep the field names downstream
tooling reads.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _DomainModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=False,
    )

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict using camelCase keys, without unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProgressStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    LOADING = "loading"
    COMPLETED = "completed"
    ERROR = "error"


class SuspensionState(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    RESTORED = "restored"
    SUSPENDED_FAILED_RESTORE = "suspended_failed_restore"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


# --------------------------------------------------------------------------- #
# Schema metadata
# --------------------------------------------------------------------------- #


class PicklistEntry(_DomainModel):
    """One value of a picklist, with its dependent-picklist bitmap if any."""

    value: str = Field(..., description="API value submitted on create.")
    label: str = Field("", description="Display label.")
    active: bool = Field(True, description="Inactive values are never generated.")
    valid_for: Optional[str] = Field(
        None, description="Base64 bitmap of controller value positions this value is valid for."
    )
    default_value: bool = Field(False, description="Whether the store preselects this value.")


class FieldDescriptor(_DomainModel):
    """
    Metadata for a single field of an entity type.

    ``max_length`` of 0 means the store declares no length; generated strings
    then fall back to a 255 character bound.
    """

    name: str
    type: str = Field(..., description="Lower-case store type, e.g. 'string', 'reference'.")
    label: str = ""
    max_length: int = Field(0, ge=0)
    required: bool = False
    writable: bool = True
    unique: bool = False
    calculated: bool = False
    auto_number: bool = False
    precision: int = 0
    scale: int = 0
    reference_targets: Tuple[str, ...] = ()
    picklist_values: Tuple[PicklistEntry, ...] = ()
    controlling_field_name: Optional[str] = None
    is_dependent_picklist: bool = False

    @property
    def active_picklist_values(self) -> List[str]:
        return [entry.value for entry in self.picklist_values if entry.active]

    @property
    def is_reference(self) -> bool:
        return self.type == "reference" and bool(self.reference_targets)


class SchemaDescriptor(_DomainModel):
    """Ordered field metadata for one entity type, immutable for a session."""

    entity_type: str
    label: str = ""
    fields: Tuple[FieldDescriptor, ...] = ()
    default_record_type_id: Optional[str] = Field(
        None, description="Default non-master record type assigned to generated records."
    )

    def field(self, name: str) -> Optional[FieldDescriptor]:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        return None

    def reference_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.is_reference]


class GenerationConfig(BaseModel):
    """Operator-chosen settings for one entity type; read-only once a run starts."""

    entity_type: str
    enabled: bool = True
    target_record_count: int = Field(10, ge=0)
    load_priority: int = Field(0, description="Lower values are offered to the sequencer first.")

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# --------------------------------------------------------------------------- #
# Validation rules
# --------------------------------------------------------------------------- #


class ValidationRuleRef(_DomainModel):
    """Pointer to a validation rule, named ``<EntityType>.<RuleName>``."""

    full_name: str
    rule_id: Optional[str] = Field(None, alias="id")

    @property
    def entity_type(self) -> str:
        return self.full_name.split(".", 1)[0]

    @property
    def rule_name(self) -> str:
        return self.full_name.split(".", 1)[-1]


class ValidationRule(_DomainModel):
    """Current remote state of a validation rule as returned by a metadata read."""

    full_name: str
    active: bool
    rule_id: Optional[str] = Field(None, alias="id")
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Raw metadata payload, echoed back on update."
    )

    def with_active(self, active: bool) -> "ValidationRule":
        metadata = dict(self.metadata)
        if "active" in metadata:
            metadata["active"] = active
        return self.model_copy(update={"active": active, "metadata": metadata})


class ValidationRuleSnapshot(_DomainModel):
    """Pre-change state of a rule deactivated for a load run."""

    full_name: str = Field(..., alias="fullyQualifiedName")
    originally_active: bool = True
    rule_id: Optional[str] = Field(None, alias="id")
    entity_type: str = ""
    rule_name: str = ""
    error_message: Optional[str] = None
    suspended_at: datetime = Field(default_factory=utcnow)

    def ref(self) -> ValidationRuleRef:
        return ValidationRuleRef(full_name=self.full_name, rule_id=self.rule_id)


class RestoreReport(BaseModel):
    """Outcome of one restoration pass."""

    restored: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    already_active: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    @property
    def ok(self) -> bool:
        return not self.failed


# --------------------------------------------------------------------------- #
# Load outcomes
# --------------------------------------------------------------------------- #


class RecordError(_DomainModel):
    status_code: str
    message: str
    fields: List[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.status_code}: {self.message}"


class CreateOutcome(_DomainModel):
    """Per-record result of a create call, in submission order."""

    success: bool
    id: Optional[str] = None
    errors: List[RecordError] = Field(default_factory=list)


class RecordOutcome(_DomainModel):
    index: int
    id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    errors: Optional[List[RecordError]] = None

    @property
    def success(self) -> bool:
        return self.id is not None and not self.errors


class LoadResult(_DomainModel):
    """Outcome of loading one entity type. Never mutated after it is recorded."""

    entity_type: str
    attempted: int = 0
    created: int = 0
    failed: int = 0
    success_rate_pct: float = 0.0
    elapsed_ms: int = 0
    per_record_outcomes: List[RecordOutcome] = Field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def created_ids(self) -> List[str]:
        return [o.id for o in self.per_record_outcomes if o.success and o.id is not None]


class ProgressEvent(_DomainModel):
    entity_type: str
    status: ProgressStatus
    generated_count: int = 0
    loaded_count: int = 0
    total_count: int = 0
    error_message: Optional[str] = None


class RunSummary(_DomainModel):
    session_id: str
    status: RunStatus
    sequence: List[str] = Field(default_factory=list)
    results: List[LoadResult] = Field(default_factory=list)
    restore_report: Optional[RestoreReport] = None
    fatal_error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


__all__ = [
    "ProgressStatus",
    "SuspensionState",
    "RunStatus",
    "PicklistEntry",
    "FieldDescriptor",
    "SchemaDescriptor",
    "GenerationConfig",
    "ValidationRuleRef",
    "ValidationRule",
    "ValidationRuleSnapshot",
    "RestoreReport",
    "RecordError",
    "CreateOutcome",
    "RecordOutcome",
    "LoadResult",
    "ProgressEvent",
    "RunSummary",
    "utcnow",
]
