"""
Salesforce-backed remote store client.

Wraps ``simple_salesforce.Salesforce``:

* describe   -> ``sf.<Entity>.describe()`` mapped onto ``SchemaDescriptor``
* create     -> ``composite/sobjects`` collection inserts (``allOrNone=false``),
  chunked to the collection size limit, outcomes returned in record order
* validation rules -> Tooling API queries and ``ValidationRule`` PATCHes

Reads and rule toggles are retried on transient transport errors with
tenacity; record creation is never retried.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import quote_plus

import requests
from simple_salesforce import Salesforce
from simple_salesforce.exceptions import SalesforceError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from recordseed.config import Settings, get_settings
from recordseed.domain.errors import FatalSetupError, SchemaError
from recordseed.domain.models import (
    CreateOutcome,
    FieldDescriptor,
    PicklistEntry,
    RecordError,
    SchemaDescriptor,
    ValidationRule,
    ValidationRuleRef,
)
from recordseed.infrastructure.store import AbstractStoreClient
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

COLLECTION_LIMIT = 200
TRANSIENT_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)

_transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)


def _field_from_describe(payload: Mapping[str, Any]) -> FieldDescriptor:
    field_type = str(payload["type"]).lower()
    createable = bool(payload.get("createable", False))
    required = (
        createable
        and not payload.get("nillable", True)
        and not payload.get("defaultedOnCreate", False)
        and field_type != "boolean"
    )
    return FieldDescriptor(
        name=payload["name"],
        type=field_type,
        label=payload.get("label") or "",
        max_length=payload.get("length") or 0,
        required=required,
        writable=createable,
        unique=bool(payload.get("unique", False)),
        calculated=bool(payload.get("calculated", False) or payload.get("calculatedFormula")),
        auto_number=bool(payload.get("autoNumber", False)),
        precision=payload.get("precision") or payload.get("digits") or 0,
        scale=payload.get("scale") or 0,
        reference_targets=tuple(payload.get("referenceTo") or ()),
        picklist_values=tuple(
            PicklistEntry(
                value=entry["value"],
                label=entry.get("label") or "",
                active=entry.get("active", True),
                valid_for=entry.get("validFor"),
                default_value=entry.get("defaultValue", False),
            )
            for entry in payload.get("picklistValues") or ()
        ),
        controlling_field_name=payload.get("controllerName"),
        is_dependent_picklist=bool(payload.get("dependentPicklist", False)),
    )


def _default_record_type(infos: Iterable[Mapping[str, Any]]) -> Optional[str]:
    """Default record type id, unless the only default is the master record type."""
    for info in infos:
        if info.get("defaultRecordTypeMapping") and info.get("available", True):
            if info.get("master"):
                return None
            return info.get("recordTypeId")
    return None


def schema_from_describe(payload: Mapping[str, Any]) -> SchemaDescriptor:
    """
    Map a describe response onto a ``SchemaDescriptor``.

    Field entries missing a name or type are skipped with a warning.
    """
    entity_type = payload.get("name")
    if not entity_type:
        raise SchemaError("Describe response has no entity name")
    fields: List[FieldDescriptor] = []
    for entry in payload.get("fields") or ():
        if not entry.get("name") or not entry.get("type"):
            log.warning(
                f"[DESCRIBE] Skipping malformed field on {entity_type}",
                extra={"entity": entity_type, "field": entry.get("name")},
            )
            continue
        fields.append(_field_from_describe(entry))
    return SchemaDescriptor(
        entity_type=entity_type,
        label=payload.get("label") or entity_type,
        fields=tuple(fields),
        default_record_type_id=_default_record_type(payload.get("recordTypeInfos") or ()),
    )


def _outcome_from_response(item: Mapping[str, Any]) -> CreateOutcome:
    errors = [
        RecordError(
            status_code=error.get("statusCode") or "UNKNOWN",
            message=error.get("message") or "",
            fields=list(error.get("fields") or ()),
        )
        for error in item.get("errors") or ()
    ]
    return CreateOutcome(success=bool(item.get("success")), id=item.get("id"), errors=errors)


class SalesforceStoreClient(AbstractStoreClient):
    """
    Remote store client for a Salesforce org.

    Parameters
    ----------
    sf : simple_salesforce.Salesforce
        Authenticated connection.
    chunk_size : int
        Records per collection insert, at most 200.
    """

    def __init__(self, sf: Salesforce, chunk_size: int = COLLECTION_LIMIT) -> None:
        self._sf = sf
        self._chunk_size = max(1, min(chunk_size, COLLECTION_LIMIT))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SalesforceStoreClient":
        settings = settings or get_settings()
        return cls(connect(settings), chunk_size=settings.create_chunk_size)

    # -- describe ---------------------------------------------------------

    @_transient_retry
    def _describe_payload(self, entity_type: str) -> Dict[str, Any]:
        return getattr(self._sf, entity_type).describe()

    def describe(self, entity_type: str) -> SchemaDescriptor:
        return schema_from_describe(self._describe_payload(entity_type))

    # -- create -----------------------------------------------------------

    def _create_chunk(
        self, entity_type: str, chunk: Sequence[Mapping[str, Any]]
    ) -> List[CreateOutcome]:
        body = {
            "allOrNone": False,
            "records": [{"attributes": {"type": entity_type}, **record} for record in chunk],
        }
        response = self._sf.restful("composite/sobjects", method="POST", json=body)
        outcomes = [_outcome_from_response(item) for item in response or ()]
        missing = len(chunk) - len(outcomes)
        if missing > 0:
            outcomes.extend(
                CreateOutcome(
                    success=False,
                    errors=[RecordError(status_code="NO_RESULT", message="No result returned")],
                )
                for _ in range(missing)
            )
        return outcomes[: len(chunk)]

    def create(
        self, entity_type: str, records: Sequence[Mapping[str, Any]]
    ) -> List[CreateOutcome]:
        """
        Insert ``records`` and return one outcome per record.

        A chunk whose request fails marks its own records failed; when every
        chunk fails the last error is raised.
        """
        outcomes: List[CreateOutcome] = []
        last_error: Optional[Exception] = None
        chunks = [
            records[start : start + self._chunk_size]
            for start in range(0, len(records), self._chunk_size)
        ]
        for number, chunk in enumerate(chunks, start=1):
            try:
                outcomes.extend(self._create_chunk(entity_type, chunk))
            except (SalesforceError, requests.exceptions.RequestException) as exc:
                last_error = exc
                log.warning(
                    f"[CREATE] Chunk {number}/{len(chunks)} for {entity_type} failed",
                    extra={"entity": entity_type, "chunk": number, "error": str(exc)},
                )
                outcomes.extend(
                    CreateOutcome(
                        success=False,
                        errors=[RecordError(status_code="REMOTE_CREATE_FAILURE", message=str(exc))],
                    )
                    for _ in chunk
                )
        if last_error is not None and not any(outcome.success for outcome in outcomes):
            raise last_error
        return outcomes

    # -- validation rules -------------------------------------------------

    @_transient_retry
    def _tooling(self, action: str, method: str = "GET", data: Optional[dict] = None) -> Any:
        return self._sf.toolingexecute(action, method=method, data=data)

    def _tooling_query(self, soql: str) -> List[Dict[str, Any]]:
        result = self._tooling(f"query/?q={quote_plus(soql)}")
        records = list(result.get("records") or ())
        while not result.get("done", True) and result.get("nextRecordsUrl"):
            next_path = result["nextRecordsUrl"].split("/tooling/", 1)[-1]
            result = self._tooling(next_path)
            records.extend(result.get("records") or ())
        return records

    def list_validation_rules(self, entity_types: Sequence[str]) -> List[ValidationRuleRef]:
        if not entity_types:
            return []
        names = ", ".join(f"'{name}'" for name in entity_types)
        soql = (
            "SELECT Id, ValidationName, EntityDefinition.QualifiedApiName "
            "FROM ValidationRule "
            f"WHERE Active = true AND EntityDefinition.QualifiedApiName IN ({names})"
        )
        refs: List[ValidationRuleRef] = []
        for row in self._tooling_query(soql):
            entity = (row.get("EntityDefinition") or {}).get("QualifiedApiName")
            if entity:
                refs.append(
                    ValidationRuleRef(
                        full_name=f"{entity}.{row['ValidationName']}", rule_id=row["Id"]
                    )
                )
        return refs

    def _rule_id(self, ref: ValidationRuleRef) -> str:
        if ref.rule_id:
            return ref.rule_id
        soql = (
            "SELECT Id FROM ValidationRule "
            f"WHERE ValidationName = '{ref.rule_name}' "
            f"AND EntityDefinition.QualifiedApiName = '{ref.entity_type}'"
        )
        rows = self._tooling_query(soql)
        if not rows:
            raise LookupError(f"Validation rule {ref.full_name} not found")
        return rows[0]["Id"]

    def read_rule(self, ref: ValidationRuleRef) -> ValidationRule:
        rule_id = self._rule_id(ref)
        payload = self._tooling(f"sobjects/ValidationRule/{rule_id}")
        metadata = dict(payload.get("Metadata") or {})
        return ValidationRule(
            full_name=ref.full_name,
            active=bool(metadata.get("active", payload.get("Active", False))),
            rule_id=rule_id,
            error_message=metadata.get("errorMessage"),
            metadata=metadata,
        )

    def update_rule(self, rule: ValidationRule) -> None:
        if not rule.rule_id:
            raise LookupError(f"Validation rule {rule.full_name} has no id")
        metadata = dict(rule.metadata)
        metadata["active"] = rule.active
        self._tooling(
            f"sobjects/ValidationRule/{rule.rule_id}", method="PATCH", data={"Metadata": metadata}
        )


@_transient_retry
def _probe(sf: Salesforce) -> None:
    sf.limits()


def connect(settings: Optional[Settings] = None) -> Salesforce:
    """
    Open a session with an already-issued access token.

    Raises
    ------
    FatalSetupError
        If credentials are missing or the org cannot be reached.
    """
    settings = settings or get_settings()
    if not settings.has_credentials:
        raise FatalSetupError("SF_INSTANCE_URL and SF_ACCESS_TOKEN must be set")
    sf = Salesforce(
        instance_url=settings.sf_instance_url,
        session_id=settings.sf_access_token,
        version=settings.sf_api_version,
    )
    try:
        _probe(sf)
    except (SalesforceError, requests.exceptions.RequestException) as exc:
        raise FatalSetupError(f"Cannot reach {settings.sf_instance_url}: {exc}") from exc
    log.info("[CONNECT] Connected", extra={"instance_url": settings.sf_instance_url})
    return sf


__all__ = ["SalesforceStoreClient", "connect", "schema_from_describe"]
