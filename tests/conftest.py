"""
Pytest configuration for recordseed.

Provides fixtures for:
- Schema descriptors of a small Account / Contact / Opportunity org
- An in-memory store with failure injection
- Run options pointing logs and session state at a temporary directory
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

import pytest

from recordseed.config import Settings
from recordseed.domain.models import (
    CreateOutcome,
    FieldDescriptor,
    PicklistEntry,
    SchemaDescriptor,
    ValidationRule,
)
from recordseed.generation.picklists import PicklistDependencyCache
from recordseed.infrastructure.store import InMemoryStoreClient
from recordseed.orchestrator import RunOptions

# validFor bitmaps against the controller values ("AU", "US")
VALID_FOR_AU = "gA=="  # 0b10000000
VALID_FOR_US = "QA=="  # 0b01000000
VALID_FOR_BOTH = "wA=="  # 0b11000000


class FakeStore(InMemoryStoreClient):
    """
    In-memory store whose create and rule updates can be made to fail.

    ``fail_create_for`` entity types raise on create; rules named in
    ``fail_deactivate_for`` / ``fail_reactivate_for`` raise when switched
    off / on respectively.
    """

    def __init__(
        self,
        schemas: Iterable[SchemaDescriptor] = (),
        rules: Iterable[ValidationRule] = (),
        fail_create_for: Sequence[str] = (),
        fail_deactivate_for: Sequence[str] = (),
        fail_reactivate_for: Sequence[str] = (),
    ) -> None:
        super().__init__(schemas=schemas, rules=rules)
        self.fail_create_for = set(fail_create_for)
        self.fail_deactivate_for = set(fail_deactivate_for)
        self.fail_reactivate_for = set(fail_reactivate_for)

    def create(self, entity_type: str, records: Sequence[Mapping[str, Any]]) -> List[CreateOutcome]:
        if entity_type in self.fail_create_for:
            raise RuntimeError("simulated outage")
        return super().create(entity_type, records)

    def update_rule(self, rule: ValidationRule) -> None:
        if not rule.active and rule.full_name in self.fail_deactivate_for:
            raise RuntimeError(f"cannot deactivate {rule.full_name}")
        if rule.active and rule.full_name in self.fail_reactivate_for:
            raise RuntimeError(f"cannot reactivate {rule.full_name}")
        super().update_rule(rule)


def _field(name: str, type_: str, **kwargs: Any) -> FieldDescriptor:
    return FieldDescriptor(name=name, type=type_, **kwargs)


@pytest.fixture
def account_schema() -> SchemaDescriptor:
    return SchemaDescriptor(
        entity_type="Account",
        label="Account",
        fields=(
            _field("Id", "id", writable=False),
            _field("Name", "string", max_length=255, required=True),
            _field("Description", "textarea", max_length=32000),
            _field("AccountNumber", "string", max_length=40),
            _field("Phone", "phone", max_length=40),
            _field(
                "BillingStateCode",
                "picklist",
                controlling_field_name="BillingCountryCode",
                is_dependent_picklist=True,
                picklist_values=(
                    PicklistEntry(value="NSW", valid_for=VALID_FOR_AU),
                    PicklistEntry(value="CA", valid_for=VALID_FOR_US),
                    PicklistEntry(value="WA", valid_for=VALID_FOR_BOTH),
                ),
            ),
            _field(
                "BillingCountryCode",
                "picklist",
                picklist_values=(PicklistEntry(value="AU"), PicklistEntry(value="US")),
            ),
            _field("ParentId", "reference", reference_targets=("Account",)),
            _field("CreatedDate", "datetime", writable=False),
        ),
    )


@pytest.fixture
def contact_schema() -> SchemaDescriptor:
    return SchemaDescriptor(
        entity_type="Contact",
        label="Contact",
        fields=(
            _field("Id", "id", writable=False),
            _field("FirstName", "string", max_length=40),
            _field("LastName", "string", max_length=80, required=True),
            _field("Email", "email", max_length=80, unique=True),
            _field("AccountId", "reference", reference_targets=("Account",)),
            _field("ReportsToId", "reference", reference_targets=("Contact",)),
            _field("MailingCountry", "string", max_length=80),
            _field("MailingState", "string", max_length=80),
            _field("DoNotCall", "boolean"),
        ),
    )


@pytest.fixture
def opportunity_schema() -> SchemaDescriptor:
    return SchemaDescriptor(
        entity_type="Opportunity",
        label="Opportunity",
        fields=(
            _field("Name", "string", max_length=120, required=True),
            _field(
                "StageName",
                "picklist",
                required=True,
                picklist_values=(
                    PicklistEntry(value="Prospecting"),
                    PicklistEntry(value="Qualification"),
                    PicklistEntry(value="Closed Won"),
                ),
            ),
            _field("CloseDate", "date", required=True),
            _field("AccountId", "reference", required=True, reference_targets=("Account",)),
            _field("Amount", "currency", precision=18, scale=2),
        ),
    )


@pytest.fixture
def schemas(
    account_schema: SchemaDescriptor,
    contact_schema: SchemaDescriptor,
    opportunity_schema: SchemaDescriptor,
) -> Dict[str, SchemaDescriptor]:
    return {
        s.entity_type: s for s in (account_schema, contact_schema, opportunity_schema)
    }


@pytest.fixture
def validation_rules() -> List[ValidationRule]:
    return [
        ValidationRule(full_name="Account.Require_Phone", active=True, rule_id="03d000000000001"),
        ValidationRule(full_name="Account.Require_Industry", active=True, rule_id="03d000000000002"),
        ValidationRule(full_name="Contact.Email_Format", active=True, rule_id="03d000000000003"),
        ValidationRule(full_name="Contact.Mailing_Required", active=True, rule_id="03d000000000004"),
    ]


@pytest.fixture
def make_store(
    schemas: Dict[str, SchemaDescriptor], validation_rules: List[ValidationRule]
) -> Callable[..., FakeStore]:
    """Factory for a FakeStore preloaded with the test org; kwargs select failures."""

    def _make(**kwargs: Any) -> FakeStore:
        return FakeStore(schemas=schemas.values(), rules=validation_rules, **kwargs)

    return _make


@pytest.fixture
def run_options(tmp_path: Path) -> RunOptions:
    return RunOptions(
        logs_dir=tmp_path / "logs",
        state_dir=tmp_path / "state",
        entity_pause_seconds=0,
        seed=7,
        suspend_validation_rules=True,
    )


@pytest.fixture
def picklist_cache() -> PicklistDependencyCache:
    return PicklistDependencyCache(max_size=8)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings fixture with test-specific overrides.
    """
    return Settings(
        logs_dir=tmp_path / "logs",
        state_dir=tmp_path / "state",
        entity_pause_seconds=0,
        log_level="DEBUG",
        _env_file=None,
    )
