from __future__ import annotations

from typing import Dict

import pytest

from recordseed.domain.models import FieldDescriptor, PicklistEntry, SchemaDescriptor
from recordseed.generation import addresses
from recordseed.generation.field_rules import FieldRule
from recordseed.generation.picklists import PicklistDependencyCache, decode_dependency
from recordseed.generation.records import RecordGenerator, find_record_issues
from recordseed.generation.references import ReferenceResolver
from recordseed.generation.synthesizer import (
    FieldValueSynthesizer,
    RecordContext,
    SessionScope,
    field_semantic,
    order_fields,
)

SESSION_ID = "load_20260101T000000_abc123"
DEFAULT_SEED = 7
RECORD_COUNT = 24
ACCOUNT_IDS = ("001A", "001B", "001C")

# validFor bitmaps against a two-value controller
FIRST_VALUE = "gA=="
SECOND_VALUE = "QA=="
BOTH_VALUES = "wA=="


@pytest.fixture
def resolver() -> ReferenceResolver:
    return ReferenceResolver(SESSION_ID)


@pytest.fixture
def scope(schemas: Dict[str, SchemaDescriptor], resolver: ReferenceResolver) -> SessionScope:
    return SessionScope(session_id=SESSION_ID, resolver=resolver, schemas=schemas, seed=DEFAULT_SEED)


@pytest.fixture
def synthesizer(picklist_cache: PicklistDependencyCache) -> FieldValueSynthesizer:
    return FieldValueSynthesizer(cache=picklist_cache)


def _synth(synthesizer, field, scope, entity="Account", index=0, context=None):
    return synthesizer.synthesize(field, index, entity, scope, context or RecordContext())


class TestExclusions:
    """Fields that must never be written."""

    @pytest.mark.parametrize(
        "field",
        [
            FieldDescriptor(name="Id", type="id", writable=False),
            FieldDescriptor(name="CreatedDate", type="datetime", writable=False),
            FieldDescriptor(name="Total__c", type="currency", calculated=True),
            FieldDescriptor(name="CaseNumber", type="string", auto_number=True),
            FieldDescriptor(name="OwnerId", type="reference", reference_targets=("User",)),
            FieldDescriptor(name="BillingAddress", type="address"),
            FieldDescriptor(name="PersonEmail", type="email"),
        ],
    )
    def test_excluded_field_yields_none(self, synthesizer, scope, field):
        assert _synth(synthesizer, field, scope) is None

    def test_unknown_type_yields_none(self, synthesizer, scope):
        assert _synth(synthesizer, FieldDescriptor(name="Blob__c", type="mystery"), scope) is None


class TestOverrides:
    """Static skip / fixed / enumerated rules."""

    def test_fixed_value(self, synthesizer, scope):
        field = FieldDescriptor(name="DoNotCall", type="boolean")
        assert all(
            _synth(synthesizer, field, scope, entity="Contact", index=i) is False for i in range(5)
        )

    def test_skip_rule(self, synthesizer, scope):
        field = FieldDescriptor(name="Name", type="string", max_length=120)
        assert _synth(synthesizer, field, scope, entity="Contact") is None

    def test_enumerated_values_intersect_active_picklist(self, synthesizer, scope, opportunity_schema):
        field = opportunity_schema.field("StageName")
        values = {
            _synth(synthesizer, field, scope, entity="Opportunity", index=i) for i in range(10)
        }
        assert values == {"Prospecting", "Qualification"}

    def test_entity_specific_rule_wins_over_global(self, picklist_cache, scope):
        rules = (
            FieldRule("Priority__c", values=("Low",)),
            FieldRule("Priority__c", ("Account",), values=("High",)),
        )
        synthesizer = FieldValueSynthesizer(cache=picklist_cache, rules=rules)
        field = FieldDescriptor(name="Priority__c", type="string", max_length=10)
        assert _synth(synthesizer, field, scope, entity="Account") == "High"
        assert _synth(synthesizer, field, scope, entity="Contact") == "Low"

    def test_enumerated_values_longer_than_field_are_dropped(self, synthesizer, scope):
        field = FieldDescriptor(name="Rating", type="string", max_length=3)
        values = [_synth(synthesizer, field, scope, index=i) for i in range(3)]
        assert values == ["Hot", "Hot", "Hot"]

    def test_fixed_value_longer_than_field_is_left_unset(self, picklist_cache, scope):
        rules = (FieldRule("Region__c", fixed="Asia Pacific"),)
        synthesizer = FieldValueSynthesizer(cache=picklist_cache, rules=rules)
        short = FieldDescriptor(name="Region__c", type="string", max_length=4)
        wide = FieldDescriptor(name="Region__c", type="string", max_length=40)
        assert _synth(synthesizer, short, scope) is None
        assert _synth(synthesizer, wide, scope) == "Asia Pacific"


class TestScalars:
    """Type-driven scalar generation."""

    @pytest.mark.parametrize("max_length", [1, 5, 12, 40])
    def test_strings_respect_max_length(self, synthesizer, scope, max_length):
        fields = [
            FieldDescriptor(name="Name", type="string", max_length=max_length),
            FieldDescriptor(name="Description", type="textarea", max_length=max_length),
            FieldDescriptor(name="City__c", type="string", max_length=max_length),
            FieldDescriptor(name="Code__c", type="string", max_length=max_length, unique=True),
            FieldDescriptor(name="Website", type="url", max_length=max_length),
            FieldDescriptor(name="Phone", type="phone", max_length=max_length),
            FieldDescriptor(name="Rating", type="string", max_length=max_length),
        ]
        for index in range(RECORD_COUNT):
            for field in fields:
                value = _synth(synthesizer, field, scope, index=index)
                assert value is None or len(value) <= max_length, (field.name, value)

    def test_undeclared_length_is_bounded(self, synthesizer, scope):
        field = FieldDescriptor(name="Notes__c", type="textarea")
        assert len(_synth(synthesizer, field, scope)) <= 255

    def test_unique_emails_per_record(self, synthesizer, scope, contact_schema):
        field = contact_schema.field("Email")
        emails = [
            _synth(synthesizer, field, scope, entity="Contact", index=i) for i in range(RECORD_COUNT)
        ]
        assert len(set(emails)) == RECORD_COUNT
        assert all(e.endswith("@example.com") and len(e) <= 80 for e in emails)

    def test_unique_email_text_field_keeps_a_valid_address(self, synthesizer, scope):
        field = FieldDescriptor(name="Email__c", type="string", max_length=80, unique=True)
        emails = [_synth(synthesizer, field, scope, index=i) for i in range(RECORD_COUNT)]
        assert len(set(emails)) == RECORD_COUNT
        for email in emails:
            local, _, domain = email.partition("@")
            assert local and domain == "example.com"

    def test_record_names_are_unique(self, synthesizer, scope, account_schema):
        field = account_schema.field("Name")
        names = [_synth(synthesizer, field, scope, index=i) for i in range(RECORD_COUNT)]
        assert len(set(names)) == RECORD_COUNT

    def test_same_inputs_give_same_value(self, picklist_cache, scope):
        field = FieldDescriptor(name="FirstName", type="string", max_length=40)
        first = FieldValueSynthesizer(cache=picklist_cache)
        second = FieldValueSynthesizer(cache=picklist_cache)
        assert _synth(first, field, scope, index=3) == _synth(second, field, scope, index=3)

    def test_numbers_respect_precision(self, synthesizer, scope):
        integer = FieldDescriptor(name="NumberOfEmployees", type="int", precision=2)
        currency = FieldDescriptor(name="Amount", type="currency", precision=5, scale=2)
        for index in range(RECORD_COUNT):
            assert 1 <= _synth(synthesizer, integer, scope, index=index) <= 99
            assert 0 <= _synth(synthesizer, currency, scope, index=index) <= 999

    def test_dates_are_iso_formatted(self, synthesizer, scope):
        date = _synth(synthesizer, FieldDescriptor(name="CloseDate", type="date"), scope)
        moment = _synth(synthesizer, FieldDescriptor(name="StartedAt__c", type="datetime"), scope)
        assert len(date) == 10 and date[4] == "-"
        assert moment.endswith(".000Z") and "T" in moment

    def test_multipicklist_uses_active_values(self, synthesizer, scope):
        field = FieldDescriptor(
            name="Interests__c",
            type="multipicklist",
            picklist_values=(
                PicklistEntry(value="A"),
                PicklistEntry(value="B"),
                PicklistEntry(value="Z", active=False),
            ),
        )
        for index in range(6):
            value = _synth(synthesizer, field, scope, index=index)
            assert set(value.split(";")) <= {"A", "B"}


class TestReferences:
    """Reference fields read the identifier pools."""

    def test_round_robin_over_pool(self, synthesizer, scope, resolver, contact_schema):
        resolver.append("Account", ACCOUNT_IDS)
        field = contact_schema.field("AccountId")
        picked = [
            _synth(synthesizer, field, scope, entity="Contact", index=i) for i in range(5)
        ]
        assert picked == ["001A", "001B", "001C", "001A", "001B"]

    def test_empty_pool_leaves_field_unset(self, synthesizer, scope, contact_schema):
        assert _synth(synthesizer, contact_schema.field("AccountId"), scope, entity="Contact") is None

    def test_self_reference_is_never_resolved(self, synthesizer, scope, resolver, contact_schema):
        resolver.append("Contact", ["003A"])
        field = contact_schema.field("ReportsToId")
        assert _synth(synthesizer, field, scope, entity="Contact") is None

    def test_polymorphic_uses_first_target_with_identifiers(self, synthesizer, scope, resolver):
        resolver.append("Opportunity", ["006A"])
        field = FieldDescriptor(
            name="WhatId", type="reference", reference_targets=("Account", "Opportunity")
        )
        assert _synth(synthesizer, field, scope, entity="Task") == "006A"


class TestDependentPicklists:
    """Dependent values stay valid for the controller chosen in the same record."""

    def test_controllers_ordered_before_dependents(self, account_schema):
        names = [f.name for f in order_fields(account_schema.fields)]
        assert names.index("BillingCountryCode") < names.index("BillingStateCode")

    def test_generated_records_are_consistent(self, synthesizer, scope, account_schema):
        valid = {"AU": {"NSW", "WA"}, "US": {"CA", "WA"}}
        records = RecordGenerator(synthesizer, scope).generate(account_schema, RECORD_COUNT)
        assert len(records) == RECORD_COUNT
        seen_countries = set()
        for record in records:
            country = record["BillingCountryCode"]
            seen_countries.add(country)
            if "BillingStateCode" in record:
                assert record["BillingStateCode"] in valid[country]
        assert seen_countries == {"AU", "US"}

    def test_dependent_before_controller_narrows_controller(self, synthesizer, scope, account_schema):
        context = RecordContext()
        context.set(addresses.dependent_key("BillingStateCode"), "CA")
        value = _synth(
            synthesizer, account_schema.field("BillingCountryCode"), scope, context=context
        )
        assert value == "US"

    def test_missing_controller_metadata_leaves_field_unset(self, synthesizer, resolver):
        orphan = FieldDescriptor(
            name="SubRegion__c",
            type="picklist",
            controlling_field_name="Region__c",
            is_dependent_picklist=True,
            picklist_values=(PicklistEntry(value="France", valid_for="gA=="),),
        )
        lonely_scope = SessionScope(
            session_id=SESSION_ID,
            resolver=resolver,
            schemas={"Thing__c": SchemaDescriptor(entity_type="Thing__c", fields=(orphan,))},
        )
        assert _synth(synthesizer, orphan, lonely_scope, entity="Thing__c") is None

    def test_chained_dependents_follow_their_own_controller(self, synthesizer, resolver):
        tier = FieldDescriptor(
            name="Tier__c",
            type="picklist",
            picklist_values=(PicklistEntry(value="Gold"), PicklistEntry(value="Silver")),
        )
        level = FieldDescriptor(
            name="Level__c",
            type="picklist",
            controlling_field_name="Tier__c",
            is_dependent_picklist=True,
            picklist_values=(
                PicklistEntry(value="L1", valid_for=FIRST_VALUE),
                PicklistEntry(value="L2", valid_for=SECOND_VALUE),
            ),
        )
        grade = FieldDescriptor(
            name="Grade__c",
            type="picklist",
            controlling_field_name="Level__c",
            is_dependent_picklist=True,
            picklist_values=(
                PicklistEntry(value="G0", valid_for=BOTH_VALUES),
                PicklistEntry(value="G1", valid_for=FIRST_VALUE),
                PicklistEntry(value="G2", valid_for=SECOND_VALUE),
            ),
        )
        schema = SchemaDescriptor(entity_type="Member__c", fields=(grade, level, tier))
        chain_scope = SessionScope(
            session_id=SESSION_ID, resolver=resolver, schemas={"Member__c": schema}
        )
        levels = decode_dependency(tier, level)
        grades = decode_dependency(level, grade)

        records = RecordGenerator(synthesizer, chain_scope).generate(schema, 6)

        assert {r["Tier__c"] for r in records} == {"Gold", "Silver"}
        for record in records:
            assert record["Level__c"] in levels.valid_for(record["Tier__c"]), record
            assert record["Grade__c"] in grades.valid_for(record["Level__c"]), record

    def test_country_text_matches_country_code(self, synthesizer, resolver, schemas, account_schema):
        country_text = FieldDescriptor(name="BillingCountry", type="string", max_length=80)
        extended = account_schema.model_copy(
            update={"fields": (country_text,) + account_schema.fields}
        )
        names = [f.name for f in order_fields(extended.fields)]
        assert names.index("BillingCountryCode") < names.index("BillingCountry")

        address_scope = SessionScope(
            session_id=SESSION_ID, resolver=resolver, schemas={**schemas, "Account": extended}
        )
        records = RecordGenerator(synthesizer, address_scope).generate(extended, RECORD_COUNT)
        for record in records:
            assert addresses.resolve_country(record["BillingCountry"]) == record["BillingCountryCode"]

    def test_free_text_country_and_state_agree(self, synthesizer, scope, contact_schema):
        records = RecordGenerator(synthesizer, scope).generate(contact_schema, 8)
        for record in records:
            code = addresses.resolve_country(record["MailingCountry"])
            states = {name for _, name in addresses.COUNTRIES[code][1]}
            assert record["MailingState"] in states


class TestRecordGenerator:
    """Batch generation and pre-submission checks."""

    def test_zero_count_yields_no_records(self, synthesizer, scope, account_schema):
        assert RecordGenerator(synthesizer, scope).generate(account_schema, 0) == []

    def test_required_reference_without_pool_is_reported(
        self, synthesizer, scope, opportunity_schema
    ):
        generator = RecordGenerator(synthesizer, scope)
        problems = generator.unavailable_references(opportunity_schema)
        assert [p.field_name for p in problems] == ["AccountId"]
        records = generator.generate(opportunity_schema, 2)
        assert all("AccountId" not in r for r in records)
        assert "AccountId: required field missing" in find_record_issues(
            opportunity_schema, records[0]
        )

    def test_default_record_type_is_applied(self, synthesizer, scope):
        schema = SchemaDescriptor(
            entity_type="Case",
            fields=(FieldDescriptor(name="Subject", type="string", max_length=80),),
            default_record_type_id="012000000000ABC",
        )
        record = RecordGenerator(synthesizer, scope).generate(schema, 1)[0]
        assert record["RecordTypeId"] == "012000000000ABC"


@pytest.mark.parametrize(
    ("name", "semantic"),
    [
        ("FirstName", "first_name"),
        ("Email", "email"),
        ("BillingCountry", "country"),
        ("ShippingState", "state"),
        ("AnnualRevenue", "revenue"),
    ],
)
def test_field_semantic(name, semantic):
    assert field_semantic(name) == semantic
