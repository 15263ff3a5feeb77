from __future__ import annotations

import pytest
from rich.console import Console

from recordseed.domain.errors import FatalSetupError
from recordseed.domain.models import (
    LoadResult,
    RestoreReport,
    RunStatus,
    RunSummary,
    ValidationRuleRef,
)
from recordseed.generation import addresses
from recordseed.generation.field_rules import exclusion_reason
from recordseed.infrastructure.store import (
    DryRunStoreClient,
    InMemoryStoreClient,
    discover_schemas,
    fake_record_id,
)
from recordseed.planning.sequencer import plan_sequence
from recordseed.reporter import print_restore_report, render_plan, render_results


class TestInMemoryStore:
    """Behaviour the orchestrator relies on."""

    def test_ids_are_unique_and_store_shaped(self, make_store):
        store = make_store()
        outcomes = store.create("Account", [{"Name": "A"}, {"Name": "B"}])
        ids = [o.id for o in outcomes]
        assert len(set(ids)) == 2
        assert all(len(i) == 18 for i in ids)
        assert store.records["Account"][0] == {"Id": ids[0], "Name": "A"}
        assert len(fake_record_id("Contact", 1)) == 18

    def test_only_active_rules_are_listed(self, make_store):
        store = make_store()
        rule = store.rules["Account.Require_Phone"]
        store.update_rule(rule.with_active(False))
        names = [r.full_name for r in store.list_validation_rules(["Account"])]
        assert names == ["Account.Require_Industry"]

    def test_unknown_rule_read_raises(self, make_store):
        with pytest.raises(LookupError):
            make_store().read_rule(ValidationRuleRef(full_name="Account.Missing"))

    def test_dry_run_delegates_describe_only(self, make_store):
        remote = make_store()
        dry = DryRunStoreClient(remote)
        assert dry.describe("Account").entity_type == "Account"
        assert dry.list_validation_rules(["Account"]) == []
        dry.create("Account", [{"Name": "A"}])
        assert remote.records == {}

    def test_discover_schemas_fails_fast(self, make_store):
        with pytest.raises(FatalSetupError) as excinfo:
            discover_schemas(make_store(), ["Account", "Nope__c"])
        assert "Nope__c" in str(excinfo.value)

    def test_discover_schemas_describes_each_type_once(self, make_store):
        schemas = discover_schemas(make_store(), ["Account", "Contact", "Account"])
        assert list(schemas) == ["Account", "Contact"]


class TestFieldTables:
    """Exclusion reasons and address helpers."""

    def test_exclusion_reasons(self, account_schema, contact_schema):
        assert exclusion_reason("Account", account_schema.field("Id")) == "not writable"
        assert exclusion_reason("Account", account_schema.field("Name")) is None
        assert exclusion_reason("Contact", contact_schema.field("Email")) is None

    def test_address_selection_keys_are_shared_per_prefix(self):
        assert addresses.selection_key("BillingCountryCode") == "billing-address-country-selection"
        assert addresses.selection_key("BillingStateCode") == "billing-address-country-selection"
        assert addresses.selection_key("ShippingCountry") == "shipping-address-country-selection"
        assert addresses.selection_key("Industry") == "industry-selection"

    def test_resolve_country(self):
        assert addresses.resolve_country("Australia") == "AU"
        assert addresses.resolve_country("usa") == "US"
        assert addresses.resolve_country("Atlantis") is None
        assert addresses.resolve_country(None) is None

    def test_labels_fall_back_to_codes(self):
        assert addresses.country_label("GB", 2) == "GB"
        assert addresses.state_label("AU", 0, 80) == "New South Wales"


class TestReporter:
    """Rich rendering of plans and results."""

    def test_results_table_has_one_row_per_entity(self):
        results = [
            LoadResult(entity_type="Account", attempted=2, created=2, success_rate_pct=100.0),
            LoadResult(
                entity_type="Contact", attempted=2, created=1, failed=1, success_rate_pct=50.0
            ),
        ]
        assert render_results(results).row_count == 2

    def test_plan_table_marks_cycles(self, schemas):
        plan = plan_sequence(["Account", "Contact", "Opportunity"], schemas)
        table = render_plan(plan)
        assert table.row_count == len(plan.batches)

    def test_restore_report_output(self):
        console = Console(record=True, width=120)
        print_restore_report(RestoreReport(restored=["Account.A"], failed=["Account.B"]), console)
        text = console.export_text()
        assert "1 restored" in text
        assert "still inactive: Account.B" in text

    def test_summary_without_results(self, capsys):
        from recordseed.reporter import print_results

        print_results(RunSummary(session_id="load_x", status=RunStatus.CANCELLED))
        assert "No results to display" in capsys.readouterr().out
