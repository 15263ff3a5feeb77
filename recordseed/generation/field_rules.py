"""
Static field tables for record synthesis.

Two concerns live here:

* Exclusion: which fields are never written (system audit fields,
  store-computed fields, non-generatable types, person-account fields on
  Account, history/share/feed shadow fields).
* Overrides: per entity type, fields that are skipped, pinned to a fixed
  value, or restricted to a short list of values known to pass the store's
  standard validation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from recordseed.domain.models import FieldDescriptor

SYSTEM_FIELDS = frozenset(
    {
        "Id",
        "CreatedDate",
        "CreatedById",
        "LastModifiedDate",
        "LastModifiedById",
        "SystemModstamp",
        "IsDeleted",
        "LastActivityDate",
        "LastViewedDate",
        "LastReferencedDate",
        "MasterRecordId",
        "OwnerId",
        "RecordTypeId",
    }
)

# Written by the store itself even when describe reports them createable.
COMPUTED_FIELDS = frozenset(
    {
        "HasOpportunityLineItem",
        "HasOverdueTask",
        "HasOpenActivity",
        "IsConverted",
        "ConvertedAccountId",
        "ConvertedContactId",
        "ConvertedOpportunityId",
        "ConvertedDate",
        "ForecastCategory",
        "Jigsaw",
        "JigsawCompanyId",
        "JigsawContactId",
        "CleanStatus",
        "EmailBouncedDate",
        "IsArchived",
        "IsStandard",
        "IsPersonAccount",
        "PhotoUrl",
        "PushCount",
        "LastStageChangeDate",
        "ExpectedRevenue",
        "Fiscal",
        "FiscalQuarter",
        "FiscalYear",
        "BillingLatitude",
        "BillingLongitude",
        "ShippingLatitude",
        "ShippingLongitude",
        "MailingLatitude",
        "MailingLongitude",
        "OtherLatitude",
        "OtherLongitude",
    }
)

SHADOW_FIELD_PATTERNS: Tuple[str, ...] = ("__pc", "__History", "__Share", "__Tag", "__Feed")

NON_GENERATABLE_TYPES = frozenset(
    {"id", "address", "location", "base64", "calculated", "summary", "anytype", "complexvalue"}
)

_UNSET = object()


@dataclass(frozen=True)
class FieldRule:
    """
    Override for one field name.

    ``entities`` empty means the rule applies to every entity type. Exactly one
    of ``skip``, ``fixed`` or ``values`` is meaningful per rule.
    """

    field: str
    entities: Tuple[str, ...] = ()
    skip: bool = False
    fixed: Any = _UNSET
    values: Tuple[str, ...] = ()

    @property
    def has_fixed(self) -> bool:
        return self.fixed is not _UNSET

    def applies_to(self, entity_type: str) -> bool:
        return not self.entities or entity_type in self.entities


_LEAD_SOURCES = ("Web", "Phone Inquiry", "Partner Referral", "Purchased List", "Other")
_SALUTATIONS = ("Mr.", "Ms.", "Mrs.", "Dr.", "Prof.")

FIELD_RULES: Tuple[FieldRule, ...] = (
    # Account
    FieldRule("Type", ("Account",), values=("Customer - Direct", "Customer - Channel", "Partner", "Prospect")),
    FieldRule("Rating", ("Account", "Lead"), values=("Hot", "Warm", "Cold")),
    FieldRule("Ownership", ("Account",), values=("Public", "Private", "Subsidiary", "Other")),
    FieldRule("AccountSource", ("Account",), values=_LEAD_SOURCES),
    # Contact / Lead
    FieldRule("Name", ("Contact", "Lead"), skip=True),
    FieldRule("Salutation", ("Contact", "Lead"), values=_SALUTATIONS),
    FieldRule("LeadSource", ("Contact", "Lead", "Opportunity"), values=_LEAD_SOURCES),
    FieldRule(
        "Status",
        ("Lead",),
        values=("Open - Not Contacted", "Working - Contacted"),
    ),
    # Opportunity
    FieldRule(
        "StageName",
        ("Opportunity",),
        values=(
            "Prospecting",
            "Qualification",
            "Needs Analysis",
            "Value Proposition",
            "Id. Decision Makers",
            "Perception Analysis",
            "Proposal/Price Quote",
            "Negotiation/Review",
        ),
    ),
    FieldRule(
        "Type",
        ("Opportunity",),
        values=(
            "Existing Customer - Upgrade",
            "Existing Customer - Replacement",
            "Existing Customer - Downgrade",
            "New Customer",
        ),
    ),
    FieldRule("ForecastCategoryName", skip=True),
    # Case
    FieldRule("Status", ("Case",), values=("New", "Working", "Escalated")),
    FieldRule("Priority", ("Case",), values=("High", "Medium", "Low")),
    FieldRule("Origin", ("Case",), values=("Phone", "Email", "Web")),
    FieldRule("Type", ("Case",), values=("Feature Request", "Question", "Problem")),
    FieldRule(
        "Reason",
        ("Case",),
        values=("Installation", "Equipment Complexity", "Performance", "Breakdown"),
    ),
    # Campaign
    FieldRule("Type", ("Campaign",), values=("Conference", "Webinar", "Email", "Advertisement")),
    FieldRule("Status", ("Campaign",), values=("Planned", "In Progress")),
    # Product2 / PricebookEntry
    FieldRule("Family", ("Product2",), values=("Hardware", "Software", "Services")),
    FieldRule(
        "QuantityUnitOfMeasure",
        ("Product2",),
        values=("Each", "Case", "Dozen", "Hour", "Pound", "Square Foot"),
    ),
    FieldRule("UseStandardPrice", ("PricebookEntry",), fixed=False),
    FieldRule("Name", ("PricebookEntry",), skip=True),
    FieldRule("ProductCode", ("PricebookEntry",), skip=True),
    # User records are provisioned, never seeded
    FieldRule("IsActive", ("User",), skip=True),
    FieldRule("ProfileId", ("User",), skip=True),
    # Checkbox defaults
    FieldRule("IsActive", fixed=True),
    FieldRule("IsPublic", fixed=True),
    FieldRule("IsVisible", fixed=True),
    FieldRule("IsEnabled", fixed=True),
    FieldRule("IsDefault", fixed=False),
    FieldRule("IsClosed", fixed=False),
    FieldRule("IsWon", fixed=False),
    FieldRule("IsPrivate", fixed=False),
    FieldRule("HasOptedOutOfEmail", fixed=False),
    FieldRule("HasOptedOutOfFax", fixed=False),
    FieldRule("DoNotCall", fixed=False),
    FieldRule("EmailBouncedReason", skip=True),
    FieldRule("IsEmailBounced", skip=True),
)


def find_rule(
    entity_type: str, field_name: str, rules: Sequence[FieldRule] = FIELD_RULES
) -> Optional[FieldRule]:
    """
    Return the override for ``field_name`` on ``entity_type``.

    A rule scoped to the entity type wins over a global rule for the same field.
    """
    fallback: Optional[FieldRule] = None
    for rule in rules:
        if rule.field != field_name or not rule.applies_to(entity_type):
            continue
        if rule.entities:
            return rule
        if fallback is None:
            fallback = rule
    return fallback


def exclusion_reason(entity_type: str, field: FieldDescriptor) -> Optional[str]:
    """Why ``field`` must never be written, or None when it may be generated."""
    if not field.writable:
        return "not writable"
    if field.calculated or field.type in NON_GENERATABLE_TYPES:
        return "calculated"
    if field.auto_number:
        return "auto-number"
    if field.name in SYSTEM_FIELDS:
        return "system field"
    if field.name in COMPUTED_FIELDS:
        return "store-computed"
    if any(pattern in field.name for pattern in SHADOW_FIELD_PATTERNS):
        return "shadow field"
    if entity_type == "Account" and field.name.startswith("Person"):
        return "person-account field"
    return None


def is_excluded(entity_type: str, field: FieldDescriptor) -> bool:
    return exclusion_reason(entity_type, field) is not None


__all__ = [
    "FieldRule",
    "FIELD_RULES",
    "SYSTEM_FIELDS",
    "COMPUTED_FIELDS",
    "NON_GENERATABLE_TYPES",
    "find_rule",
    "exclusion_reason",
    "is_excluded",
]
