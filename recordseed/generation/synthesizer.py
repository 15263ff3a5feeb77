"""
Field value synthesis.

``FieldValueSynthesizer.synthesize`` produces one value for one field of one
record, or ``None`` when the field must stay out of the record. Rules, in
priority order:

1. Excluded fields (not writable, calculated, auto-number, system) -> None.
2. Static override rules (skip, fixed value, enumerated values).
3. References: round-robin over the target's identifier pool.
4. Dependent picklists: consistent with the controller chosen for the record.
5. Picklists and multi-select picklists: rotation through active values.
6. Scalars: Faker driven by field type and name heuristics, bounded by the
   declared length.
7. Anything else -> None.

Faker is reseeded from (run seed, entity type, field, record index) before
every scalar, so a value depends only on its inputs and the pools it reads.
The only state written is the per-record ``RecordContext``.
"""

from __future__ import annotations

import re
import zlib
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from faker import Faker

from recordseed.domain.errors import SchemaError
from recordseed.domain.models import FieldDescriptor, SchemaDescriptor
from recordseed.generation import addresses
from recordseed.generation.field_rules import FIELD_RULES, FieldRule, exclusion_reason, find_rule
from recordseed.generation.picklists import (
    DependencyMapping,
    PicklistDependencyCache,
    shared_cache,
)
from recordseed.generation.references import ReferenceResolver
from recordseed.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_STRING_LENGTH = 255
STRING_TYPES = frozenset({"string", "textarea", "encryptedstring", "combobox"})
PICKLIST_TYPES = frozenset({"picklist", "multipicklist"})
MAX_MULTI_SELECTIONS = 3

# First matching pattern wins.
NAME_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("first_name", re.compile(r"^(first|fname|given).*name", re.I)),
    ("last_name", re.compile(r"^(last|lname|sur|family).*name", re.I)),
    ("middle_name", re.compile(r"^middle.*name", re.I)),
    ("email", re.compile(r"e-?mail", re.I)),
    ("fax", re.compile(r"fax", re.I)),
    ("mobile", re.compile(r"mobile|cell", re.I)),
    ("phone", re.compile(r"phone|^tel", re.I)),
    ("website", re.compile(r"website|url$|homepage|web.?site", re.I)),
    ("country", addresses.COUNTRY_PATTERN),
    ("state", addresses.STATE_PATTERN),
    ("postal_code", re.compile(r"postal|zip", re.I)),
    ("city", re.compile(r"city|town|suburb", re.I)),
    ("street", re.compile(r"street|address(line)?\d?$", re.I)),
    ("company", re.compile(r"company|organi[sz]ation|employer", re.I)),
    ("title", re.compile(r"^title$|job.?title|position", re.I)),
    ("description", re.compile(r"description|comment|notes?$|summary|details|instructions", re.I)),
    ("sku", re.compile(r"sku|stock.?keeping", re.I)),
    ("serial", re.compile(r"serial", re.I)),
    ("product_code", re.compile(r"product.?code", re.I)),
    ("account_number", re.compile(r"account.?number|acct.?num", re.I)),
    ("revenue", re.compile(r"revenue|turnover", re.I)),
    ("employees", re.compile(r"employee", re.I)),
    ("amount", re.compile(r"amount|price|cost|total|value", re.I)),
    ("quantity", re.compile(r"quantity|qty|count", re.I)),
    ("discount", re.compile(r"discount", re.I)),
    ("tax", re.compile(r"tax", re.I)),
    ("rate", re.compile(r"rate|percent|probability|score", re.I)),
    ("latitude", re.compile(r"latitude", re.I)),
    ("longitude", re.compile(r"longitude", re.I)),
    ("year", re.compile(r"year", re.I)),
    ("age", re.compile(r"(^|_)age($|__c)", re.I)),
    ("birth_date", re.compile(r"birth|dob", re.I)),
    ("start_date", re.compile(r"start|begin|open|effective", re.I)),
    ("end_date", re.compile(r"end|close|due|expir|renewal", re.I)),
    ("opted_out", re.compile(r"opt.?out|do.?not|unsubscribe", re.I)),
    ("inactive", re.compile(r"inactive|disabled|deleted|archived", re.I)),
    ("active", re.compile(r"active|enabled", re.I)),
)

UNIQUE_NAME_ENTITIES = frozenset({"Account", "Opportunity", "Campaign", "Product2", "Pricebook2"})


def field_semantic(field_name: str) -> Optional[str]:
    """Name heuristic for ``field_name`` (e.g. ``"email"``), or None."""
    for semantic, pattern in NAME_PATTERNS:
        if pattern.search(field_name):
            return semantic
    return None


class RecordContext:
    """
    Scratch map shared by the fields of one record.

    Holds choices that later fields of the same record must agree with,
    such as the country selected for a billing address.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)


@dataclass(frozen=True)
class SessionScope:
    """Read-only view of the session a record is synthesized for."""

    session_id: str
    resolver: ReferenceResolver
    schemas: Mapping[str, SchemaDescriptor] = field(default_factory=dict)
    seed: int = 42

    @property
    def run_token(self) -> str:
        """Short stable token embedded in unique values of this session."""
        return f"{zlib.crc32(self.session_id.encode('utf-8')) & 0xFFFFFF:06x}"

    def schema(self, entity_type: str) -> Optional[SchemaDescriptor]:
        return self.schemas.get(entity_type)


def _chain_depth(descriptor: FieldDescriptor, by_name: Mapping[str, FieldDescriptor]) -> int:
    depth = 0
    seen = {descriptor.name}
    current = descriptor
    while current.controlling_field_name and current.controlling_field_name in by_name:
        current = by_name[current.controlling_field_name]
        if current.name in seen:
            break
        seen.add(current.name)
        depth += 1
    return depth


def order_fields(fields: Sequence[FieldDescriptor]) -> List[FieldDescriptor]:
    """
    Stable ordering that synthesizes controllers before their dependents.

    Fields are ranked by their depth in the controlling-field chain, then
    country-looking names before neutral names before state-looking names,
    then picklists before free-text fields sharing the same address key.
    """
    by_name = {f.name: f for f in fields}

    def _rank(descriptor: FieldDescriptor) -> Tuple[int, int, int]:
        if addresses.looks_like_country(descriptor.name):
            name_rank = 0
        elif addresses.looks_like_state(descriptor.name):
            name_rank = 2
        else:
            name_rank = 1
        text_rank = 0 if descriptor.picklist_values else 1
        return _chain_depth(descriptor, by_name), name_rank, text_rank

    return sorted(fields, key=_rank)


def _fit(value: str, limit: int) -> str:
    return value[:limit] if limit > 0 else value


def _fit_with_suffix(base: str, suffix: str, limit: int) -> str:
    """Truncate ``base`` so that ``base + suffix`` fits, keeping the suffix intact."""
    if limit <= 0 or len(base) + len(suffix) <= limit:
        return base + suffix
    if len(suffix) >= limit:
        return suffix[-limit:]
    return base[: limit - len(suffix)] + suffix


def _string_limit(descriptor: FieldDescriptor) -> int:
    return descriptor.max_length if descriptor.max_length > 0 else DEFAULT_STRING_LENGTH


def _fits(descriptor: FieldDescriptor, value: Any) -> bool:
    """Whether a static value respects the declared length of a text field."""
    if descriptor.type not in STRING_TYPES or not isinstance(value, str):
        return True
    return len(value) <= _string_limit(descriptor)


class FieldValueSynthesizer:
    """
    Generates field values for records of any entity type.

    Parameters
    ----------
    cache : PicklistDependencyCache, optional
        Decoded dependent-picklist tables; defaults to the process-wide cache.
    rules : sequence[FieldRule]
        Static override rules, checked before type-driven generation.
    locale : str
        Faker locale.
    """

    def __init__(
        self,
        cache: Optional[PicklistDependencyCache] = None,
        rules: Sequence[FieldRule] = FIELD_RULES,
        locale: str = "en_US",
    ) -> None:
        self._cache = cache or shared_cache()
        self._rules = tuple(rules)
        self._faker = Faker(locale)
        self._scalar_generators: Dict[str, Callable[..., Any]] = {
            "string": self._text,
            "textarea": self._text,
            "encryptedstring": self._text,
            "combobox": self._text,
            "email": self._email,
            "phone": self._phone,
            "url": self._url,
            "int": self._integer,
            "long": self._integer,
            "double": self._double,
            "currency": self._currency,
            "percent": self._percent,
            "date": self._date,
            "datetime": self._datetime,
            "time": self._time,
            "boolean": self._boolean,
        }

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    def synthesize(
        self,
        field: FieldDescriptor,
        record_index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
    ) -> Optional[Any]:
        """
        Value for ``field`` of record ``record_index``, or None to leave it unset.

        Never raises: metadata problems and unsupported types resolve to None.
        """
        try:
            return self._synthesize(field, record_index, entity_type, scope, context)
        except SchemaError as exc:
            log.debug(f"[SYNTH] {entity_type}.{field.name} skipped: {exc}")
            return None
        except Exception as exc:  # noqa: BLE001 - a single field never aborts a record
            log.warning(
                f"[SYNTH] Unexpected error generating {entity_type}.{field.name}; left unset",
                extra={"entity": entity_type, "field": field.name, "error": str(exc)},
            )
            return None

    def _synthesize(
        self,
        field: FieldDescriptor,
        index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
    ) -> Optional[Any]:
        if exclusion_reason(entity_type, field) is not None:
            return None

        rule = find_rule(entity_type, field.name, self._rules)
        if rule is not None:
            if rule.skip:
                return None
            if rule.has_fixed:
                return rule.fixed if _fits(field, rule.fixed) else None

        if field.type == "reference":
            return self._reference(field, index, entity_type, scope)

        if field.type in PICKLIST_TYPES or (field.type == "combobox" and field.picklist_values):
            allowed = self._allowed_values(field, rule)
            if field.is_dependent_picklist and field.controlling_field_name:
                return self._dependent_value(field, index, entity_type, scope, context, allowed)
            if field.type == "multipicklist":
                return self._multi_value(allowed, index)
            return self._controller_value(field, index, entity_type, scope, context, allowed)

        if rule is not None and rule.values:
            fitting = [value for value in rule.values if _fits(field, value)]
            return fitting[index % len(fitting)] if fitting else None

        generator = self._scalar_generators.get(field.type)
        if generator is None:
            return None
        self._reseed(scope, entity_type, field, index)
        return generator(field, index, entity_type, scope, context)

    # ------------------------------------------------------------------ #
    # References and picklists
    # ------------------------------------------------------------------ #

    def _reference(
        self, field: FieldDescriptor, index: int, entity_type: str, scope: SessionScope
    ) -> Optional[str]:
        targets = [t for t in field.reference_targets if t != entity_type]
        identifier = scope.resolver.pick(targets, index)
        if identifier is None and field.required:
            log.debug(
                f"[SYNTH] No identifiers yet for required reference {entity_type}.{field.name}",
                extra={"entity": entity_type, "field": field.name, "targets": list(targets)},
            )
        return identifier

    @staticmethod
    def _allowed_values(field: FieldDescriptor, rule: Optional[FieldRule]) -> List[str]:
        active = field.active_picklist_values
        if rule is None or not rule.values:
            return active
        if not active:
            return list(rule.values)
        narrowed = [value for value in rule.values if value in active]
        return narrowed or active

    def _mapping_for(
        self,
        controller_name: str,
        dependent: FieldDescriptor,
        entity_type: str,
        scope: SessionScope,
    ) -> DependencyMapping:
        schema = scope.schema(entity_type)
        controller = schema.field(controller_name) if schema else None
        if controller is None:
            raise SchemaError(
                f"Controlling field {controller_name} not described",
                entity_type=entity_type,
                field_name=dependent.name,
            )
        return self._cache.get_or_decode(scope.session_id, entity_type, controller, dependent)

    def _dependent_value(
        self,
        field: FieldDescriptor,
        index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
        allowed: List[str],
    ) -> Optional[str]:
        controller_name = field.controlling_field_name or ""
        mapping = self._mapping_for(controller_name, field, entity_type, scope)
        chosen = context.get(addresses.selection_key(controller_name))
        if chosen is not None:
            candidates = [v for v in mapping.valid_for(str(chosen)) if v in allowed]
        else:
            candidates = [v for v in mapping.dependent_values if v in allowed]
        if not candidates:
            log.debug(
                f"[SYNTH] No valid {field.name} for {controller_name}={chosen!r}; left unset",
                extra={"entity": entity_type, "field": field.name},
            )
            return None
        value = candidates[index % len(candidates)]
        if chosen is None:
            context.set(addresses.dependent_key(field.name), value)
        # A dependent may itself control a further field.
        own_key = addresses.selection_key(field.name)
        if own_key != addresses.selection_key(controller_name):
            context.set(own_key, value)
        return value

    def _controller_value(
        self,
        field: FieldDescriptor,
        index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
        allowed: List[str],
    ) -> Optional[str]:
        candidates = list(allowed)
        schema = scope.schema(entity_type)
        dependents = (
            [f for f in schema.fields if f.controlling_field_name == field.name]
            if schema
            else []
        )
        for dependent in dependents:
            picked = context.get(addresses.dependent_key(dependent.name))
            if picked is None:
                continue
            mapping = self._mapping_for(field.name, dependent, entity_type, scope)
            compatible = mapping.controllers_allowing(picked)
            candidates = [c for c in candidates if c in compatible] or compatible
        if not candidates:
            return None
        value = candidates[index % len(candidates)]
        context.set(addresses.selection_key(field.name), value)
        return value

    @staticmethod
    def _multi_value(allowed: List[str], index: int) -> Optional[str]:
        if not allowed:
            return None
        count = 1 + index % min(MAX_MULTI_SELECTIONS, len(allowed))
        picked = [allowed[(index + offset) % len(allowed)] for offset in range(count)]
        return ";".join(dict.fromkeys(picked))

    # ------------------------------------------------------------------ #
    # Scalars
    # ------------------------------------------------------------------ #

    def _reseed(
        self, scope: SessionScope, entity_type: str, field: FieldDescriptor, index: int
    ) -> None:
        key = f"{scope.seed}:{entity_type}:{field.name}:{index}".encode("utf-8")
        self._faker.seed_instance(zlib.crc32(key))

    def _text(
        self,
        field: FieldDescriptor,
        index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
    ) -> Optional[str]:
        fake = self._faker
        limit = _string_limit(field)
        semantic = field_semantic(field.name)

        if field.name == "Name":
            return self._record_name(entity_type, index, scope, limit)
        if semantic == "country":
            return self._free_text_country(field, index, context, limit)
        if semantic == "state":
            return self._free_text_state(field, index, context, limit)
        if semantic == "email":
            return self._email(field, index, entity_type, scope, context)

        makers: Dict[str, Callable[[], str]] = {
            "first_name": fake.first_name,
            "last_name": fake.last_name,
            "middle_name": fake.first_name,
            "phone": fake.phone_number,
            "mobile": fake.phone_number,
            "fax": fake.phone_number,
            "website": fake.url,
            "postal_code": fake.postcode,
            "city": fake.city,
            "street": fake.street_address,
            "company": fake.company,
            "title": fake.job,
            "description": lambda: fake.paragraph(nb_sentences=2),
            "sku": lambda: fake.bothify("SKU-????####").upper(),
            "serial": lambda: fake.bothify("SN##########"),
            "product_code": lambda: fake.bothify("PROD-######"),
            "account_number": lambda: fake.numerify("###########"),
        }
        maker = makers.get(semantic or "")
        value = maker() if maker else " ".join(fake.words(nb=3)).capitalize()
        if field.unique:
            return _fit_with_suffix(value, f"-{scope.run_token}{index}", limit)
        return _fit(value, limit)

    def _record_name(
        self, entity_type: str, index: int, scope: SessionScope, limit: int
    ) -> str:
        fake = self._faker
        suffix = f" {scope.run_token}-{index + 1:03d}"
        if entity_type == "Account":
            base = fake.company()
        elif entity_type == "Opportunity":
            base = f"{fake.company()} - {fake.bs().title()}"
        elif entity_type in UNIQUE_NAME_ENTITIES:
            base = f"{fake.catch_phrase()}"
        else:
            base = f"{entity_type} {fake.word().title()}"
        return _fit_with_suffix(base, suffix, limit)

    @staticmethod
    def _address_country(
        field: FieldDescriptor, index: int, context: RecordContext
    ) -> Tuple[Optional[str], Optional[str]]:
        """(table code, raw selection) for the address group of ``field``."""
        key = addresses.selection_key(field.name)
        chosen = context.get(key)
        code = addresses.resolve_country(chosen)
        if code is None and chosen is None:
            code = addresses.COUNTRY_CODES[index % len(addresses.COUNTRY_CODES)]
            context.set(key, code)
        return code, chosen

    def _free_text_country(
        self, field: FieldDescriptor, index: int, context: RecordContext, limit: int
    ) -> Optional[str]:
        code, chosen = self._address_country(field, index, context)
        if code is None:
            # Picked by a controller from values outside the built-in table.
            return _fit(str(chosen), limit)
        return _fit(addresses.country_label(code, limit), limit)

    def _free_text_state(
        self, field: FieldDescriptor, index: int, context: RecordContext, limit: int
    ) -> Optional[str]:
        code, _ = self._address_country(field, index, context)
        if code is None:
            return None
        return _fit(addresses.state_label(code, index, limit), limit)

    def _email(
        self,
        field: FieldDescriptor,
        index: int,
        entity_type: str,
        scope: SessionScope,
        context: RecordContext,
    ) -> Optional[str]:
        limit = field.max_length if field.max_length > 0 else 80
        local = re.sub(r"[^a-z0-9]", "", self._faker.first_name().lower())
        local += "." + re.sub(r"[^a-z0-9]", "", self._faker.last_name().lower())
        value = f"{local}.{scope.run_token}{index}@example.com"
        if len(value) > limit:
            value = f"seed.{scope.run_token}{index}@example.com"
        return value if len(value) <= limit else None

    def _phone(self, field: FieldDescriptor, *_: Any) -> str:
        limit = field.max_length if field.max_length > 0 else 40
        return _fit(self._faker.numerify("+1 ###-###-####"), limit)

    def _url(self, field: FieldDescriptor, *_: Any) -> str:
        return _fit(self._faker.url(), _string_limit(field))

    def _integer(self, field: FieldDescriptor, *_: Any) -> int:
        low, high = {
            "employees": (1, 10_000),
            "quantity": (1, 1_000),
            "year": (2000, 2025),
            "age": (18, 85),
            "rate": (0, 100),
        }.get(field_semantic(field.name) or "", (1, 1_000))
        if field.precision > 0:
            high = min(high, 10**field.precision - 1)
            low = min(low, high)
        return self._faker.random_int(min=low, max=high)

    def _bounded_float(self, field: FieldDescriptor, low: float, high: float) -> float:
        scale = field.scale if field.scale > 0 else 2
        if field.precision > field.scale:
            high = min(high, 10 ** (field.precision - field.scale) - 1)
            low = min(low, high)
        return round(self._faker.random.uniform(low, high), scale)

    def _double(self, field: FieldDescriptor, *_: Any) -> float:
        semantic = field_semantic(field.name)
        if semantic == "latitude":
            return float(self._faker.latitude())
        if semantic == "longitude":
            return float(self._faker.longitude())
        low, high = {
            "revenue": (10_000, 10_000_000),
            "amount": (100, 100_000),
            "rate": (0, 100),
            "discount": (0, 100),
        }.get(semantic or "", (0, 10_000))
        return self._bounded_float(field, low, high)

    def _currency(self, field: FieldDescriptor, *_: Any) -> float:
        low, high = {
            "revenue": (100_000, 10_000_000),
            "amount": (10, 100_000),
            "discount": (0, 1_000),
            "tax": (0, 1_000),
        }.get(field_semantic(field.name) or "", (100, 100_000))
        return self._bounded_float(field, low, high)

    def _percent(self, field: FieldDescriptor, *_: Any) -> float:
        return self._bounded_float(field, 0, 100)

    def _date_value(self, field: FieldDescriptor):
        fake = self._faker
        semantic = field_semantic(field.name)
        if semantic == "birth_date":
            return fake.date_of_birth(minimum_age=18, maximum_age=85)
        if semantic == "end_date":
            return fake.date_between(start_date="today", end_date="+1y")
        return fake.date_between(start_date="-1y", end_date="today")

    def _date(self, field: FieldDescriptor, *_: Any) -> str:
        return self._date_value(field).isoformat()

    def _datetime(self, field: FieldDescriptor, *_: Any) -> str:
        if field_semantic(field.name) == "end_date":
            moment = self._faker.date_time_between(start_date="now", end_date="+1y", tzinfo=timezone.utc)
        else:
            moment = self._faker.date_time_between(start_date="-1y", end_date="now", tzinfo=timezone.utc)
        return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")

    def _time(self, field: FieldDescriptor, *_: Any) -> str:
        return f"{self._faker.time(pattern='%H:%M:%S')}.000Z"

    def _boolean(self, field: FieldDescriptor, *_: Any) -> bool:
        semantic = field_semantic(field.name)
        if semantic in ("opted_out", "inactive"):
            return False
        if semantic == "active":
            return True
        return self._faker.boolean(chance_of_getting_true=70)


__all__ = [
    "FieldValueSynthesizer",
    "RecordContext",
    "SessionScope",
    "field_semantic",
    "order_fields",
]
