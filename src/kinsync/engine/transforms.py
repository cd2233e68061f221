"""
Field conversions between Planning Center, Fibery and canonical records.
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from ..core.models import Resource
from ..exceptions import MappingError
from ..models.fields import (
    EntityKind, FieldKind, FieldSpec, FiberySchema, fields_for, natural_key_field
)
from ..models.plan import RelationRef
from ..models.records import CanonicalHousehold, CanonicalPerson, UNNAMED_HOUSEHOLD, UNNAMED_PERSON

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

FIBERY_ID = "fibery/id"
FIBERY_MODIFIED = "fibery/modification-date"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FieldTransformer:
    """
    Per-kind value conversions. Every converter maps None, missing and "" to None.
    """

    @staticmethod
    def is_blank(value: Any) -> bool:
        return value is None or value == ""

    @staticmethod
    def to_text(value: Any) -> Optional[str]:
        if FieldTransformer.is_blank(value):
            return None
        return str(value)

    @staticmethod
    def to_date(value: Any) -> Optional[str]:
        """Calendar date as ``YYYY-MM-DD``. Already-canonical strings pass through unchanged."""
        if FieldTransformer.is_blank(value):
            return None
        if isinstance(value, str) and _DATE_RE.match(value):
            return value
        parsed = parse_datetime(value)
        return parsed.date().isoformat() if parsed else None

    @staticmethod
    def to_instant(value: Any) -> Optional[str]:
        """Full timestamp. Strings that already carry a time component pass through unchanged."""
        if FieldTransformer.is_blank(value):
            return None
        if isinstance(value, str) and "T" in value:
            return value
        parsed = parse_datetime(value)
        return format_instant(parsed) if parsed else None

    @staticmethod
    def to_boolean(value: Any) -> Optional[bool]:
        if FieldTransformer.is_blank(value):
            return None
        return bool(value)

    @staticmethod
    def to_integer(value: Any) -> Optional[int]:
        """Leading base-10 integer, like ``"7th"`` -> 7. Non-numeric values become None."""
        if FieldTransformer.is_blank(value) or isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else None
        match = _LEADING_INT_RE.match(str(value))
        return int(match.group(1)) if match else None

    @staticmethod
    def apply(value: Any, kind: FieldKind) -> Any:
        """Convert a raw value according to its field kind."""
        converter = _CONVERTERS.get(kind)
        if converter is None:
            return value
        return converter(value)

    @staticmethod
    def same_value(kind: FieldKind, left: Any, right: Any) -> bool:
        """Semantic equality used when diffing. Instants compare as points in time."""
        if kind == FieldKind.INSTANT and left is not None and right is not None:
            left_dt, right_dt = parse_datetime(left), parse_datetime(right)
            if left_dt is not None and right_dt is not None:
                return left_dt == right_dt
        return left == right


_CONVERTERS: Dict[FieldKind, Callable[[Any], Any]] = {
    FieldKind.TEXT: FieldTransformer.to_text,
    FieldKind.DATE: FieldTransformer.to_date,
    FieldKind.INSTANT: FieldTransformer.to_instant,
    FieldKind.BOOLEAN: FieldTransformer.to_boolean,
    FieldKind.INTEGER: FieldTransformer.to_integer,
}


def _text(value: Any) -> Optional[str]:
    return FieldTransformer.to_text(value)


# Planning Center -> canonical

def person_display_name(first_name: Optional[str], last_name: Optional[str], explicit: Optional[str]) -> str:
    """Join first and last name, else use the explicit name, else a fixed placeholder."""
    joined = " ".join(part for part in (first_name, last_name) if part)
    return joined or explicit or UNNAMED_PERSON


def pco_person_to_canonical(resource: Resource) -> CanonicalPerson:
    """Map a Planning Center Person resource.

    Raises:
        MappingError: If the resource has no ID
    """
    if not resource.id:
        raise MappingError(f"Planning Center {resource.type} resource has no id")

    values: Dict[str, Any] = {}
    for spec in fields_for(EntityKind.PERSON):
        if spec.pco_attribute:
            values[spec.name] = FieldTransformer.apply(resource.attribute(spec.pco_attribute), spec.kind)

    values["person_id"] = resource.id
    values["name"] = person_display_name(values.get("first_name"), values.get("last_name"), values.get("name"))
    values["household_id"] = resource.related_id("households")
    values["modified_at"] = _text(resource.attribute("updated_at"))
    return CanonicalPerson(**values)


def pco_household_to_canonical(resource: Resource) -> CanonicalHousehold:
    """Map a Planning Center Household resource.

    Raises:
        MappingError: If the resource has no ID
    """
    if not resource.id:
        raise MappingError(f"Planning Center {resource.type} resource has no id")

    name = _text(resource.attribute("name")) or _text(resource.attribute("label")) or UNNAMED_HOUSEHOLD
    return CanonicalHousehold(
        household_id=resource.id,
        name=name,
        modified_at=_text(resource.attribute("updated_at")),
    )


# Fibery -> canonical

def _fibery_key(entity: Dict[str, Any], kind: EntityKind, schema: FiberySchema) -> Optional[str]:
    return _text(entity.get(schema.natural_key(kind)))


def fibery_person_to_canonical(entity: Dict[str, Any], schema: FiberySchema) -> CanonicalPerson:
    """Map a Fibery People entity selected with the nested household relation.

    Raises:
        MappingError: If the entity has no Person ID
    """
    person_id = _fibery_key(entity, EntityKind.PERSON, schema)
    if not person_id:
        raise MappingError(f"Fibery person {entity.get(FIBERY_ID)} has no Person ID")

    values: Dict[str, Any] = {}
    for spec in fields_for(EntityKind.PERSON):
        if spec.kind == FieldKind.RELATION:
            household = entity.get(schema.field(spec))
            values[spec.name] = (
                _fibery_key(household, EntityKind.HOUSEHOLD, schema) if isinstance(household, dict) else None
            )
        else:
            values[spec.name] = FieldTransformer.apply(entity.get(schema.field(spec)), spec.kind)

    values["modified_at"] = _text(entity.get(FIBERY_MODIFIED))
    return CanonicalPerson(**values)


def fibery_household_to_canonical(entity: Dict[str, Any], schema: FiberySchema) -> CanonicalHousehold:
    """Map a Fibery Household entity.

    Raises:
        MappingError: If the entity has no Household ID
    """
    household_id = _fibery_key(entity, EntityKind.HOUSEHOLD, schema)
    if not household_id:
        raise MappingError(f"Fibery household {entity.get(FIBERY_ID)} has no Household ID")

    values = {
        spec.name: FieldTransformer.apply(entity.get(schema.field(spec)), spec.kind)
        for spec in fields_for(EntityKind.HOUSEHOLD)
    }
    values["modified_at"] = _text(entity.get(FIBERY_MODIFIED))
    return CanonicalHousehold(**values)


def fibery_snapshot(entity: Dict[str, Any], kind: EntityKind, schema: FiberySchema) -> Dict[str, Any]:
    """Normalise a Fibery entity into canonical field values for diffing.

    The household relation becomes a RelationRef to the linked entity's Fibery ID.
    """
    snapshot: Dict[str, Any] = {}
    for spec in fields_for(kind):
        raw = entity.get(schema.field(spec))
        if spec.kind == FieldKind.RELATION:
            linked = raw.get(FIBERY_ID) if isinstance(raw, dict) else None
            snapshot[spec.name] = RelationRef(_text(linked))
        else:
            snapshot[spec.name] = FieldTransformer.apply(raw, spec.kind)
    return snapshot


# canonical -> destination values

def record_values(record: Any, specs: Iterable[FieldSpec]) -> Dict[str, Any]:
    """Canonical field values for the given specs, converted per kind."""
    values = {}
    for spec in specs:
        value = getattr(record, spec.name)
        values[spec.name] = value if spec.kind == FieldKind.RELATION else FieldTransformer.apply(value, spec.kind)
    return values


def pco_attributes(kind: EntityKind, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Planning Center attributes for the writable fields present in ``fields``.

    Absent values are dropped. Read-only attributes are never sent.
    """
    attributes = {}
    for spec in fields_for(kind):
        if not spec.pco_attribute or not spec.pco_writable or spec.name not in fields:
            continue
        value = fields[spec.name]
        if value is None:
            continue
        attributes[spec.pco_attribute] = value
    return attributes


# batch helpers

def map_records(
    items: Iterable[T],
    mapper: Callable[[T], Any],
    label: str,
) -> Tuple[List[Any], List[str]]:
    """Map a batch, skipping records that fail with MappingError.

    Returns:
        (mapped records, warning messages)
    """
    mapped, warnings = [], []
    for item in items:
        try:
            mapped.append(mapper(item))
        except MappingError as e:
            message = f"Skipped {label}: {e}"
            logger.warning(message)
            warnings.append(message)
    return mapped, warnings


def natural_key_of(record: Any, kind: EntityKind) -> Optional[str]:
    return getattr(record, natural_key_field(kind).name)

