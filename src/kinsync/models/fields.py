"""
Static field-mapping table between canonical records, Fibery fields and Planning Center attributes.

Every synced field is declared exactly once here, keyed by its canonical attribute name.
Connectors derive query selections, write payloads and snapshot parsing from this table,
so adding a field is a one-line change.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..exceptions import ConfigurationError
from .records import CanonicalHousehold, CanonicalPerson


class EntityKind(str, Enum):
    """Entity kinds kept in sync."""
    HOUSEHOLD = "household"
    PERSON = "person"


class FieldKind(str, Enum):
    """Value kinds, each with its own conversion rule."""
    TEXT = "text"
    DATE = "date"
    INSTANT = "instant"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    RELATION = "relation"


@dataclass(frozen=True)
class FieldSpec:
    """One synced field.

    - name: canonical attribute on the record model
    - fibery_field: Fibery field title, qualified with the space name at runtime
    - pco_attribute: Planning Center attribute, None when the field is not an attribute
    - pco_writable: False for attributes Planning Center treats as read-only
    - natural_key: True for the field that matches records across both systems
    """
    name: str
    fibery_field: str
    kind: FieldKind = FieldKind.TEXT
    pco_attribute: Optional[str] = None
    pco_writable: bool = True
    natural_key: bool = False


HOUSEHOLD_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("household_id", "Household ID", natural_key=True),
    FieldSpec("name", "Name", pco_attribute="name"),
)

PERSON_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("person_id", "Person ID", natural_key=True),
    # Derived from first/last name, read-only in Planning Center
    FieldSpec("name", "Name", pco_attribute="name", pco_writable=False),
    FieldSpec("first_name", "First Name", pco_attribute="first_name"),
    FieldSpec("last_name", "Last Name", pco_attribute="last_name"),
    FieldSpec("status", "Status", pco_attribute="status"),
    FieldSpec("birthdate", "Birthdate", FieldKind.DATE, pco_attribute="birthdate"),
    FieldSpec("child", "Child", FieldKind.BOOLEAN, pco_attribute="child"),
    FieldSpec("given_name", "Given Name", pco_attribute="given_name"),
    FieldSpec("grade", "Grade", FieldKind.INTEGER, pco_attribute="grade"),
    FieldSpec("middle_name", "Middle Name", pco_attribute="middle_name"),
    FieldSpec("nickname", "Nickname", pco_attribute="nickname"),
    FieldSpec("inactivated_at", "Inactivated At", FieldKind.INSTANT, pco_attribute="inactivated_at", pco_writable=False),
    FieldSpec("membership", "Membership", pco_attribute="membership"),
    FieldSpec("directory_status", "Directory Status", pco_attribute="directory_status"),
    FieldSpec("household_id", "Household", FieldKind.RELATION),
)

FIELDS: Dict[EntityKind, Tuple[FieldSpec, ...]] = {
    EntityKind.HOUSEHOLD: HOUSEHOLD_FIELDS,
    EntityKind.PERSON: PERSON_FIELDS,
}

RECORD_MODELS = {
    EntityKind.HOUSEHOLD: CanonicalHousehold,
    EntityKind.PERSON: CanonicalPerson,
}

# Fibery database names inside the configured space
FIBERY_DATABASES: Dict[EntityKind, str] = {
    EntityKind.HOUSEHOLD: "Household",
    EntityKind.PERSON: "People",
}

# Planning Center JSON:API resource types and collection paths
PCO_TYPES: Dict[EntityKind, str] = {
    EntityKind.HOUSEHOLD: "Household",
    EntityKind.PERSON: "Person",
}
PCO_COLLECTIONS: Dict[EntityKind, str] = {
    EntityKind.HOUSEHOLD: "households",
    EntityKind.PERSON: "people",
}


def fields_for(kind: EntityKind) -> Tuple[FieldSpec, ...]:
    return FIELDS[kind]


def field_names(kind: EntityKind) -> List[str]:
    return [spec.name for spec in FIELDS[kind]]


def natural_key_field(kind: EntityKind) -> FieldSpec:
    """Return the natural-key field for an entity kind."""
    for spec in FIELDS[kind]:
        if spec.natural_key:
            return spec
    raise ConfigurationError(f"No natural key declared for {kind.value}")


def relation_field(kind: EntityKind) -> Optional[FieldSpec]:
    for spec in FIELDS[kind]:
        if spec.kind == FieldKind.RELATION:
            return spec
    return None


def validate_field_table(always_refresh: Optional[Mapping[EntityKind, Iterable[str]]] = None) -> None:
    """Check the field table is consistent. Called once when the engine is built.

    Raises:
        ConfigurationError: If a field is declared inconsistently
    """
    errors = []
    for kind, specs in FIELDS.items():
        model_fields = RECORD_MODELS[kind].model_fields
        names = [spec.name for spec in specs]
        titles = [spec.fibery_field for spec in specs]

        if len([spec for spec in specs if spec.natural_key]) != 1:
            errors.append(f"{kind.value}: exactly one natural key field is required")
        if len(set(names)) != len(names):
            errors.append(f"{kind.value}: duplicate canonical field names")
        if len(set(titles)) != len(titles):
            errors.append(f"{kind.value}: duplicate Fibery field titles")

        for spec in specs:
            if spec.name not in model_fields:
                errors.append(f"{kind.value}: '{spec.name}' is not an attribute of {RECORD_MODELS[kind].__name__}")
            if spec.kind == FieldKind.RELATION and kind != EntityKind.PERSON:
                errors.append(f"{kind.value}: relation field '{spec.name}' is only supported on people")

        attributes = [spec.pco_attribute for spec in specs if spec.pco_attribute]
        if len(set(attributes)) != len(attributes):
            errors.append(f"{kind.value}: duplicate Planning Center attributes")

        for name in (always_refresh or {}).get(kind, ()):
            if name not in names:
                errors.append(f"{kind.value}: always-refresh field '{name}' is not a synced field")

    if errors:
        raise ConfigurationError("Invalid field table: " + "; ".join(errors))


class FiberySchema:
    """Qualifies Fibery type and field names with the configured space."""

    def __init__(self, space: str):
        if not space or not space.strip():
            raise ConfigurationError("Fibery space name must not be empty")
        self.space = space.strip()

    def type_name(self, kind: EntityKind) -> str:
        return f"{self.space}/{FIBERY_DATABASES[kind]}"

    def field(self, spec: FieldSpec) -> str:
        return f"{self.space}/{spec.fibery_field}"

    def natural_key(self, kind: EntityKind) -> str:
        return self.field(natural_key_field(kind))
