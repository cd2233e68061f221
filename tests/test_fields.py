"""Tests for the static field table."""

import pytest

from kinsync.exceptions import ConfigurationError
from kinsync.models.fields import (
    EntityKind, FieldKind, FiberySchema, field_names, natural_key_field, relation_field, validate_field_table,
)


class TestFieldTable:
    """Test field table declarations"""

    def test_table_is_valid(self):
        validate_field_table()

    def test_natural_keys(self):
        assert natural_key_field(EntityKind.PERSON).name == "person_id"
        assert natural_key_field(EntityKind.HOUSEHOLD).name == "household_id"

    def test_only_people_have_a_relation(self):
        assert relation_field(EntityKind.PERSON).kind == FieldKind.RELATION
        assert relation_field(EntityKind.HOUSEHOLD) is None

    def test_person_fields(self):
        assert field_names(EntityKind.PERSON) == [
            "person_id", "name", "first_name", "last_name", "status", "birthdate", "child",
            "given_name", "grade", "middle_name", "nickname", "inactivated_at", "membership",
            "directory_status", "household_id",
        ]

    def test_known_always_refresh_fields_accepted(self):
        validate_field_table({EntityKind.PERSON: {"grade", "nickname"}})

    def test_unknown_always_refresh_field_rejected(self):
        with pytest.raises(ConfigurationError, match="shoe_size"):
            validate_field_table({EntityKind.PERSON: {"shoe_size"}})


class TestFiberySchema:
    """Test space-qualified Fibery names"""

    def test_qualified_names(self):
        schema = FiberySchema("Congregation")
        assert schema.type_name(EntityKind.PERSON) == "Congregation/People"
        assert schema.type_name(EntityKind.HOUSEHOLD) == "Congregation/Household"
        assert schema.natural_key(EntityKind.PERSON) == "Congregation/Person ID"
        assert schema.field(relation_field(EntityKind.PERSON)) == "Congregation/Household"

    def test_empty_space_rejected(self):
        with pytest.raises(ConfigurationError):
            FiberySchema("  ")
