"""Canonical in-memory records shared by both sync directions."""

from typing import Optional

from pydantic import BaseModel, Field

UNNAMED_PERSON = "Unnamed Person"
UNNAMED_HOUSEHOLD = "Household"


class CanonicalHousehold(BaseModel):
    """A household, independent of either system's wire format."""
    household_id: Optional[str] = Field(None, description="Natural key (Planning Center household ID)")
    name: Optional[str] = None
    modified_at: Optional[str] = Field(None, description="Source modification stamp, not synced")

    @property
    def natural_key(self) -> Optional[str]:
        return self.household_id


class CanonicalPerson(BaseModel):
    """A person. None means the field is unknown or empty and is never written as a blank."""
    person_id: Optional[str] = Field(None, description="Natural key (Planning Center person ID)")
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: Optional[str] = None
    birthdate: Optional[str] = Field(None, description="Calendar date, YYYY-MM-DD")
    child: Optional[bool] = None
    given_name: Optional[str] = None
    grade: Optional[int] = None
    middle_name: Optional[str] = None
    nickname: Optional[str] = None
    inactivated_at: Optional[str] = Field(None, description="ISO-8601 instant")
    membership: Optional[str] = None
    directory_status: Optional[str] = None
    household_id: Optional[str] = Field(None, description="Natural key of the person's household")
    modified_at: Optional[str] = Field(None, description="Source modification stamp, not synced")

    @property
    def natural_key(self) -> Optional[str]:
        return self.person_id
