"""Typed Planning Center JSON:API response models."""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceIdentifier(BaseModel):
    """A JSON:API resource pointer, e.g. ``{"type": "Household", "id": "12"}``."""
    type: str
    id: str

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v


class Relationship(BaseModel):
    """Relationship block. ``data`` is a single pointer, a list of pointers or null."""
    data: Union[List[ResourceIdentifier], ResourceIdentifier, None] = None

    def identifiers(self) -> List[ResourceIdentifier]:
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]


class Resource(BaseModel):
    """A JSON:API resource object."""
    model_config = ConfigDict(extra="ignore")

    type: str
    id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    relationships: Dict[str, Relationship] = Field(default_factory=dict)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v

    @field_validator('attributes', 'relationships', mode='before')
    @classmethod
    def null_as_empty(cls, v):
        return v or {}

    def attribute(self, name: str) -> Optional[Any]:
        """Return an attribute value, or None when it is missing."""
        return self.attributes.get(name)

    def related_id(self, relationship: str) -> Optional[str]:
        """Return the first related resource ID, or None when there is none."""
        rel = self.relationships.get(relationship)
        if rel is None:
            return None
        identifiers = rel.identifiers()
        return identifiers[0].id if identifiers else None


class PageLinks(BaseModel):
    """Pagination links. ``next`` is an absolute URL."""
    model_config = ConfigDict(extra="ignore")

    next: Optional[str] = None


class Page(BaseModel):
    """One page of a list endpoint."""
    model_config = ConfigDict(extra="ignore")

    data: List[Resource] = Field(default_factory=list)
    links: PageLinks = Field(default_factory=PageLinks)
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('data', mode='before')
    @classmethod
    def null_as_empty_list(cls, v):
        return v or []

    @field_validator('links', 'meta', mode='before')
    @classmethod
    def null_as_empty_dict(cls, v):
        return v or {}


class Collection(BaseModel):
    """All pages of a list endpoint, concatenated in server order."""
    data: List[Resource] = Field(default_factory=list)
    pages: int = 0


class Document(BaseModel):
    """Single-resource response, returned by create and update."""
    model_config = ConfigDict(extra="ignore")

    data: Optional[Resource] = None
