"""
Wire representations of remote graph entities.

The service returns JSON documents describing a node or relationship: its
canonical URI (``self``), its property map (``data``) and a set of locators
for its sub-resources. These pydantic models validate those documents and
split them into property data and structural data.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def entity_id_from_uri(uri: str) -> int:
    """Extract the numeric id from an entity URI such as ``.../node/42``."""
    tail = uri.rstrip("/").rsplit("/", 1)[-1]
    try:
        return int(tail)
    except ValueError:
        raise ValueError(f"Not an entity URI: {uri}") from None


class EntityRepresentation(BaseModel):
    """Fields shared by node and relationship documents."""

    self_uri: str = Field(..., alias="self", min_length=1, description="Canonical entity URI")
    data: Dict[str, Any] = Field(default_factory=dict, description="Property values")
    properties: Optional[str] = Field(default=None, description="Property collection locator")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "self": "http://localhost:7474/db/data/node/5",
                "data": {"name": "Alice"},
                "properties": "http://localhost:7474/db/data/node/5/properties",
            }
        },
    )

    @field_validator("data", mode="before")
    @classmethod
    def none_data_is_empty(cls, v):
        return {} if v is None else v

    @field_validator("data")
    @classmethod
    def validate_property_keys(cls, v):
        if not all(isinstance(k, str) for k in v.keys()):
            raise ValueError("All property keys must be strings")
        return v

    def structural_data(self) -> Dict[str, Any]:
        """Every locator of the document except identity, properties and metadata."""
        dumped = self.model_dump(by_alias=True, exclude_none=True)
        for key in ("self", "data", "metadata"):
            dumped.pop(key, None)
        return dumped


class NodeRepresentation(EntityRepresentation):
    all_relationships: Optional[str] = None
    incoming_relationships: Optional[str] = None
    outgoing_relationships: Optional[str] = None
    create_relationship: Optional[str] = None
    labels: Optional[str] = None
    traverse: Optional[str] = None

    @classmethod
    def matches(cls, document: Any) -> bool:
        return (
            isinstance(document, dict)
            and "self" in document
            and any(
                key in document
                for key in ("all_relationships", "outgoing_relationships", "create_relationship")
            )
        )

    @property
    def label_names(self) -> Optional[List[str]]:
        """Labels embedded in the metadata block, when the service sends them."""
        labels = self.metadata.get("labels")
        return list(labels) if labels is not None else None


class RelationshipRepresentation(EntityRepresentation):
    start: str = Field(..., min_length=1, description="Start node URI")
    end: str = Field(..., min_length=1, description="End node URI")
    type: str = Field(..., min_length=1, description="Relationship type")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if not v.strip():
            raise ValueError("Relationship type cannot be empty")
        return v.strip()

    @classmethod
    def matches(cls, document: Any) -> bool:
        return isinstance(document, dict) and all(
            key in document for key in ("self", "start", "end", "type")
        )


class PathRepresentation(BaseModel):
    start: str
    end: str
    nodes: List[str] = Field(default_factory=list)
    relationships: List[str] = Field(default_factory=list)
    length: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="allow")

    @classmethod
    def matches(cls, document: Any) -> bool:
        return isinstance(document, dict) and all(
            key in document for key in ("start", "end", "nodes", "relationships", "length")
        )
