# src/restgraph/orm/indexes.py
"""
Legacy (explicit) indexes on the remote service.

An index is identified by its kind (node or relationship) and its name, and
carries a configuration map that is fixed when the index is created.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

from restgraph.core.types import IndexKind
from restgraph.orm.converters import IndexHits
from restgraph.orm.entities import RemoteEntity
from restgraph.orm.nodes import RemoteNode
from restgraph.orm.relationships import RemoteRelationship

if TYPE_CHECKING:
    from restgraph.gateway import GraphGateway


EXACT_CONFIG: Dict[str, str] = {"provider": "lucene", "type": "exact"}
FULLTEXT_CONFIG: Dict[str, str] = {"provider": "lucene", "type": "fulltext"}


class IndexHandle(BaseModel):
    """Identity and configuration of an index."""

    kind: IndexKind
    name: str = Field(..., min_length=1)
    config: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Index name cannot be empty")
        return v

    @field_validator("config", mode="before")
    @classmethod
    def stringify_config(cls, v):
        if v is None:
            return {}
        # the service stores every config value as a string
        return {str(key): str(value) for key, value in v.items()}

    @property
    def entity_type(self) -> Type[RemoteEntity]:
        return RemoteNode if self.kind == IndexKind.NODE else RemoteRelationship


class RemoteIndex:
    """An index bound to a gateway."""

    def __init__(self, handle: IndexHandle, gateway: GraphGateway):
        self.handle = handle
        self._gateway = gateway

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def kind(self) -> IndexKind:
        return self.handle.kind

    @property
    def config(self) -> Dict[str, str]:
        return dict(self.handle.config)

    @property
    def entity_type(self) -> Type[RemoteEntity]:
        return self.handle.entity_type

    def add(self, entity: RemoteEntity, key: str, value: Any) -> None:
        self._gateway.add_to_index(self, entity, key, value)

    def remove(self, entity: RemoteEntity, key: Optional[str] = None, value: Any = None) -> None:
        self._gateway.remove_from_index(self, entity, key, value)

    def get(self, key: str, value: Any) -> IndexHits:
        return self._gateway.index_get(self, key, value)

    def query(self, key_or_query: Any, query: Any = None) -> IndexHits:
        """``query("name:Tri*")`` or ``query("name", "Tri*")``."""
        return self._gateway.index_query(self, key_or_query, query)

    def delete(self) -> None:
        self._gateway.delete_index(self)

    def get_or_create(self, key: str, value: Any, *args: Any, **kwargs: Any) -> RemoteEntity:
        """Unique get-or-create keyed on this index (node or relationship)."""
        if self.kind == IndexKind.NODE:
            return self._gateway.get_or_create_unique_node(self, key, value, *args, **kwargs)
        return self._gateway.get_or_create_unique_relationship(self, key, value, *args, **kwargs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteIndex):
            return NotImplemented
        return (self.kind, self.name) == (other.kind, other.name)

    def __hash__(self) -> int:
        return hash((self.kind, self.name))

    def __repr__(self) -> str:
        return f"RemoteIndex(kind='{self.kind.value}', name='{self.name}', config={self.handle.config})"


class IndexManager:
    """Entry point for index lookup and creation."""

    def __init__(self, gateway: GraphGateway):
        self._gateway = gateway

    def for_nodes(self, name: str, config: Optional[Dict[str, str]] = None) -> RemoteIndex:
        return self._gateway.create_index(IndexKind.NODE, name, config)

    def for_relationships(self, name: str, config: Optional[Dict[str, str]] = None) -> RemoteIndex:
        return self._gateway.create_index(IndexKind.RELATIONSHIP, name, config)

    def exists_for_nodes(self, name: str) -> bool:
        return name in self._gateway.index_configs(IndexKind.NODE)

    def exists_for_relationships(self, name: str) -> bool:
        return name in self._gateway.index_configs(IndexKind.RELATIONSHIP)

    def node_index_names(self) -> List[str]:
        return list(self._gateway.index_configs(IndexKind.NODE))

    def relationship_index_names(self) -> List[str]:
        return list(self._gateway.index_configs(IndexKind.RELATIONSHIP))

    def get(self, name: str) -> RemoteIndex:
        return self._gateway.get_index(name)
