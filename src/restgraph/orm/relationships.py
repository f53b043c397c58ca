# src/restgraph/orm/relationships.py
"""
restgraph RemoteRelationship - relationship proxy

Type, start node and end node are fixed when the relationship is created and
never change; they are read once and kept for the proxy's lifetime.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple, TYPE_CHECKING

from restgraph.core.representations import RelationshipRepresentation
from restgraph.exceptions import BadInputError
from restgraph.orm.entities import RemoteEntity
from restgraph.orm.nodes import RemoteNode, type_name

if TYPE_CHECKING:
    from restgraph.batch import BatchReference
    from restgraph.gateway import GraphGateway


class RemoteRelationship(RemoteEntity):
    """Proxy for a remote relationship."""

    representation_class = RelationshipRepresentation
    kind = "relationship"

    def __init__(
        self,
        gateway: GraphGateway,
        uri: Optional[str] = None,
        *,
        reference: Optional[BatchReference] = None,
        relationship_type: Optional[str] = None,
        start_node: Optional[RemoteNode] = None,
        end_node: Optional[RemoteNode] = None,
    ):
        super().__init__(gateway, uri, reference=reference)
        self._type: Optional[str] = relationship_type
        self._start_node: Optional[RemoteNode] = start_node
        self._end_node: Optional[RemoteNode] = end_node

    @classmethod
    def pending(
        cls,
        reference: BatchReference,
        gateway: GraphGateway,
        relationship_type: Optional[str] = None,
        start_node: Optional[RemoteNode] = None,
        end_node: Optional[RemoteNode] = None,
    ) -> RemoteRelationship:
        return cls(
            gateway,
            reference=reference,
            relationship_type=relationship_type,
            start_node=start_node,
            end_node=end_node,
        )

    def _apply_representation(self, representation: RelationshipRepresentation) -> None:
        super()._apply_representation(representation)
        if self._type is None:
            self._type = representation.type
        if self._start_node is None:
            self._start_node = self._gateway.node_for(representation.start)
        if self._end_node is None:
            self._end_node = self._gateway.node_for(representation.end)

    def _ensure_loaded(self) -> None:
        if self._type is None or self._start_node is None or self._end_node is None:
            self._fetch()

    @property
    def type(self) -> str:
        self._ensure_loaded()
        return self._type

    @property
    def start_node(self) -> RemoteNode:
        self._ensure_loaded()
        return self._start_node

    @property
    def end_node(self) -> RemoteNode:
        self._ensure_loaded()
        return self._end_node

    def is_type(self, relationship_type: Any) -> bool:
        return self.type == type_name(relationship_type)

    def get_nodes(self) -> Tuple[RemoteNode, RemoteNode]:
        return self.start_node, self.end_node

    def get_other_node(self, node: RemoteNode) -> RemoteNode:
        if node == self.start_node:
            return self.end_node
        if node == self.end_node:
            return self.start_node
        raise BadInputError(f"{node!r} is neither the start nor the end node of {self!r}")
