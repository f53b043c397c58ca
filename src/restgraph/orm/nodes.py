# src/restgraph/orm/nodes.py
"""
restgraph RemoteNode - node proxy with labels and relationship navigation
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from restgraph.core.representations import NodeRepresentation
from restgraph.core.types import Direction
from restgraph.exceptions import BadInputError, InvalidStateError, RestGraphError
from restgraph.orm.entities import RemoteEntity

if TYPE_CHECKING:
    from restgraph.orm.relationships import RemoteRelationship
    from restgraph.orm.traversal import Traverser


def type_name(relationship_type: Any) -> str:
    """Accept a plain string or any object with a ``name`` attribute."""
    name = getattr(relationship_type, "name", relationship_type)
    if not isinstance(name, str) or not name.strip():
        raise BadInputError(f"Invalid relationship type: {relationship_type!r}")
    return name.strip()


def parse_direction_and_types(
    args: Tuple[Any, ...], direction: Optional[Direction] = None
) -> Tuple[Direction, List[str]]:
    """
    Split variadic ``(Direction?, *types)`` arguments.

    The direction may appear anywhere among the positional arguments or as a
    keyword, but only once.
    """
    types: List[str] = []
    for arg in args:
        if isinstance(arg, Direction):
            if direction is not None:
                raise BadInputError("Direction given more than once")
            direction = arg
        else:
            types.append(type_name(arg))
    return direction or Direction.BOTH, types


class RemoteNode(RemoteEntity):
    """
    Proxy for a remote node.

    Labels are cached separately from properties with their own fetch
    timestamp, under the same refetch policy.
    """

    representation_class = NodeRepresentation
    kind = "node"

    def __init__(self, gateway, uri=None, *, reference=None):
        super().__init__(gateway, uri, reference=reference)
        self._labels: Set[str] = set()
        self._last_label_fetch: Optional[float] = None

    def _apply_representation(self, representation: NodeRepresentation) -> None:
        super()._apply_representation(representation)
        if representation.label_names is not None:
            self._replace_labels(representation.label_names)

    def invalidate(self) -> None:
        super().invalidate()
        self._last_label_fetch = None

    # =============================================================================
    # LABELS
    # =============================================================================

    def labels_path(self) -> str:
        path = self.get_structural_data().get("labels")
        if path is None:
            raise RestGraphError(f"Service does not expose labels for {self.uri}")
        return str(path)

    def _replace_labels(self, labels) -> None:
        self._labels = set(labels)
        self._last_label_fetch = self._gateway.refetch_policy.now()

    def _cache_label(self, label: str) -> None:
        self._labels.add(label)

    def _uncache_label(self, label: str) -> None:
        self._labels.discard(label)

    def _update_labels(self) -> Set[str]:
        if self.is_pending:
            raise InvalidStateError("Cannot read labels of uncommitted node")
        if self._gateway.refetch_policy.has_to_update(self._last_label_fetch):
            self._replace_labels(self._gateway.get_labels(self.labels_path()))
        return self._labels

    def get_labels(self) -> Set[str]:
        return set(self._update_labels())

    def has_label(self, label: str) -> bool:
        return label in self._update_labels()

    def add_label(self, label: str) -> None:
        self._gateway.add_label(self, label)

    def remove_label(self, label: str) -> None:
        self._gateway.remove_label(self, label)

    # =============================================================================
    # RELATIONSHIPS
    # =============================================================================

    def _relationships_path(self, direction: Direction, types: List[str]) -> str:
        key = f"{direction.long_name}_relationships"
        base = self.get_structural_data().get(key)
        if base is None:
            raise RestGraphError(f"Node {self.uri} has no '{key}' locator")
        if types:
            return f"{base}/{'&'.join(types)}"
        return str(base)

    def get_relationships(
        self, *args: Any, direction: Optional[Direction] = None
    ) -> List[RemoteRelationship]:
        """
        Relationships of this node.

        Example:
            ```python
            node.get_relationships()                              # all
            node.get_relationships(Direction.INCOMING)            # incoming, any type
            node.get_relationships("KNOWS", "LOVES")              # both directions
            node.get_relationships("KNOWS", direction=Direction.OUTGOING)
            ```
        """
        direction, types = parse_direction_and_types(args, direction)
        return self._gateway.get_relationships(self._relationships_path(direction, types))

    def has_relationship(self, *args: Any, direction: Optional[Direction] = None) -> bool:
        return bool(self.get_relationships(*args, direction=direction))

    def get_single_relationship(
        self, relationship_type: Any, direction: Direction = Direction.BOTH
    ) -> Optional[RemoteRelationship]:
        """The only relationship of a type/direction, or None if there is none."""
        relationships = self.get_relationships(relationship_type, direction=direction)
        if not relationships:
            return None
        if len(relationships) > 1:
            raise RestGraphError(
                f"Node {self.uri} has {len(relationships)} {type_name(relationship_type)} "
                f"relationships ({direction.long_name}), expected at most one"
            )
        return relationships[0]

    def create_relationship_to(
        self,
        other: RemoteNode,
        relationship_type: Any,
        properties: Optional[Dict[str, Any]] = None,
    ) -> RemoteRelationship:
        return self._gateway.create_relationship(self, other, relationship_type, properties)

    def traverse(self, order, stop_evaluator, returnable_evaluator, *rels: Any) -> Traverser:
        """Legacy traversal entry point; see ``restgraph.orm.traversal.legacy_traverse``."""
        from restgraph.orm.traversal import legacy_traverse

        return legacy_traverse(self, order, stop_evaluator, returnable_evaluator, *rels)
