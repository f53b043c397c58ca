# src/restgraph/orm/traversal.py
"""
restgraph traversals - declarative traversal specifications

Traversal logic runs on the service. Locally we only describe it: order,
uniqueness, relationship filters, depth limit and script or builtin
evaluators, all expressed as data. Python callables cannot cross the network,
so the legacy evaluator-callback API is mapped onto this description and
rejected with ``UnsupportedError`` where that is impossible.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

from restgraph.core.representations import PathRepresentation
from restgraph.core.types import Direction, Order, Uniqueness
from restgraph.exceptions import BadInputError, UnsupportedError
from restgraph.orm.nodes import type_name

if TYPE_CHECKING:
    from restgraph.gateway import GraphGateway
    from restgraph.orm.nodes import RemoteNode
    from restgraph.orm.relationships import RemoteRelationship


BUILTIN = "builtin"
SCRIPT_LANGUAGES = ("javascript",)
BUILTIN_RETURN_FILTERS = ("all", "all_but_start_node")
BUILTIN_PRUNE_EVALUATORS = ("none",)


class ScriptEvaluator(BaseModel):
    """A prune evaluator or return filter executed by the service."""

    language: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("language")
    @classmethod
    def validate_language(cls, v):
        v = v.strip().lower()
        if v not in SCRIPT_LANGUAGES + (BUILTIN,):
            raise ValueError(f"Unknown evaluator language: {v}")
        return v

    @classmethod
    def builtin(cls, name: str) -> ScriptEvaluator:
        return cls(language=BUILTIN, body=name)

    @classmethod
    def javascript(cls, body: str) -> ScriptEvaluator:
        return cls(language="javascript", body=body)

    @property
    def is_builtin(self) -> bool:
        return self.language == BUILTIN

    def to_wire(self) -> Dict[str, str]:
        if self.is_builtin:
            return {"language": BUILTIN, "name": self.body}
        return {"language": self.language, "body": self.body}


class TraversalDescription:
    """
    Builder for a server-side traversal.

    Example:
        ```python
        description = (
            TraversalDescription()
            .breadth_first()
            .relationships("KNOWS", Direction.OUTGOING)
            .max_depth(2)
            .filter(ScriptEvaluator.builtin("all_but_start_node"))
        )
        paths = gateway.traverse(node, description)
        ```
    """

    def __init__(self):
        self._order: Order = Order.DEPTH_FIRST
        self._uniqueness: Uniqueness = Uniqueness.NODE_GLOBAL
        self._relationships: List[Tuple[str, Direction]] = []
        self._max_depth: Optional[int] = None
        self._prune: Optional[ScriptEvaluator] = None
        self._filter: Optional[ScriptEvaluator] = None

    def order(self, order: Order) -> TraversalDescription:
        self._order = Order(order)
        return self

    def breadth_first(self) -> TraversalDescription:
        return self.order(Order.BREADTH_FIRST)

    def depth_first(self) -> TraversalDescription:
        return self.order(Order.DEPTH_FIRST)

    def uniqueness(self, uniqueness: Uniqueness) -> TraversalDescription:
        self._uniqueness = Uniqueness(uniqueness)
        return self

    def relationships(self, relationship_type: Any, direction: Direction = Direction.BOTH) -> TraversalDescription:
        self._relationships.append((type_name(relationship_type), Direction(direction)))
        return self

    def max_depth(self, depth: int) -> TraversalDescription:
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 0:
            raise BadInputError(f"max depth must be a non-negative int, got {depth!r}")
        if self._prune is not None:
            raise BadInputError("A traversal takes either max depth or a prune evaluator")
        self._max_depth = depth
        return self

    def prune(self, evaluator: ScriptEvaluator) -> TraversalDescription:
        if self._max_depth is not None:
            raise BadInputError("A traversal takes either max depth or a prune evaluator")
        if evaluator.is_builtin and evaluator.body not in BUILTIN_PRUNE_EVALUATORS:
            raise BadInputError(f"Unknown builtin prune evaluator: {evaluator.body}")
        self._prune = evaluator
        return self

    def filter(self, evaluator: ScriptEvaluator) -> TraversalDescription:
        if evaluator.is_builtin and evaluator.body not in BUILTIN_RETURN_FILTERS:
            raise BadInputError(f"Unknown builtin return filter: {evaluator.body}")
        self._filter = evaluator
        return self

    def to_wire(self) -> Dict[str, Any]:
        """The JSON body of the service's traverse call."""
        body: Dict[str, Any] = {
            "order": self._order.value,
            "uniqueness": self._uniqueness.value,
        }
        if self._relationships:
            body["relationships"] = [
                {"type": name, "direction": direction.value}
                for name, direction in self._relationships
            ]
        if self._max_depth is not None:
            body["max_depth"] = self._max_depth
        if self._prune is not None:
            body["prune_evaluator"] = self._prune.to_wire()
        if self._filter is not None:
            body["return_filter"] = self._filter.to_wire()
        return body

    def traverse(self, node: RemoteNode) -> List[Path]:
        return node.gateway.traverse(node, self)

    def __repr__(self) -> str:
        return f"TraversalDescription({self.to_wire()})"


class Path:
    """A path returned by a traversal."""

    def __init__(
        self,
        nodes: List[RemoteNode],
        relationships: List[RemoteRelationship],
    ):
        if len(nodes) != len(relationships) + 1:
            raise BadInputError("A path has exactly one more node than relationships")
        self.nodes = nodes
        self.relationships = relationships

    @classmethod
    def from_document(cls, document: Dict[str, Any], gateway: GraphGateway) -> Path:
        representation = PathRepresentation.model_validate(document)
        nodes = [gateway.node_for(uri) for uri in representation.nodes] or [gateway.node_for(representation.start)]
        relationships = [gateway.relationship_for(uri) for uri in representation.relationships]
        return cls(nodes, relationships)

    @property
    def start_node(self) -> RemoteNode:
        return self.nodes[0]

    @property
    def end_node(self) -> RemoteNode:
        return self.nodes[-1]

    @property
    def last_relationship(self) -> Optional[RemoteRelationship]:
        return self.relationships[-1] if self.relationships else None

    def __len__(self) -> int:
        return len(self.relationships)

    def __iter__(self):
        yield self.nodes[0]
        for relationship, node in zip(self.relationships, self.nodes[1:]):
            yield relationship
            yield node

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return self.nodes == other.nodes and self.relationships == other.relationships

    def __repr__(self) -> str:
        return f"Path(start={self.start_node!r}, end={self.end_node!r}, length={len(self)})"


# =============================================================================
# LEGACY TRAVERSER API
# =============================================================================

class TraversalPosition:
    """Where a legacy traverser currently is."""

    def __init__(self, path: Path, returned_nodes_count: int):
        self._path = path
        self._count = returned_nodes_count

    def current_node(self) -> RemoteNode:
        return self._path.end_node

    def depth(self) -> int:
        return len(self._path)

    def is_start_node(self) -> bool:
        return len(self._path) == 0

    def not_start_node(self) -> bool:
        return not self.is_start_node()

    def last_relationship_traversed(self) -> Optional[RemoteRelationship]:
        return self._path.last_relationship

    def previous_node(self) -> Optional[RemoteNode]:
        if self._path.last_relationship is None:
            return None
        return self._path.nodes[-2]

    def returned_nodes_count(self) -> int:
        return self._count


ReturnableCallback = Callable[[TraversalPosition], bool]


class Traverser:
    """Iterates the nodes at the end of each returned path."""

    def __init__(self, paths: List[Path], returnable: Optional[ReturnableCallback] = None):
        self._paths = paths
        self._returnable = returnable
        self._count = 0
        self._position: Optional[TraversalPosition] = None

    def current_position(self) -> Optional[TraversalPosition]:
        return self._position

    def __iter__(self) -> Iterator[RemoteNode]:
        for path in self._paths:
            # returnable callbacks see the count of nodes returned so far
            if self._returnable is not None and not self._returnable(TraversalPosition(path, self._count)):
                continue
            self._position = TraversalPosition(path, self._count)
            self._count += 1
            yield path.end_node

    def get_all_nodes(self) -> List[RemoteNode]:
        return list(self)


StopEvaluator = Union[int, ScriptEvaluator, Callable[..., bool]]
ReturnableEvaluator = Union[str, ScriptEvaluator, ReturnableCallback]


def _relationship_pairs(rels: Tuple[Any, ...]) -> List[Tuple[str, Direction]]:
    """Validate alternating ``type, Direction`` varargs."""
    if not rels or len(rels) % 2 != 0:
        raise BadInputError("Expected alternating relationship type and direction arguments")
    pairs = []
    for i in range(0, len(rels), 2):
        relationship_type, direction = rels[i], rels[i + 1]
        if relationship_type is None:
            raise BadInputError(f"Null relationship type at {i}")
        if isinstance(relationship_type, Direction):
            raise BadInputError(f"Expected relationship type at var args pos {i}, found {relationship_type!r}")
        if direction is None:
            raise BadInputError(f"Null direction at {i + 1}")
        if not isinstance(direction, Direction):
            raise BadInputError(f"Expected Direction at var args pos {i + 1}, found {direction!r}")
        pairs.append((type_name(relationship_type), direction))
    return pairs


def legacy_traverse(
    node: RemoteNode,
    order: Order,
    stop_evaluator: StopEvaluator,
    returnable_evaluator: ReturnableEvaluator,
    *rels: Any,
) -> Traverser:
    """
    Map the legacy ``traverse(order, stop, returnable, type, direction, ...)``
    call onto a remote traversal.

    Args:
        node: Start node
        order: Breadth or depth first
        stop_evaluator: Max depth (``int``) or a ``ScriptEvaluator`` prune
        returnable_evaluator: Builtin filter name, ``ScriptEvaluator`` or a
            callable taking a ``TraversalPosition``; callables run locally on
            the paths the service returns
        *rels: Alternating relationship types and ``Direction`` values

    Raises:
        UnsupportedError: If the stop evaluator is a Python callable
        BadInputError: On malformed arguments
    """
    if order is None:
        raise BadInputError("Null order")
    if stop_evaluator is None:
        raise BadInputError("Null stop evaluator")
    if returnable_evaluator is None:
        raise BadInputError("Null returnable evaluator")
    if callable(stop_evaluator) and not isinstance(stop_evaluator, ScriptEvaluator):
        raise UnsupportedError(
            "Stop evaluator callbacks cannot run remotely; use a max depth or a script prune evaluator"
        )

    description = TraversalDescription().order(order)
    for relationship_type, direction in _relationship_pairs(rels):
        description.relationships(relationship_type, direction)

    if isinstance(stop_evaluator, ScriptEvaluator):
        description.prune(stop_evaluator)
    elif isinstance(stop_evaluator, int) and not isinstance(stop_evaluator, bool):
        description.max_depth(stop_evaluator)
    else:
        raise BadInputError(f"Unsupported stop evaluator: {stop_evaluator!r}")

    local_filter: Optional[ReturnableCallback] = None
    if isinstance(returnable_evaluator, ScriptEvaluator):
        description.filter(returnable_evaluator)
    elif isinstance(returnable_evaluator, str):
        description.filter(ScriptEvaluator.builtin(returnable_evaluator.lower()))
    elif callable(returnable_evaluator):
        # the service returns every node; the callback decides locally
        description.filter(ScriptEvaluator.builtin("all"))
        local_filter = returnable_evaluator
    else:
        raise BadInputError(f"Unsupported returnable evaluator: {returnable_evaluator!r}")

    return Traverser(node.gateway.traverse(node, description), local_filter)
