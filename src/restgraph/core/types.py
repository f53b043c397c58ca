from enum import Enum


class Direction(str, Enum):
    """Relationship direction as seen from a node."""

    OUTGOING = "out"
    INCOMING = "in"
    BOTH = "all"

    @property
    def long_name(self) -> str:
        """Prefix of the node's structural-data key, e.g. ``outgoing_relationships``."""
        return {"out": "outgoing", "in": "incoming", "all": "all"}[self.value]


class Order(str, Enum):
    """Traversal order."""

    BREADTH_FIRST = "breadth_first"
    DEPTH_FIRST = "depth_first"


class Uniqueness(str, Enum):
    NONE = "none"
    NODE_GLOBAL = "node_global"
    NODE_PATH = "node_path"
    RELATIONSHIP_GLOBAL = "relationship_global"
    RELATIONSHIP_PATH = "relationship_path"


class IndexKind(str, Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"
