# src/restgraph/core/__init__.py
"""
restgraph core module

Building blocks shared by the entity proxies and the gateway: the transport
collaborator, wire representations, refetch policy and enums.
"""

from restgraph.core.representations import (
    NodeRepresentation,
    PathRepresentation,
    RelationshipRepresentation,
    entity_id_from_uri,
)
from restgraph.core.staleness import RefetchPolicy
from restgraph.core.transport import HttpTransport, RequestResult, Transport
from restgraph.core.types import Direction, IndexKind, Order, Uniqueness

__all__ = [
    "NodeRepresentation",
    "RelationshipRepresentation",
    "PathRepresentation",
    "entity_id_from_uri",
    "RefetchPolicy",
    "HttpTransport",
    "RequestResult",
    "Transport",
    "Direction",
    "IndexKind",
    "Order",
    "Uniqueness",
]
