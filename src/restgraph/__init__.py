# src/restgraph/__init__.py
r"""
restgraph - a remote graph database behind a local graph API

restgraph talks to a graph service over its REST interface while callers
work with nodes, relationships, properties, labels and indexes as if the
graph were in-process:

- Lazy entity proxies with a configurable property refetch window
- Batched writes in one round-trip, with placeholders for not-yet-created entities
- Legacy indexes with unique get-or-create
- Server-side traversals, Cypher and Gremlin with typed results

Example:
    ```python
    from restgraph import Direction, create_graph_database

    with create_graph_database("http://localhost:7474/db/data/", property_refetch_time=5) as db:
        with db.batch():
            alice = db.create_node({"name": "Alice"}, labels=["Person"])
            bob = db.create_node({"name": "Bob"}, labels=["Person"])
            alice.create_relationship_to(bob, "KNOWS", {"since": 2011})

        people = db.index().for_nodes("people")
        people.add(alice, "name", "Alice")

        for knows in alice.get_relationships("KNOWS", direction=Direction.OUTGOING):
            print(knows.end_node["name"], knows["since"])
    ```
"""

__version__ = "0.1.0"

from restgraph.config import RestGraphSettings
from restgraph.exceptions import (
    BadInputError,
    BatchError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RestGraphError,
    TransportFailure,
    UnsupportedError,
)

# Core building blocks
from restgraph.core import (
    Direction,
    HttpTransport,
    IndexKind,
    Order,
    RefetchPolicy,
    RequestResult,
    Transport,
    Uniqueness,
)

# Entities, indexes, traversals
from restgraph.orm import (
    IndexHits,
    IndexManager,
    Path,
    QueryResult,
    RemoteIndex,
    RemoteNode,
    RemoteRelationship,
    ScriptEvaluator,
    TraversalDescription,
)

# Gateway, batches and the database facade
from restgraph.batch import BatchReference, BatchResult, BatchState, BatchTransaction
from restgraph.gateway import GraphGateway
from restgraph.database import GraphDatabase, create_graph_database

__all__ = [
    # Configuration and errors
    "RestGraphSettings",
    "RestGraphError",
    "NotFoundError",
    "ConflictError",
    "BadInputError",
    "UnsupportedError",
    "TransportFailure",
    "InvalidStateError",
    "BatchError",

    # Core
    "Direction",
    "Order",
    "Uniqueness",
    "IndexKind",
    "RefetchPolicy",
    "Transport",
    "HttpTransport",
    "RequestResult",

    # ORM
    "RemoteNode",
    "RemoteRelationship",
    "RemoteIndex",
    "IndexManager",
    "IndexHits",
    "QueryResult",
    "Path",
    "ScriptEvaluator",
    "TraversalDescription",

    # Gateway and batches
    "GraphGateway",
    "BatchTransaction",
    "BatchReference",
    "BatchResult",
    "BatchState",

    # Database
    "GraphDatabase",
    "create_graph_database",

    # Version
    "__version__",
]
