# src/restgraph/orm/__init__.py
"""
restgraph ORM module

Local proxies for remote graph entities plus the pieces built on them:
result conversion, indexes, traversals and query engines.
"""

from restgraph.orm.entities import RemoteEntity
from restgraph.orm.nodes import RemoteNode
from restgraph.orm.relationships import RemoteRelationship
from restgraph.orm.converters import (
    IndexHits,
    QueryResult,
    ResultConverter,
    ResultList,
)
from restgraph.orm.indexes import (
    EXACT_CONFIG,
    FULLTEXT_CONFIG,
    IndexHandle,
    IndexManager,
    RemoteIndex,
)
from restgraph.orm.traversal import (
    Path,
    ScriptEvaluator,
    TraversalDescription,
    TraversalPosition,
    Traverser,
)
from restgraph.orm.query import CypherQueryEngine, GremlinQueryEngine, QueryEngine

__all__ = [
    # Entities
    "RemoteEntity",
    "RemoteNode",
    "RemoteRelationship",

    # Results
    "IndexHits",
    "QueryResult",
    "ResultConverter",
    "ResultList",

    # Indexes
    "EXACT_CONFIG",
    "FULLTEXT_CONFIG",
    "IndexHandle",
    "IndexManager",
    "RemoteIndex",

    # Traversals
    "Path",
    "ScriptEvaluator",
    "TraversalDescription",
    "TraversalPosition",
    "Traverser",

    # Queries
    "CypherQueryEngine",
    "GremlinQueryEngine",
    "QueryEngine",
]
