# src/restgraph/database.py
"""
Database facade: one object per remote graph service.

``GraphDatabase`` owns the settings, the transport and the gateway, and
exposes the graph API of an embedded database handle. Use
``create_graph_database`` to build one from arguments and ``RESTGRAPH_*``
environment variables.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from restgraph.batch import BatchTransaction
from restgraph.config import RestGraphSettings
from restgraph.core.staleness import RefetchPolicy
from restgraph.core.transport import HttpTransport, Transport
from restgraph.exceptions import TransportFailure
from restgraph.gateway import GraphGateway
from restgraph.orm.converters import QueryResult
from restgraph.orm.indexes import IndexManager
from restgraph.orm.nodes import RemoteNode
from restgraph.orm.query import CypherQueryEngine, GremlinQueryEngine
from restgraph.orm.relationships import RemoteRelationship


class GraphDatabase:
    """
    Represents a remote graph database, analogous to an embedded graph
    database handle.

    It holds the connection settings, owns the transport and exposes the
    graph API through a single ``GraphGateway``. A database instance is
    typically created once per service URI and shared by the application.
    """
    def __init__(
        self,
        settings: Optional[RestGraphSettings] = None,
        transport: Optional[Transport] = None,
        refetch_policy: Optional[RefetchPolicy] = None,
    ):
        """
        Initializes the GraphDatabase. No request is sent yet.

        Args:
            settings: Connection settings; read from ``RESTGRAPH_*`` environment
                      variables when omitted.
            transport: Transport to use instead of an ``HttpTransport`` built
                       from the settings.
            refetch_policy: Staleness policy overriding
                            ``settings.property_refetch_time``.
        """
        self.settings: RestGraphSettings = settings or RestGraphSettings()
        self.transport: Transport = transport or HttpTransport(self.settings)
        self.gateway = GraphGateway(self.transport, self.settings, refetch_policy)
        self.cypher = CypherQueryEngine(self.gateway)
        self.gremlin = GremlinQueryEngine(self.gateway)

        self._is_connected: bool = False
        self._connection_lock = threading.Lock()

    @property
    def base_uri(self) -> str:
        return self.gateway.base_uri

    # =============================================================================
    # CONNECTION
    # =============================================================================

    def connect(self) -> None:
        """
        Verifies the service answers on its root URI. Idempotent.

        Raises:
            TransportFailure: If the service cannot be reached.
        """
        with self._connection_lock:
            if self._is_connected:
                return

            logger.info("restgraph: connecting to {}", self.base_uri)
            try:
                self.gateway._request("GET", "")
            except TransportFailure as e:
                logger.error("restgraph: connection to {} failed: {}", self.base_uri, e)
                raise
            self._is_connected = True
            logger.info("restgraph: connected to {}", self.base_uri)

    def close(self) -> None:
        """Releases the transport's connections."""
        with self._connection_lock:
            close = getattr(self.transport, "close", None)
            if close is not None:
                close()
            self._is_connected = False

    @property
    def connected(self) -> bool:
        return self._is_connected

    def __enter__(self) -> "GraphDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # =============================================================================
    # GRAPH API
    # =============================================================================

    def create_node(self, properties: Optional[Dict[str, Any]] = None, labels: Optional[List[str]] = None) -> RemoteNode:
        return self.gateway.create_node(properties, labels)

    def get_node_by_id(self, node_id: int) -> RemoteNode:
        return self.gateway.get_node_by_id(node_id)

    def get_reference_node(self) -> RemoteNode:
        return self.gateway.get_reference_node()

    def get_all_nodes(self) -> List[RemoteNode]:
        """Every node of the database, through a Cypher scan."""
        return list(self.gateway.query("MATCH (n) RETURN n").to(RemoteNode))

    def get_relationship_by_id(self, relationship_id: int) -> RemoteRelationship:
        return self.gateway.get_relationship_by_id(relationship_id)

    def get_relationship_types(self) -> List[str]:
        return self.gateway.get_relationship_types()

    def execute(self, statement: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run a Cypher statement."""
        return self.cypher.query(statement, params)

    def index(self) -> IndexManager:
        return IndexManager(self.gateway)

    def batch(self) -> BatchTransaction:
        """Open a batch on the calling thread; use as a context manager."""
        return self.gateway.batch()

    def execute_batch(self, callback: Callable[[GraphGateway], Any]) -> Any:
        """Run ``callback`` inside a batch, commit, and return its result."""
        return self.gateway.execute_batch(callback)

    @property
    def property_refetch_time(self) -> Optional[float]:
        """Seconds cached properties and labels are served; None caches until invalidated."""
        return self.gateway.refetch_policy.window

    @property_refetch_time.setter
    def property_refetch_time(self, seconds: Optional[float]) -> None:
        self.gateway.refetch_policy = RefetchPolicy(seconds, self.gateway.refetch_policy.clock)

    def __repr__(self) -> str:
        return f"GraphDatabase(base_uri='{self.base_uri}', connected={self.connected})"


def create_graph_database(
    base_uri: Optional[str] = None,
    auth: Optional[Tuple[str, str]] = None,
    **overrides: Any
) -> GraphDatabase:
    """
    Creates and returns a GraphDatabase instance.

    Settings not given here come from ``RESTGRAPH_*`` environment variables
    and then from the defaults.

    Args:
        base_uri: Service root (e.g., "http://localhost:7474/db/data/").
        auth: A tuple of (username, password).
        **overrides: Other ``RestGraphSettings`` fields
                     (e.g., property_refetch_time, user_agent, timeout).

    Returns:
        A GraphDatabase instance.
    """
    values: Dict[str, Any] = dict(overrides)
    if base_uri is not None:
        values["base_uri"] = base_uri
    if auth is not None:
        values["username"], values["password"] = auth
    settings = RestGraphSettings(**values)
    logger.debug("restgraph: creating GraphDatabase for {}", settings.base_uri)
    return GraphDatabase(settings)
