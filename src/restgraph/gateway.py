# src/restgraph/gateway.py
"""
restgraph GraphGateway - single coordination point for remote reads and writes

Every proxy, index and query talks to the service through one gateway. The
gateway decides, per write, whether to send it now or to record it in the
batch open on the calling thread, and it maps HTTP failures onto the
restgraph error taxonomy.
"""

from __future__ import annotations

import threading
import weakref
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union
from urllib.parse import quote, urlencode

from loguru import logger

from restgraph.batch import BatchReference, BatchState, BatchTransaction, resolve_value
from restgraph.config import RestGraphSettings
from restgraph.core.staleness import RefetchPolicy
from restgraph.core.transport import RequestResult, Transport
from restgraph.core.types import IndexKind
from restgraph.exceptions import (
    BadInputError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RestGraphError,
    UnsupportedError,
    error_for_status,
)
from restgraph.orm.converters import (
    IndexHits,
    QueryResult,
    ResultConverter,
    convert_index_hits,
)
from restgraph.orm.entities import RemoteEntity
from restgraph.orm.indexes import EXACT_CONFIG, IndexHandle, RemoteIndex
from restgraph.orm.nodes import RemoteNode, type_name
from restgraph.orm.relationships import RemoteRelationship
from restgraph.orm.traversal import Path, TraversalDescription

T = TypeVar("T")

CYPHER_PATH = "cypher"
GREMLIN_PATH = "ext/GremlinPlugin/graphdb/execute_script"


def _quoted(value: Any) -> str:
    return quote(str(value), safe="")


def _with_query(path: str, params: Optional[Dict[str, Any]]) -> str:
    if not params:
        return path
    return f"{path}?{urlencode(params)}"


class GraphGateway:
    """
    Request gateway for one remote graph service.

    Args:
        transport: Anything implementing the ``Transport`` protocol
        settings: Connection settings; defaults are read from the environment
        refetch_policy: Staleness policy shared by every proxy of this gateway;
                        built from ``settings.property_refetch_time`` if omitted
    """

    def __init__(
        self,
        transport: Transport,
        settings: Optional[RestGraphSettings] = None,
        refetch_policy: Optional[RefetchPolicy] = None,
    ):
        self.transport = transport
        self.settings = settings or RestGraphSettings()
        self.refetch_policy = refetch_policy or RefetchPolicy(self.settings.property_refetch_time)
        self.converter = ResultConverter(self)

        self._local = threading.local()
        self._nodes: "weakref.WeakValueDictionary[str, RemoteNode]" = weakref.WeakValueDictionary()
        self._relationships: "weakref.WeakValueDictionary[str, RemoteRelationship]" = weakref.WeakValueDictionary()
        self._registry_lock = threading.Lock()

    @property
    def base_uri(self) -> str:
        return self.transport.base_uri

    # =============================================================================
    # URIS
    # =============================================================================

    def owns(self, uri: str) -> bool:
        """True if ``uri`` points into this gateway's service."""
        return uri.startswith(self.base_uri)

    def relative(self, uri: str) -> str:
        """Path of ``uri`` relative to the service root, with a leading slash."""
        if uri.startswith(("http://", "https://")):
            if not self.owns(uri):
                raise BadInputError(f"{uri} does not belong to {self.base_uri}")
            uri = uri[len(self.base_uri):]
        return "/" + uri.lstrip("/")

    def _check_entity(self, entity: RemoteEntity) -> None:
        """Reject entities of another service or of a batch other than the open one."""
        if not isinstance(entity, RemoteEntity):
            raise BadInputError(f"Expected a node or relationship, got {entity!r}")
        if entity.is_pending:
            if entity.reference.batch is not self.current_batch:
                raise BadInputError(f"{entity!r} belongs to another batch")
        elif not self.owns(entity.uri):
            raise BadInputError(f"{entity!r} belongs to another service than {self.base_uri}")

    # =============================================================================
    # REQUESTS
    # =============================================================================

    def _request(
        self,
        method: str,
        uri: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> RequestResult:
        """Send one request now; non-2xx statuses raise the matching error."""
        result = self.transport.request(method, uri, body, params)
        if not result.is_success:
            raise error_for_status(result.status, result.body, f"{method} {uri}")
        return result

    def _write(
        self,
        method: str,
        target: Union[str, RemoteEntity],
        body: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        entity_factory: Optional[Callable[[BatchReference], RemoteEntity]] = None,
        materialize: Optional[Callable[[Any], Any]] = None,
        effect: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """
        Send a write now, or record it in the open batch.

        Args:
            method: HTTP verb
            target: Path or entity to address
            body: JSON body; may contain entities
            params: Query string parameters
            entity_factory: Pending proxy builder for batched creations
            materialize: Turns the result (status/body/location) into a value
            effect: Cache update, run with the value once the write succeeded

        Returns:
            The materialized value; in batch mode the pending proxy when
            ``entity_factory`` is given, else the ``BatchReference``
        """
        batch = self.current_batch
        if batch is not None:
            reference = batch.enqueue(
                method,
                _with_query(target, params) if isinstance(target, str) else target,
                body,
                entity_factory=entity_factory,
                materialize=materialize,
                effect=effect,
            )
            return reference.entity if reference.entity is not None else reference

        uri = target.uri if isinstance(target, RemoteEntity) else target
        result = self._request(method, uri, resolve_value(body), params)
        value = materialize(result) if materialize is not None else result.body
        if effect is not None:
            effect(value)
        return value

    def _send_batch(self, payload: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        result = self._request("POST", "batch", payload)
        if not isinstance(result.body, list):
            raise RestGraphError(f"Unexpected batch response: {result.body!r}", status=result.status, body=result.body)
        return result.body

    # =============================================================================
    # BATCHES
    # =============================================================================

    @property
    def current_batch(self) -> Optional[BatchTransaction]:
        """The batch open on the calling thread, if any."""
        return getattr(self._local, "batch", None)

    def batch(self) -> BatchTransaction:
        """
        Open a batch on the calling thread.

        Raises:
            InvalidStateError: If a batch is already open on this thread
        """
        if self.current_batch is not None:
            raise InvalidStateError("A batch is already open on this thread")
        batch = BatchTransaction(self)
        self._local.batch = batch
        logger.debug("restgraph: batch opened")
        return batch

    def _batch_finished(self, batch: BatchTransaction) -> None:
        if self.current_batch is batch:
            self._local.batch = None

    def execute_batch(self, callback: Callable[[GraphGateway], T]) -> T:
        """
        Run ``callback`` inside a new batch and commit it.

        A ``BatchReference`` returned by the callback is replaced by its
        committed value.
        """
        with self.batch() as batch:
            value = callback(self)
        if batch.state != BatchState.COMMITTED:
            raise InvalidStateError(f"Batch ended {batch.state.value}")
        if isinstance(value, BatchReference):
            return value.value
        return value

    # =============================================================================
    # PROXY REGISTRY
    # =============================================================================

    def _register(self, entity: RemoteEntity) -> RemoteEntity:
        registry = self._nodes if isinstance(entity, RemoteNode) else self._relationships
        with self._registry_lock:
            registry[entity.uri] = entity
        return entity

    def _forget(self, entity: RemoteEntity) -> None:
        registry = self._nodes if isinstance(entity, RemoteNode) else self._relationships
        with self._registry_lock:
            registry.pop(entity.uri, None)

    def node_for(self, uri: str) -> RemoteNode:
        """Proxy for ``uri`` without fetching it."""
        node = self._nodes.get(uri)
        if node is None:
            node = self._register(RemoteNode(self, uri))
        return node

    def relationship_for(self, uri: str) -> RemoteRelationship:
        relationship = self._relationships.get(uri)
        if relationship is None:
            relationship = self._register(RemoteRelationship(self, uri))
        return relationship

    def node_from_document(self, document: Dict[str, Any]) -> RemoteNode:
        """Proxy for a node document; an existing proxy gets its caches refreshed."""
        representation = RemoteNode.representation_class.model_validate(document)
        node = self._nodes.get(representation.self_uri)
        if node is None:
            return self._register(RemoteNode.from_document(document, self))
        node._apply_representation(representation)
        return node

    def relationship_from_document(self, document: Dict[str, Any]) -> RemoteRelationship:
        representation = RemoteRelationship.representation_class.model_validate(document)
        relationship = self._relationships.get(representation.self_uri)
        if relationship is None:
            return self._register(RemoteRelationship.from_document(document, self))
        relationship._apply_representation(representation)
        return relationship

    def fetch_entity(self, uri: str) -> Dict[str, Any]:
        return self._request("GET", uri).body

    # =============================================================================
    # NODES AND RELATIONSHIPS
    # =============================================================================

    @staticmethod
    def _validate_properties(properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if properties is None:
            return {}
        if not isinstance(properties, dict):
            raise BadInputError(f"Properties must be a dict, got {type(properties).__name__}")
        for key in properties:
            if not isinstance(key, str) or not key:
                raise BadInputError(f"Invalid property key: {key!r}")
        # the service has no null property values
        return {key: value for key, value in properties.items() if value is not None}

    @staticmethod
    def _validate_id(entity_id: Any) -> int:
        if not isinstance(entity_id, int) or isinstance(entity_id, bool) or entity_id < 0:
            raise BadInputError(f"Invalid entity id: {entity_id!r}")
        return entity_id

    def create_node(
        self,
        properties: Optional[Dict[str, Any]] = None,
        labels: Optional[List[str]] = None,
    ) -> RemoteNode:
        """
        Create a node, optionally with labels.

        Inside a batch the returned node is pending until commit.
        """
        properties = self._validate_properties(properties)
        node = self._write(
            "POST",
            "node",
            properties,
            entity_factory=lambda reference: RemoteNode.pending(reference, self),
            materialize=lambda result: self.node_from_document(result.body),
        )
        for label in labels or ():
            self.add_label(node, label)
        logger.debug("restgraph: created node {}", node)
        return node

    def get_node(self, uri: str) -> RemoteNode:
        if not self.owns(uri):
            raise BadInputError(f"{uri} does not belong to {self.base_uri}")
        return self.node_from_document(self.fetch_entity(uri))

    def get_node_by_id(self, node_id: int) -> RemoteNode:
        """
        Raises:
            NotFoundError: If no node has this id
        """
        return self.node_from_document(self.fetch_entity(f"node/{self._validate_id(node_id)}"))

    def get_reference_node(self) -> RemoteNode:
        root = self._request("GET", "").body or {}
        uri = root.get("reference_node") if isinstance(root, dict) else None
        if not uri:
            raise NotFoundError("Service exposes no reference node")
        return self.get_node(uri)

    def get_relationship(self, uri: str) -> RemoteRelationship:
        if not self.owns(uri):
            raise BadInputError(f"{uri} does not belong to {self.base_uri}")
        return self.relationship_from_document(self.fetch_entity(uri))

    def get_relationship_by_id(self, relationship_id: int) -> RemoteRelationship:
        path = f"relationship/{self._validate_id(relationship_id)}"
        return self.relationship_from_document(self.fetch_entity(path))

    def get_relationship_types(self) -> List[str]:
        return list(self._request("GET", "relationship/types").body or [])

    def create_relationship(
        self,
        start: RemoteNode,
        end: RemoteNode,
        relationship_type: Any,
        properties: Optional[Dict[str, Any]] = None,
    ) -> RemoteRelationship:
        """
        Create ``start -[type]-> end``.

        Raises:
            BadInputError: If an end node belongs to another service or batch
        """
        self._check_entity(start)
        self._check_entity(end)
        name = type_name(relationship_type)
        body = {"to": end, "type": name, "data": self._validate_properties(properties)}
        return self._write(
            "POST",
            f"{start.locator}/relationships",
            body,
            entity_factory=lambda reference: RemoteRelationship.pending(
                reference, self, relationship_type=name, start_node=start, end_node=end
            ),
            materialize=lambda result: self.relationship_from_document(result.body),
        )

    def delete(self, entity: RemoteEntity) -> None:
        self._check_entity(entity)
        self._write("DELETE", entity.locator, effect=lambda _: self._forget(entity))

    def get_relationships(self, path: str) -> List[RemoteRelationship]:
        documents = self._request("GET", path).body or []
        return [self.relationship_from_document(document) for document in documents]

    # =============================================================================
    # PROPERTIES
    # =============================================================================

    def _property_path(self, entity: RemoteEntity, key: Optional[str] = None) -> str:
        path = f"{entity.locator}/properties"
        if key is not None:
            if not isinstance(key, str) or not key:
                raise BadInputError(f"Invalid property key: {key!r}")
            path = f"{path}/{_quoted(key)}"
        return path

    def get_properties(self, entity: RemoteEntity) -> Dict[str, Any]:
        self._check_entity(entity)
        return dict(self._request("GET", self._property_path(entity)).body or {})

    def set_property(self, entity: RemoteEntity, key: str, value: Any) -> None:
        self._check_entity(entity)
        self._write(
            "PUT",
            self._property_path(entity, key),
            value,
            effect=lambda _: entity._cache_property(key, value),
        )

    def set_properties(self, entity: RemoteEntity, properties: Dict[str, Any]) -> None:
        self._check_entity(entity)
        properties = self._validate_properties(properties)
        self._write(
            "PUT",
            self._property_path(entity),
            properties,
            effect=lambda _: entity._replace_properties(properties),
        )

    def remove_property(self, entity: RemoteEntity, key: str) -> None:
        """
        Raises:
            NotFoundError: If the property is not set remotely
        """
        self._check_entity(entity)
        self._write(
            "DELETE",
            self._property_path(entity, key),
            effect=lambda _: entity._uncache_property(key),
        )

    # =============================================================================
    # LABELS
    # =============================================================================

    def _labels_path(self, node: RemoteNode) -> str:
        if node.is_pending:
            return f"{node.locator}/labels"
        return node.labels_path()

    @staticmethod
    def _validate_label(label: Any) -> str:
        if not isinstance(label, str) or not label.strip():
            raise BadInputError(f"Invalid label: {label!r}")
        return label

    def get_labels(self, path: str) -> List[str]:
        return list(self._request("GET", path).body or [])

    def add_label(self, node: RemoteNode, label: str) -> None:
        self._check_entity(node)
        label = self._validate_label(label)
        self._write("POST", self._labels_path(node), label, effect=lambda _: node._cache_label(label))

    def remove_label(self, node: RemoteNode, label: str) -> None:
        self._check_entity(node)
        label = self._validate_label(label)
        self._write(
            "DELETE",
            f"{self._labels_path(node)}/{_quoted(label)}",
            effect=lambda _: node._uncache_label(label),
        )

    # =============================================================================
    # INDEXES
    # =============================================================================

    def index_configs(self, kind: IndexKind) -> Dict[str, Dict[str, str]]:
        """Name to configuration of every index of ``kind``."""
        body = self._request("GET", f"index/{IndexKind(kind).value}").body
        if not isinstance(body, dict):
            return {}
        return {
            name: {key: str(value) for key, value in (config or {}).items() if key != "template"}
            for name, config in body.items()
        }

    def create_index(self, kind: IndexKind, name: str, config: Optional[Dict[str, str]] = None) -> RemoteIndex:
        """
        Create an index, or return the existing one.

        Args:
            kind: Node or relationship index
            name: Index name
            config: Configuration; ``None`` accepts whatever exists. ``None``
                    and an empty dict create an exact index

        Raises:
            ConflictError: If the index exists with a different configuration
        """
        kind = IndexKind(kind)
        requested = IndexHandle(kind=kind, name=name, config=config or EXACT_CONFIG)
        existing = self.index_configs(kind).get(name)
        if existing is not None:
            if config is not None and any(existing.get(k) != v for k, v in requested.config.items()):
                raise ConflictError(
                    f"{kind.value} index '{name}' exists with config {existing}, requested {requested.config}"
                )
            return RemoteIndex(IndexHandle(kind=kind, name=name, config=existing), self)

        config = dict(requested.config)
        self._request("POST", f"index/{kind.value}", {"name": name, "config": config})
        logger.info("restgraph: created {} index '{}' {}", kind.value, name, config)
        return RemoteIndex(IndexHandle(kind=kind, name=name, config=config), self)

    def get_index(self, name: str) -> RemoteIndex:
        """
        Raises:
            NotFoundError: If neither a node nor a relationship index has this name
        """
        for kind in (IndexKind.NODE, IndexKind.RELATIONSHIP):
            config = self.index_configs(kind).get(name)
            if config is not None:
                return RemoteIndex(IndexHandle(kind=kind, name=name, config=config), self)
        raise NotFoundError(f"No index named '{name}'")

    def delete_index(self, index: RemoteIndex) -> None:
        self._request("DELETE", self._index_path(index))
        logger.info("restgraph: deleted {} index '{}'", index.kind.value, index.name)

    @staticmethod
    def _index_path(index: RemoteIndex, *segments: Any) -> str:
        path = f"index/{index.kind.value}/{_quoted(index.name)}"
        for segment in segments:
            path = f"{path}/{_quoted(segment)}"
        return path

    def _check_indexable(self, index: RemoteIndex, entity: RemoteEntity) -> None:
        self._check_entity(entity)
        if not isinstance(entity, index.entity_type):
            raise BadInputError(f"{entity!r} cannot be added to {index.kind.value} index '{index.name}'")

    def add_to_index(self, index: RemoteIndex, entity: RemoteEntity, key: str, value: Any) -> None:
        self._check_indexable(index, entity)
        self._write("POST", self._index_path(index), {"key": key, "value": value, "uri": entity})

    def remove_from_index(
        self, index: RemoteIndex, entity: RemoteEntity, key: Optional[str] = None, value: Any = None
    ) -> None:
        self._check_indexable(index, entity)
        if value is not None and key is None:
            raise BadInputError("Removing by value requires a key")
        segments = [s for s in (key, value) if s is not None]
        self._write("DELETE", self._index_path(index, *segments, entity.id))

    def index_get(self, index: RemoteIndex, key: str, value: Any) -> IndexHits:
        documents = self._request("GET", self._index_path(index, key, value)).body
        return convert_index_hits(documents, self.converter, index.entity_type)

    def index_query(self, index: RemoteIndex, key_or_query: Any, query: Any = None) -> IndexHits:
        if query is None:
            path, text = self._index_path(index), key_or_query
        else:
            path, text = self._index_path(index, key_or_query), query
        documents = self._request("GET", path, params={"query": str(text)}).body
        return convert_index_hits(documents, self.converter, index.entity_type)

    def _require_kind(self, index: RemoteIndex, kind: IndexKind) -> None:
        if index.kind != kind:
            raise BadInputError(f"'{index.name}' is not a {kind.value} index")

    def get_or_create_unique_node(
        self,
        index: RemoteIndex,
        key: str,
        value: Any,
        properties: Optional[Dict[str, Any]] = None,
    ) -> RemoteNode:
        """
        Return the node indexed under ``key=value``, creating it if absent.

        One request; the service guarantees at most one node per key/value.
        """
        self._require_kind(index, IndexKind.NODE)
        body = {"key": key, "value": value, "properties": self._validate_properties(properties)}
        return self._write(
            "POST",
            self._index_path(index),
            body,
            params={"uniqueness": "get_or_create"},
            entity_factory=lambda reference: RemoteNode.pending(reference, self),
            materialize=lambda result: self.node_from_document(result.body),
        )

    def get_or_create_unique_relationship(
        self,
        index: RemoteIndex,
        key: str,
        value: Any,
        start: RemoteNode,
        end: RemoteNode,
        relationship_type: Any,
        properties: Optional[Dict[str, Any]] = None,
    ) -> RemoteRelationship:
        self._require_kind(index, IndexKind.RELATIONSHIP)
        self._check_entity(start)
        self._check_entity(end)
        name = type_name(relationship_type)
        body = {
            "key": key,
            "value": value,
            "start": start,
            "end": end,
            "type": name,
            "properties": self._validate_properties(properties),
        }
        return self._write(
            "POST",
            self._index_path(index),
            body,
            params={"uniqueness": "get_or_create"},
            entity_factory=lambda reference: RemoteRelationship.pending(reference, self, relationship_type=name),
            materialize=lambda result: self.relationship_from_document(result.body),
        )

    # =============================================================================
    # TRAVERSALS AND QUERIES
    # =============================================================================

    def traverse(self, node: RemoteNode, description: TraversalDescription) -> List[Path]:
        """Run a traversal from ``node`` on the service and return its paths."""
        self._check_entity(node)
        documents = self._request("POST", f"{node.uri}/traverse/path", description.to_wire()).body or []
        return [Path.from_document(document, self) for document in documents]

    def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Execute a Cypher statement remotely."""
        if not isinstance(statement, str) or not statement.strip():
            raise BadInputError("Query statement cannot be empty")
        body = self._request("POST", CYPHER_PATH, {"query": statement, "params": params or {}}).body
        return QueryResult.from_document(body, self.converter)

    def execute_script(self, script: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """
        Execute a Gremlin script remotely.

        Raises:
            UnsupportedError: If the service has no Gremlin plugin
        """
        if not isinstance(script, str) or not script.strip():
            raise BadInputError("Script cannot be empty")
        try:
            body = self._request("POST", GREMLIN_PATH, {"script": script, "params": params or {}}).body
        except NotFoundError as e:
            raise UnsupportedError("Gremlin plugin is not installed on the service") from e
        return QueryResult.from_values(body, self.converter)

    def __repr__(self) -> str:
        return f"GraphGateway(base_uri='{self.base_uri}', refetch={self.refetch_policy})"
