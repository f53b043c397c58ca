# tests/conftest.py

import re
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote

import pytest

from restgraph.config import RestGraphSettings
from restgraph.core.staleness import RefetchPolicy
from restgraph.core.transport import RequestResult
from restgraph.database import GraphDatabase
from restgraph.gateway import GraphGateway

# --- Constants for testing ---
FAKE_BASE_URI = "http://fakegraph:7474/db/data/"
OTHER_BASE_URI = "http://othergraph:7474/db/data/"

PLACEHOLDER = re.compile(r"\{(\d+)\}")

Reply = Tuple[int, Any, Optional[str]]


class FakeClock:
    """Manually advanced time source for refetch policies."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGraphServer:
    """
    In-memory graph service speaking the REST dialect the gateway uses.

    Implements the ``Transport`` protocol directly. Batches execute their
    operations in order, substitute ``{n}`` placeholders with the location of
    operation ``n``, and stop at the first failing operation (earlier
    operations stay applied, as a streaming service reports them).
    """

    def __init__(self, base_uri: str = FAKE_BASE_URI, reference_node: bool = True):
        self.base_uri = base_uri
        self.nodes: Dict[int, Dict[str, Any]] = {}
        self.relationships: Dict[int, Dict[str, Any]] = {}
        self.indexes: Dict[str, Dict[str, Dict[str, Any]]] = {"node": {}, "relationship": {}}
        self.requests: List[Tuple[str, str, Any]] = []
        self.batches: List[List[Dict[str, Any]]] = []
        self.cypher_handlers: Dict[str, Callable[[Dict[str, Any]], Tuple[List[str], List[List[Any]]]]] = {
            "MATCH (n) RETURN n": lambda params: (
                ["n"], [[self.node_doc(node_id)] for node_id in sorted(self.nodes)]
            ),
        }
        self.gremlin_handlers: Optional[Dict[str, Callable[[Dict[str, Any]], Any]]] = None
        self.fail_batches = False
        self._next_node = 0
        self._next_relationship = 0
        if reference_node:
            self.add_node()

    # =============================================================================
    # DIRECT STATE ACCESS
    # =============================================================================

    def add_node(self, properties: Optional[Dict[str, Any]] = None, labels: Optional[List[str]] = None) -> int:
        node_id = self._next_node
        self._next_node += 1
        self.nodes[node_id] = {"props": dict(properties or {}), "labels": list(labels or [])}
        return node_id

    def add_relationship(self, start: int, end: int, rel_type: str, properties: Optional[Dict[str, Any]] = None) -> int:
        rel_id = self._next_relationship
        self._next_relationship += 1
        self.relationships[rel_id] = {
            "start": start,
            "end": end,
            "type": rel_type,
            "props": dict(properties or {}),
        }
        return rel_id

    def node_uri(self, node_id: int) -> str:
        return f"{self.base_uri}node/{node_id}"

    def relationship_uri(self, rel_id: int) -> str:
        return f"{self.base_uri}relationship/{rel_id}"

    def node_doc(self, node_id: int) -> Dict[str, Any]:
        uri = self.node_uri(node_id)
        node = self.nodes[node_id]
        return {
            "self": uri,
            "data": dict(node["props"]),
            "properties": f"{uri}/properties",
            "property": f"{uri}/properties/{{key}}",
            "all_relationships": f"{uri}/relationships/all",
            "incoming_relationships": f"{uri}/relationships/in",
            "outgoing_relationships": f"{uri}/relationships/out",
            "create_relationship": f"{uri}/relationships",
            "labels": f"{uri}/labels",
            "traverse": f"{uri}/traverse/{{returnType}}",
            "metadata": {"id": node_id, "labels": list(node["labels"])},
        }

    def relationship_doc(self, rel_id: int) -> Dict[str, Any]:
        uri = self.relationship_uri(rel_id)
        rel = self.relationships[rel_id]
        return {
            "self": uri,
            "data": dict(rel["props"]),
            "properties": f"{uri}/properties",
            "start": self.node_uri(rel["start"]),
            "end": self.node_uri(rel["end"]),
            "type": rel["type"],
            "metadata": {"id": rel_id, "type": rel["type"]},
        }

    def requests_to(self, method: str, prefix: str = "") -> List[Tuple[str, str, Any]]:
        return [r for r in self.requests if r[0] == method and r[1].startswith(prefix)]

    # =============================================================================
    # TRANSPORT PROTOCOL
    # =============================================================================

    def request(self, method: str, uri: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> RequestResult:
        path, query = self._split(uri, params)
        self.requests.append((method, path, body))
        status, reply, location = self._dispatch(method, path, query, body)
        return RequestResult(status=status, body=reply, location=location)

    def _split(self, uri: str, params: Optional[Dict[str, Any]]) -> Tuple[str, Dict[str, str]]:
        if uri.startswith(self.base_uri):
            uri = uri[len(self.base_uri):]
        elif uri.startswith(("http://", "https://")):
            raise AssertionError(f"Request for a foreign service: {uri}")
        uri = uri.lstrip("/")
        query: Dict[str, str] = {}
        if "?" in uri:
            uri, query_string = uri.split("?", 1)
            query = {key: values[0] for key, values in parse_qs(query_string).items()}
        query.update({key: str(value) for key, value in (params or {}).items()})
        return uri, query

    @staticmethod
    def _error(status: int, message: str) -> Reply:
        return status, {"message": message, "exception": "FakeGraphException"}, None

    def _dispatch(self, method: str, path: str, query: Dict[str, str], body: Any) -> Reply:
        segments = [unquote(s) for s in path.split("/")] if path else []
        if not segments:
            return 200, {
                "node": f"{self.base_uri}node",
                "reference_node": self.node_uri(0) if 0 in self.nodes else None,
                "batch": f"{self.base_uri}batch",
                "cypher": f"{self.base_uri}cypher",
            }, None
        head = segments[0]
        if head == "batch" and method == "POST":
            return self._batch(body)
        if head == "cypher" and method == "POST":
            return self._cypher(body)
        if segments == ["ext", "GremlinPlugin", "graphdb", "execute_script"] and method == "POST":
            return self._gremlin(body)
        if head == "node":
            return self._node(method, segments[1:], body)
        if head == "relationship":
            return self._relationship(method, segments[1:], body)
        if head == "index":
            return self._index(method, segments[1:], query, body)
        return self._error(404, f"No such resource: {path}")

    # =============================================================================
    # NODES, RELATIONSHIPS, PROPERTIES, LABELS
    # =============================================================================

    def _properties(self, method: str, store: Dict[str, Any], rest: List[str], body: Any) -> Reply:
        props = store["props"]
        if not rest:
            if method == "GET":
                return 200, dict(props), None
            if method == "PUT":
                store["props"] = dict(body or {})
                return 204, None, None
            if method == "DELETE":
                props.clear()
                return 204, None, None
        elif len(rest) == 1:
            key = rest[0]
            if method == "PUT":
                if body is None:
                    return self._error(400, "Property values cannot be null")
                props[key] = body
                return 204, None, None
            if key not in props:
                return self._error(404, f"Property '{key}' not found")
            if method == "GET":
                return 200, props[key], None
            if method == "DELETE":
                del props[key]
                return 204, None, None
        return self._error(405, f"{method} not allowed on properties")

    def _node_id(self, text: str) -> Optional[int]:
        try:
            node_id = int(text)
        except ValueError:
            return None
        return node_id if node_id in self.nodes else None

    def _uri_to_node_id(self, uri: Any) -> Optional[int]:
        if not isinstance(uri, str) or not uri.startswith(f"{self.base_uri}node/"):
            return None
        return self._node_id(uri.rsplit("/", 1)[-1])

    def _node(self, method: str, rest: List[str], body: Any) -> Reply:
        if not rest:
            if method == "POST":
                node_id = self.add_node(body)
                return 201, self.node_doc(node_id), self.node_uri(node_id)
            return self._error(405, "Method not allowed")
        node_id = self._node_id(rest[0])
        if node_id is None:
            return self._error(404, f"Node {rest[0]} not found")
        node = self.nodes[node_id]
        rest = rest[1:]
        if not rest:
            if method == "GET":
                return 200, self.node_doc(node_id), None
            if method == "DELETE":
                if any(node_id in (r["start"], r["end"]) for r in self.relationships.values()):
                    return self._error(409, f"Node {node_id} still has relationships")
                del self.nodes[node_id]
                self._unindex("node", node_id)
                return 204, None, None
        elif rest[0] == "properties":
            return self._properties(method, node, rest[1:], body)
        elif rest[0] == "labels":
            if len(rest) == 1 and method == "GET":
                return 200, list(node["labels"]), None
            if len(rest) == 1 and method == "POST":
                for label in [body] if isinstance(body, str) else list(body or []):
                    if label not in node["labels"]:
                        node["labels"].append(label)
                return 204, None, None
            if len(rest) == 2 and method == "DELETE":
                if rest[1] in node["labels"]:
                    node["labels"].remove(rest[1])
                return 204, None, None
        elif rest[0] == "relationships":
            if len(rest) == 1 and method == "POST":
                end_id = self._uri_to_node_id((body or {}).get("to"))
                if end_id is None:
                    return self._error(400, f"Invalid end node: {(body or {}).get('to')}")
                rel_id = self.add_relationship(node_id, end_id, body["type"], body.get("data"))
                return 201, self.relationship_doc(rel_id), self.relationship_uri(rel_id)
            if len(rest) in (2, 3) and method == "GET":
                direction = rest[1]
                types = rest[2].split("&") if len(rest) == 3 else None
                docs = []
                for rel_id, rel in sorted(self.relationships.items()):
                    if types is not None and rel["type"] not in types:
                        continue
                    outgoing = rel["start"] == node_id
                    incoming = rel["end"] == node_id
                    if (direction == "out" and outgoing) or (direction == "in" and incoming) or (
                        direction == "all" and (outgoing or incoming)
                    ):
                        docs.append(self.relationship_doc(rel_id))
                return 200, docs, None
        elif rest == ["traverse", "path"] and method == "POST":
            return self._traverse(node_id, body or {})
        return self._error(405, f"{method} not allowed")

    def _relationship(self, method: str, rest: List[str], body: Any) -> Reply:
        if rest == ["types"] and method == "GET":
            return 200, sorted({r["type"] for r in self.relationships.values()}), None
        if not rest:
            return self._error(405, "Method not allowed")
        try:
            rel_id = int(rest[0])
        except ValueError:
            rel_id = None
        if rel_id not in self.relationships:
            return self._error(404, f"Relationship {rest[0]} not found")
        rest = rest[1:]
        if not rest:
            if method == "GET":
                return 200, self.relationship_doc(rel_id), None
            if method == "DELETE":
                del self.relationships[rel_id]
                self._unindex("relationship", rel_id)
                return 204, None, None
        elif rest[0] == "properties":
            return self._properties(method, self.relationships[rel_id], rest[1:], body)
        return self._error(405, f"{method} not allowed")

    # =============================================================================
    # INDEXES
    # =============================================================================

    def _entity_doc(self, kind: str, entity_id: int) -> Dict[str, Any]:
        return self.node_doc(entity_id) if kind == "node" else self.relationship_doc(entity_id)

    def _unindex(self, kind: str, entity_id: int) -> None:
        for index in self.indexes[kind].values():
            index["entries"] = [e for e in index["entries"] if e[2] != entity_id]

    def _hits(self, kind: str, entries: List[Tuple[str, str, int]]) -> Reply:
        seen: List[int] = []
        for _, _, entity_id in entries:
            if entity_id not in seen:
                seen.append(entity_id)
        return 200, [self._entity_doc(kind, entity_id) for entity_id in seen], None

    @staticmethod
    def _matches(pattern: str, value: str) -> bool:
        if pattern.endswith("*"):
            return value.startswith(pattern[:-1])
        return value == pattern

    def _index(self, method: str, rest: List[str], query: Dict[str, str], body: Any) -> Reply:
        if not rest or rest[0] not in self.indexes:
            return self._error(404, "Unknown index kind")
        kind = rest[0]
        indexes = self.indexes[kind]
        if len(rest) == 1:
            if method == "GET":
                if not indexes:
                    return 204, None, None
                return 200, {
                    name: dict(index["config"], template=f"{self.base_uri}index/{kind}/{name}/{{key}}/{{value}}")
                    for name, index in indexes.items()
                }, None
            if method == "POST":
                name = body["name"]
                config = dict(body.get("config") or {"provider": "lucene", "type": "exact"})
                if name in indexes and indexes[name]["config"] != config:
                    return self._error(409, f"Index '{name}' exists with another configuration")
                indexes.setdefault(name, {"config": config, "entries": []})
                return 201, dict(config, template=f"{self.base_uri}index/{kind}/{name}/{{key}}/{{value}}"), None
            return self._error(405, "Method not allowed")

        name = rest[1]
        if name not in indexes:
            return self._error(404, f"Index '{name}' not found")
        index = indexes[name]
        entries = index["entries"]
        rest = rest[2:]

        if not rest:
            if method == "DELETE":
                del indexes[name]
                return 204, None, None
            if method == "POST" and query.get("uniqueness") == "get_or_create":
                return self._get_or_create(kind, index, body)
            if method == "POST":
                entity_id = self._id_from_uri(kind, body.get("uri"))
                if entity_id is None:
                    return self._error(400, f"Cannot index {body.get('uri')}")
                entry = (body["key"], str(body["value"]), entity_id)
                if entry not in entries:
                    entries.append(entry)
                return 201, self._entity_doc(kind, entity_id), None
            if method == "GET" and "query" in query:
                key, _, pattern = query["query"].partition(":")
                return self._hits(kind, [e for e in entries if e[0] == key and self._matches(pattern, e[1])])
        if method == "GET" and len(rest) == 1 and "query" in query:
            return self._hits(kind, [e for e in entries if e[0] == rest[0] and self._matches(query["query"], e[1])])
        if method == "GET" and len(rest) == 2:
            return self._hits(kind, [e for e in entries if e[0] == rest[0] and e[1] == rest[1]])
        if method == "DELETE" and rest:
            entity_id = int(rest[-1])
            keep = []
            for entry in entries:
                matched = entry[2] == entity_id and (len(rest) < 2 or entry[0] == rest[0]) and (
                    len(rest) < 3 or entry[1] == rest[1]
                )
                if not matched:
                    keep.append(entry)
            index["entries"] = keep
            return 204, None, None
        return self._error(405, f"{method} not allowed on index")

    def _id_from_uri(self, kind: str, uri: Any) -> Optional[int]:
        if kind == "node":
            return self._uri_to_node_id(uri)
        prefix = f"{self.base_uri}relationship/"
        if isinstance(uri, str) and uri.startswith(prefix):
            rel_id = int(uri[len(prefix):])
            return rel_id if rel_id in self.relationships else None
        return None

    def _get_or_create(self, kind: str, index: Dict[str, Any], body: Dict[str, Any]) -> Reply:
        key, value = body["key"], str(body["value"])
        for entry_key, entry_value, entity_id in index["entries"]:
            if entry_key == key and entry_value == value:
                return 200, self._entity_doc(kind, entity_id), None
        if kind == "node":
            entity_id = self.add_node(body.get("properties"))
        else:
            start = self._uri_to_node_id(body.get("start"))
            end = self._uri_to_node_id(body.get("end"))
            if start is None or end is None:
                return self._error(400, "Invalid start or end node")
            entity_id = self.add_relationship(start, end, body["type"], body.get("properties"))
        index["entries"].append((key, value, entity_id))
        doc = self._entity_doc(kind, entity_id)
        return 201, doc, doc["self"]

    # =============================================================================
    # BATCH, QUERIES, TRAVERSALS
    # =============================================================================

    def _substitute(self, value: Any, locations: Dict[int, str]) -> Any:
        if isinstance(value, str):
            return PLACEHOLDER.sub(lambda m: locations.get(int(m.group(1)), m.group(0)), value)
        if isinstance(value, dict):
            return {k: self._substitute(v, locations) for k, v in value.items()}
        if isinstance(value, list):
            return [self._substitute(v, locations) for v in value]
        return value

    def _batch(self, operations: List[Dict[str, Any]]) -> Reply:
        self.batches.append(operations)
        if self.fail_batches:
            return self._error(500, "Batch execution failed")
        locations: Dict[int, str] = {}
        results = []
        for operation in operations:
            to = self._substitute(operation["to"], locations)
            body = self._substitute(operation.get("body"), locations)
            path, query = self._split(to, None)
            status, reply, location = self._dispatch(operation["method"], path, query, body)
            result = {"id": operation["id"], "status": status, "from": operation["to"], "body": reply}
            if location is not None:
                result["location"] = location
                locations[operation["id"]] = location
            results.append(result)
            if status >= 400:
                break
        return 200, results, None

    def _cypher(self, body: Dict[str, Any]) -> Reply:
        handler = self.cypher_handlers.get(body.get("query", "").strip())
        if handler is None:
            return self._error(400, f"Cannot parse statement: {body.get('query')}")
        columns, data = handler(body.get("params") or {})
        return 200, {"columns": columns, "data": data}, None

    def _gremlin(self, body: Dict[str, Any]) -> Reply:
        if self.gremlin_handlers is None:
            return self._error(404, "No such ServerPlugin: GremlinPlugin")
        handler = self.gremlin_handlers.get(body.get("script", "").strip())
        if handler is None:
            return self._error(400, f"Script error: {body.get('script')}")
        return 200, handler(body.get("params") or {}), None

    def _traverse(self, start: int, spec: Dict[str, Any]) -> Reply:
        prune = spec.get("prune_evaluator")
        if prune is not None and prune.get("language") != "builtin":
            return self._error(400, "Script evaluators are disabled")
        max_depth = spec.get("max_depth")
        if max_depth is None and prune is None:
            max_depth = 1
        filters = [(r["type"], r.get("direction", "all")) for r in spec.get("relationships", [])]
        return_filter = spec.get("return_filter") or {"language": "builtin", "name": "all"}
        if return_filter.get("language") != "builtin":
            return self._error(400, "Script evaluators are disabled")

        def allowed(rel: Dict[str, Any], direction: str) -> bool:
            if not filters:
                return True
            return any(t == rel["type"] and d in ("all", direction) for t, d in filters)

        visited = {start}
        paths: List[Tuple[List[int], List[int]]] = [([start], [])]
        pending = deque(paths[:1])
        depth_first = spec.get("order") == "depth_first"
        while pending:
            nodes, rels = pending.pop() if depth_first else pending.popleft()
            if max_depth is not None and len(rels) >= max_depth:
                continue
            current = nodes[-1]
            for rel_id, rel in sorted(self.relationships.items()):
                if rel["start"] == current and allowed(rel, "out"):
                    other = rel["end"]
                elif rel["end"] == current and allowed(rel, "in"):
                    other = rel["start"]
                else:
                    continue
                if other in visited:
                    continue
                visited.add(other)
                path = (nodes + [other], rels + [rel_id])
                paths.append(path)
                pending.append(path)

        if return_filter.get("name") == "all_but_start_node":
            paths = [p for p in paths if p[1]]
        return 200, [
            {
                "start": self.node_uri(nodes[0]),
                "end": self.node_uri(nodes[-1]),
                "nodes": [self.node_uri(n) for n in nodes],
                "relationships": [self.relationship_uri(r) for r in rels],
                "length": len(rels),
            }
            for nodes, rels in paths
        ], None


# --- Fixtures ---

@pytest.fixture
def server() -> FakeGraphServer:
    """A fresh in-memory graph service holding only the reference node."""
    return FakeGraphServer()


@pytest.fixture
def other_server() -> FakeGraphServer:
    """A second, unrelated service."""
    return FakeGraphServer(OTHER_BASE_URI)


@pytest.fixture
def settings() -> RestGraphSettings:
    return RestGraphSettings(base_uri=FAKE_BASE_URI)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(server, settings, clock) -> GraphGateway:
    """Gateway whose cache never expires on its own."""
    return GraphGateway(server, settings, RefetchPolicy(None, clock))


@pytest.fixture
def make_gateway(server, settings, clock):
    """Factory for gateways with a given refetch window."""
    def _make(window: Optional[float]) -> GraphGateway:
        return GraphGateway(server, settings, RefetchPolicy(window, clock))
    return _make


@pytest.fixture
def other_gateway(other_server, clock) -> GraphGateway:
    return GraphGateway(other_server, RestGraphSettings(base_uri=OTHER_BASE_URI), RefetchPolicy(None, clock))


@pytest.fixture
def database(server, settings, clock) -> GraphDatabase:
    return GraphDatabase(settings, transport=server, refetch_policy=RefetchPolicy(None, clock))
