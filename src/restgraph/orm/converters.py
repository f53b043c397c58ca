# src/restgraph/orm/converters.py
"""
Result conversion - raw response payloads to typed values

Three result shapes come back from the service:

- single entities (node, relationship, path documents)
- tabular rows (``columns`` plus ``data``)
- index hits (a list of entity documents, optionally scored)

``ResultConverter`` handles the entity documents and recurses through lists
and maps; extra shapes can be plugged in with ``register``.
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Type,
    TYPE_CHECKING,
)

from restgraph.core.representations import (
    NodeRepresentation,
    PathRepresentation,
    RelationshipRepresentation,
)
from restgraph.exceptions import BadInputError, NotFoundError, RestGraphError
from restgraph.orm.entities import RemoteEntity

if TYPE_CHECKING:
    from restgraph.gateway import GraphGateway


Matcher = Callable[[Any], bool]
Factory = Callable[[Any, "GraphGateway"], Any]
RowConverter = Callable[[Dict[str, Any]], Any]

_SCALARS = (str, int, float, bool)


class ResultConverter:
    """Turns decoded JSON into proxies, paths and plain values."""

    def __init__(self, gateway: GraphGateway):
        self._gateway = gateway
        self._custom: List[tuple] = []

    def register(self, matcher: Matcher, factory: Factory) -> None:
        """Add a converter for a result shape; later registrations win."""
        self._custom.insert(0, (matcher, factory))

    def convert(self, value: Any) -> Any:
        for matcher, factory in self._custom:
            if matcher(value):
                return factory(value, self._gateway)
        if RelationshipRepresentation.matches(value):
            return self._gateway.relationship_from_document(value)
        if NodeRepresentation.matches(value):
            return self._gateway.node_from_document(value)
        if PathRepresentation.matches(value):
            from restgraph.orm.traversal import Path

            return Path.from_document(value, self._gateway)
        if isinstance(value, list):
            return [self.convert(item) for item in value]
        if isinstance(value, dict):
            return {key: self.convert(item) for key, item in value.items()}
        return value

    def convert_to(self, value: Any, target: Optional[Type] = None) -> Any:
        """
        Convert ``value`` and check it against ``target``.

        Scalars are coerced to scalar targets (``str``, ``int``, ``float``,
        ``bool``); anything else must already be an instance of the target.
        """
        converted = self.convert(value)
        if target is None or converted is None or isinstance(converted, target):
            return converted
        if target in _SCALARS and isinstance(converted, _SCALARS):
            try:
                return target(converted)
            except (TypeError, ValueError) as e:
                raise BadInputError(f"Cannot convert {converted!r} to {target.__name__}") from e
        raise BadInputError(f"Cannot convert {converted!r} to {target.__name__}")


class ResultList(list):
    """List of converted results with single-value helpers."""

    def single(self) -> Any:
        if not self:
            raise NotFoundError("Expected exactly one result, got none")
        if len(self) > 1:
            raise RestGraphError(f"Expected exactly one result, got {len(self)}")
        return self[0]

    def first(self) -> Any:
        return self[0] if self else None


class QueryResult:
    """
    Tabular result of a query: ordered column names and ordered rows.

    Iterating yields one ``{column: value}`` map per row with entity
    documents converted to proxies.
    """

    def __init__(self, columns: Sequence[str], data: Sequence[Sequence[Any]], converter: ResultConverter):
        self.columns: List[str] = list(columns)
        self.data: List[List[Any]] = [list(row) for row in data]
        self._converter = converter

    @classmethod
    def from_document(cls, document: Any, converter: ResultConverter) -> QueryResult:
        """Build from a ``{"columns": ..., "data": ...}`` document."""
        if not isinstance(document, dict) or "columns" not in document:
            raise RestGraphError(f"Not a tabular result: {document!r}")
        return cls(document.get("columns") or [], document.get("data") or [], converter)

    @classmethod
    def from_values(cls, values: Any, converter: ResultConverter, column: str = "value") -> QueryResult:
        """Single-column result from a scalar, a list, or a table document."""
        if isinstance(values, dict) and "columns" in values and "data" in values:
            return cls.from_document(values, converter)
        if values is None:
            rows: List[List[Any]] = []
        elif isinstance(values, list):
            rows = [[value] for value in values]
        else:
            rows = [[values]]
        return cls([column], rows, converter)

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for row in self.data:
            yield {
                column: self._converter.convert(value)
                for column, value in zip(self.columns, row)
            }

    def rows(self) -> List[Dict[str, Any]]:
        return list(self)

    def to(self, target: Optional[Type] = None, converter: Optional[RowConverter] = None) -> ResultList:
        """
        Convert every row into one value.

        Args:
            target: Expected type of single-column values (e.g. ``RemoteNode``)
            converter: Callable turning a row map into a value; required for
                       multi-column results unless ``target`` is ``dict``

        Returns:
            ResultList of converted values
        """
        if converter is not None:
            return ResultList(converter(row) for row in self)
        if target is dict:
            return ResultList(self)
        if len(self.columns) != 1:
            raise BadInputError(
                f"Result has {len(self.columns)} columns; pass a row converter"
            )
        return ResultList(self._converter.convert_to(row[0], target) for row in self.data)

    def __repr__(self) -> str:
        return f"QueryResult(columns={self.columns}, rows={len(self.data)})"


class IndexHits:
    """
    Entities returned by an index lookup or query.

    ``current_score`` follows iteration when the service supplied scores.
    """

    def __init__(self, entities: Sequence[RemoteEntity], scores: Optional[Sequence[Optional[float]]] = None):
        self._entities: List[RemoteEntity] = list(entities)
        self._scores: List[Optional[float]] = list(scores) if scores else [None] * len(self._entities)
        self.current_score: Optional[float] = None
        self.closed = False

    @property
    def size(self) -> int:
        return len(self._entities)

    def __len__(self) -> int:
        return self.size

    def __iter__(self) -> Iterator[RemoteEntity]:
        for entity, score in zip(self._entities, self._scores):
            self.current_score = score
            yield entity

    def __getitem__(self, item: int) -> RemoteEntity:
        return self._entities[item]

    def get_single(self) -> Optional[RemoteEntity]:
        """The only hit, None when empty."""
        if not self._entities:
            return None
        if len(self._entities) > 1:
            raise RestGraphError(f"Expected at most one index hit, got {len(self._entities)}")
        self.current_score = self._scores[0]
        return self._entities[0]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> IndexHits:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"IndexHits(size={self.size})"


def convert_index_hits(
    documents: Any, converter: ResultConverter, entity_type: Type[RemoteEntity]
) -> IndexHits:
    """Build ``IndexHits`` from the list of documents an index returns."""
    if documents is None:
        return IndexHits([])
    if not isinstance(documents, list):
        raise RestGraphError(f"Index result is not a list: {documents!r}")
    entities = []
    scores = []
    for document in documents:
        entity = converter.convert_to(document, entity_type)
        entities.append(entity)
        scores.append(document.get("score") if isinstance(document, dict) else None)
    return IndexHits(entities, scores)
