# src/restgraph/orm/query.py
"""
Query engines for the two server-side query languages.

Statements are shipped verbatim; parsing and execution happen on the service.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TYPE_CHECKING

from restgraph.exceptions import BadInputError
from restgraph.orm.converters import QueryResult, ResultList

if TYPE_CHECKING:
    from restgraph.gateway import GraphGateway


class QueryEngine:
    """Base class; subclasses pick the gateway call for their language."""

    language = ""

    def __init__(self, gateway: GraphGateway):
        self._gateway = gateway

    def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        raise NotImplementedError

    def query_to(
        self,
        statement: str,
        target: Optional[Type] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ResultList:
        """Run ``statement`` and convert its single column to ``target``."""
        return self.query(statement, params).to(target)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._gateway.base_uri})"


class CypherQueryEngine(QueryEngine):
    """
    Cypher over the service's ``cypher`` endpoint.

    Example:
        ```python
        engine = CypherQueryEngine(gateway)
        names = engine.query(
            "MATCH (n:Person) WHERE n.age > {age} RETURN n.name",
            {"age": 30},
        ).to(str)
        ```
    """

    language = "cypher"

    def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        return self._gateway.query(statement, params)


class GremlinQueryEngine(QueryEngine):
    """Gremlin scripts through the service's Gremlin plugin."""

    language = "gremlin"

    def query(self, statement: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        return self._gateway.execute_script(statement, params)


ENGINES = {engine.language: engine for engine in (CypherQueryEngine, GremlinQueryEngine)}


def engine_for(language: str, gateway: GraphGateway) -> QueryEngine:
    try:
        return ENGINES[language.lower()](gateway)
    except KeyError:
        raise BadInputError(f"Unknown query language: {language}") from None
