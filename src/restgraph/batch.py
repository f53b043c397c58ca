# src/restgraph/batch.py
"""
restgraph batch transactions - deferred graph mutations in one round-trip

While a batch is open on a thread every write issued through the gateway on
that thread is recorded instead of sent. Commit ships the whole list as a
single ``POST batch`` request. Operations may refer to the results of earlier
operations through ``{local_id}`` placeholders; the service substitutes them
while executing the operations in submission order.

Lifecycle:

    OPEN --commit()--> COMMITTING --> COMMITTED
                                  \\-> ROLLED_BACK   (any operation failed)
    OPEN --rollback()--> ROLLED_BACK
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from itertools import chain
from typing import Any, Callable, Dict, Iterator, List, Optional, Union, TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from restgraph.exceptions import (
    BadInputError,
    BatchError,
    InvalidStateError,
    RestGraphError,
    error_for_status,
)
from restgraph.orm.entities import RemoteEntity

if TYPE_CHECKING:
    from restgraph.gateway import GraphGateway


Materializer = Callable[[Any], Any]
Effect = Callable[[Any], None]
EntityFactory = Callable[["BatchReference"], RemoteEntity]


class BatchState(str, Enum):
    OPEN = "open"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class BatchReference:
    """
    Placeholder for the result of a batched operation.

    Usable as the target or inside the body of later operations of the same
    batch. After a successful commit ``value`` holds the materialized result.
    """

    def __init__(self, batch: BatchTransaction, local_id: int):
        self.batch = batch
        self.local_id = local_id
        self.entity: Optional[RemoteEntity] = None
        self.result: Optional[BatchOperationResult] = None
        self._value: Any = None

    @property
    def placeholder(self) -> str:
        return "{%d}" % self.local_id

    @property
    def resolved(self) -> bool:
        return self.result is not None

    @property
    def value(self) -> Any:
        if self.result is None:
            raise InvalidStateError(f"Operation {self.placeholder} has no result (batch {self.batch.state.value})")
        return self._value

    def _resolve(self, result: BatchOperationResult, value: Any) -> None:
        self.result = result
        self._value = value

    def __repr__(self) -> str:
        return f"BatchReference({self.placeholder})"


class BatchOperationResult(BaseModel):
    """One entry of the service's batch response."""

    local_id: int = Field(..., alias="id", ge=0)
    status: int = Field(default=200)
    body: Any = None
    location: Optional[str] = None
    origin: Optional[str] = Field(default=None, alias="from")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class BatchOperation(BaseModel):
    """
    A recorded operation.

    ``target`` and ``body`` keep entities and references as objects until
    commit, so proxies that were bound in the meantime resolve to their URI
    and pending ones to their placeholder.
    """

    local_id: int = Field(..., ge=0)
    method: str = Field(..., min_length=1)
    target: Any
    body: Any = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_wire(self, gateway: GraphGateway) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "id": self.local_id,
            "method": self.method,
            "to": resolve_target(self.target, gateway),
        }
        if self.body is not None:
            wire["body"] = resolve_value(self.body)
        return wire

    def describe(self) -> str:
        return f"{self.method} {self.target}"


def resolve_value(value: Any) -> Any:
    """Replace entities and references inside a request body by locators."""
    if isinstance(value, BatchReference):
        return value.placeholder
    if isinstance(value, RemoteEntity):
        return value.locator
    if isinstance(value, dict):
        return {key: resolve_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(item) for item in value]
    return value


def resolve_target(target: Any, gateway: GraphGateway) -> str:
    """Batch targets are paths relative to the service root, or ``{n}`` paths."""
    target = resolve_value(target)
    if not isinstance(target, str):
        raise BadInputError(f"Invalid batch target: {target!r}")
    if target.startswith("{"):
        return target
    return gateway.relative(target)


def _references(value: Any) -> Iterator[BatchReference]:
    if isinstance(value, BatchReference):
        yield value
    elif isinstance(value, RemoteEntity):
        if value.reference is not None:
            yield value.reference
    elif isinstance(value, dict):
        for item in value.values():
            yield from _references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _references(item)


class _Pending:
    """Bookkeeping for one recorded operation."""

    def __init__(
        self,
        operation: BatchOperation,
        reference: BatchReference,
        materialize: Optional[Materializer],
        effect: Optional[Effect],
    ):
        self.operation = operation
        self.reference = reference
        self.materialize = materialize
        self.effect = effect


class BatchResult(Mapping):
    """Mapping of ``local_id`` (or ``BatchReference``) to ``BatchOperationResult``."""

    def __init__(self, results: Dict[int, BatchOperationResult]):
        self._results = dict(results)

    def __getitem__(self, key: Union[int, BatchReference]) -> BatchOperationResult:
        if isinstance(key, BatchReference):
            key = key.local_id
        return self._results[key]

    def __iter__(self) -> Iterator[int]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return f"BatchResult({len(self)} operations)"


class BatchTransaction:
    """
    Ordered list of deferred writes, committed as one request.

    Not thread safe; the gateway binds each batch to the thread that opened it.

    Example:
        ```python
        with gateway.batch():
            alice = gateway.create_node({"name": "Alice"})
            bob = gateway.create_node({"name": "Bob"})
            knows = alice.create_relationship_to(bob, "KNOWS")
        assert knows.start_node == alice
        ```
    """

    def __init__(self, gateway: GraphGateway):
        self._gateway = gateway
        self._pending: List[_Pending] = []
        self.state = BatchState.OPEN
        self.result: Optional[BatchResult] = None

    # =============================================================================
    # RECORDING
    # =============================================================================

    @property
    def operations(self) -> List[BatchOperation]:
        return [pending.operation for pending in self._pending]

    def __len__(self) -> int:
        return len(self._pending)

    def _require_open(self, action: str) -> None:
        if self.state != BatchState.OPEN:
            raise InvalidStateError(f"Cannot {action} a batch that is {self.state.value}")

    def owns(self, reference: BatchReference) -> bool:
        return reference.batch is self

    def enqueue(
        self,
        method: str,
        target: Any,
        body: Any = None,
        *,
        entity_factory: Optional[EntityFactory] = None,
        materialize: Optional[Materializer] = None,
        effect: Optional[Effect] = None,
    ) -> BatchReference:
        """
        Record an operation.

        Args:
            method: HTTP verb
            target: Path, entity, or reference the operation addresses
            body: JSON body; may contain entities and references
            entity_factory: Builds the pending proxy for an entity this
                            operation creates; bound to the result on commit
            materialize: Turns the operation result into the reference value
            effect: Cache update run with the value once the write succeeded

        Returns:
            BatchReference for the operation's result
        """
        self._require_open("enqueue into")
        for ref in chain(_references(target), _references(body)):
            if not self.owns(ref):
                raise BadInputError(f"{ref} belongs to another batch")

        reference = BatchReference(self, len(self._pending))
        operation = BatchOperation(local_id=reference.local_id, method=method.upper(), target=target, body=body)
        if entity_factory is not None:
            reference.entity = entity_factory(reference)
        self._pending.append(_Pending(operation, reference, materialize, effect))
        logger.debug("restgraph: batch {} enqueued {}", reference.placeholder, operation.describe())
        return reference

    # =============================================================================
    # COMPLETION
    # =============================================================================

    def _apply(self, pending: _Pending, result: BatchOperationResult) -> None:
        reference = pending.reference
        if reference.entity is not None:
            value = reference.entity._bind_document(result.body)
        elif pending.materialize is not None:
            value = pending.materialize(result)
        else:
            value = result.body
        reference._resolve(result, value)
        if pending.effect is not None:
            pending.effect(value)

    def _fail(self, index: Optional[int], cause: RestGraphError, applied: List[int]) -> BatchError:
        self.state = BatchState.ROLLED_BACK
        self._gateway._batch_finished(self)
        logger.warning("restgraph: batch rolled back at {}: {}", index if index is not None else "request", cause.message)
        return BatchError(index, cause, applied)

    def commit(self) -> BatchResult:
        """
        Send every recorded operation in one request.

        Returns:
            BatchResult keyed by local id

        Raises:
            InvalidStateError: If the batch is not open
            BatchError: If the request or any operation failed
        """
        self._require_open("commit")
        self.state = BatchState.COMMITTING

        if not self._pending:
            self.state = BatchState.COMMITTED
            self._gateway._batch_finished(self)
            self.result = BatchResult({})
            return self.result

        payload = [pending.operation.to_wire(self._gateway) for pending in self._pending]
        logger.info("restgraph: committing batch of {} operations", len(payload))
        try:
            documents = self._gateway._send_batch(payload)
        except RestGraphError as e:
            raise self._fail(None, e, []) from e

        by_id: Dict[int, BatchOperationResult] = {}
        try:
            for document in documents or []:
                result = BatchOperationResult.model_validate(document)
                by_id[result.local_id] = result
        except ValidationError as e:
            raise self._fail(None, RestGraphError(f"Malformed batch response: {e}", body=documents), []) from e

        applied: List[int] = []
        results: Dict[int, BatchOperationResult] = {}
        for position, pending in enumerate(self._pending, start=1):
            operation = pending.operation
            result = by_id.get(operation.local_id)
            if result is None:
                cause = RestGraphError(f"No result reported for {operation.describe()}")
                raise self._fail(position, cause, applied)
            if not result.is_success:
                cause = error_for_status(result.status, result.body, operation.describe())
                raise self._fail(position, cause, applied)
            try:
                self._apply(pending, result)
            except RestGraphError as e:
                raise self._fail(position, e, applied) from e
            except (ValueError, TypeError, KeyError) as e:
                cause = RestGraphError(f"Cannot apply result of {operation.describe()}: {e}", body=result.body)
                raise self._fail(position, cause, applied) from e
            results[operation.local_id] = result
            applied.append(position)

        self.state = BatchState.COMMITTED
        self._gateway._batch_finished(self)
        self.result = BatchResult(results)
        logger.info("restgraph: batch committed ({} operations)", len(results))
        return self.result

    def rollback(self) -> None:
        """Discard the recorded operations; nothing is sent."""
        self._require_open("roll back")
        self.state = BatchState.ROLLED_BACK
        self._gateway._batch_finished(self)
        logger.info("restgraph: batch rolled back, {} operations discarded", len(self._pending))

    def __enter__(self) -> BatchTransaction:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            if self.state == BatchState.OPEN:
                self.rollback()
            return
        if self.state == BatchState.OPEN:
            self.commit()

    def __repr__(self) -> str:
        return f"BatchTransaction(state='{self.state.value}', operations={len(self)})"
