# src/restgraph/orm/entities.py
"""
restgraph RemoteEntity - local proxy for a remote node or relationship

A proxy owns the entity's identity (its canonical URI) and two independent
caches:

- structural data: locators of the entity's sub-resources, fetched once and
  kept for the proxy's lifetime
- property data: the property map, served while the gateway's refetch
  policy says it is fresh, otherwise replaced wholesale by a new fetch

Writes go through the gateway. The cache is only touched after the gateway
confirms the write (immediately, or when the enclosing batch commits).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from restgraph.core.representations import EntityRepresentation, entity_id_from_uri
from restgraph.exceptions import BadInputError, InvalidStateError, NotFoundError

if TYPE_CHECKING:
    from restgraph.batch import BatchReference
    from restgraph.gateway import GraphGateway


_MISSING = object()


class RemoteEntity:
    """
    Base class for node and relationship proxies.

    Two proxies are equal iff their URIs are equal; cached values never take
    part in equality. A proxy created inside an open batch is *pending*: it
    has no URI until the batch commits, only a placeholder reference.
    """

    representation_class = EntityRepresentation
    kind = "entity"

    def __init__(
        self,
        gateway: GraphGateway,
        uri: Optional[str] = None,
        *,
        reference: Optional[BatchReference] = None,
    ):
        if (uri is None) == (reference is None):
            raise BadInputError("An entity needs exactly one of uri or batch reference")
        self._gateway = gateway
        self._uri: Optional[str] = uri
        self._reference: Optional[BatchReference] = reference

        self._structural_data: Optional[Dict[str, Any]] = None
        self._property_data: Dict[str, Any] = {}
        self._last_property_fetch: Optional[float] = None

    # =============================================================================
    # CONSTRUCTION
    # =============================================================================

    @classmethod
    def from_document(cls, document: Dict[str, Any], gateway: GraphGateway) -> RemoteEntity:
        """Create a proxy whose caches are filled from a service document."""
        representation = cls.representation_class.model_validate(document)
        entity = cls(gateway, representation.self_uri)
        entity._apply_representation(representation)
        return entity

    @classmethod
    def pending(cls, reference: BatchReference, gateway: GraphGateway) -> RemoteEntity:
        """Create a proxy for an entity whose creation is queued in a batch."""
        return cls(gateway, reference=reference)

    def _bind_document(self, document: Dict[str, Any]) -> RemoteEntity:
        """Give a pending proxy its final identity once the service created it."""
        representation = self.representation_class.model_validate(document)
        self._uri = representation.self_uri
        self._reference = None
        self._apply_representation(representation)
        self._gateway._register(self)
        return self

    def _apply_representation(self, representation: EntityRepresentation) -> None:
        if self._structural_data is None:
            self._structural_data = representation.structural_data()
        self._property_data = dict(representation.data)
        self._last_property_fetch = self._gateway.refetch_policy.now()

    # =============================================================================
    # IDENTITY
    # =============================================================================

    @property
    def gateway(self) -> GraphGateway:
        return self._gateway

    @property
    def is_pending(self) -> bool:
        return self._uri is None

    @property
    def reference(self) -> Optional[BatchReference]:
        return self._reference

    @property
    def uri(self) -> str:
        if self._uri is None:
            raise InvalidStateError(
                f"{self.kind} {self._reference} has no URI before its batch commits"
            )
        return self._uri

    @property
    def locator(self) -> str:
        """The URI, or the batch placeholder while pending."""
        if self._uri is not None:
            return self._uri
        return self._reference.placeholder

    @property
    def id(self) -> int:
        return entity_id_from_uri(self.uri)

    # =============================================================================
    # CACHES
    # =============================================================================

    def _fetch(self) -> None:
        """Re-read the whole entity; replaces the property cache."""
        document = self._gateway.fetch_entity(self.uri)
        self._apply_representation(self.representation_class.model_validate(document))

    def get_structural_data(self) -> Dict[str, Any]:
        """Sub-resource locators; fetched at most once."""
        if self._structural_data is None:
            self._fetch()
        return self._structural_data

    def _properties(self) -> Dict[str, Any]:
        if self.is_pending:
            raise InvalidStateError(f"Cannot read properties of uncommitted {self.kind}")
        if self._gateway.refetch_policy.has_to_update(self._last_property_fetch):
            self._fetch()
        return self._property_data

    def invalidate(self) -> None:
        """Forget fetch times so the next read goes to the service."""
        self._last_property_fetch = None

    def _cache_property(self, key: str, value: Any) -> None:
        self._property_data[key] = value

    def _uncache_property(self, key: str) -> None:
        self._property_data.pop(key, None)

    def _replace_properties(self, properties: Dict[str, Any]) -> None:
        self._property_data = dict(properties)
        self._last_property_fetch = self._gateway.refetch_policy.now()

    # =============================================================================
    # PROPERTIES
    # =============================================================================

    def get_property(self, key: str, default: Any = _MISSING) -> Any:
        """
        Get a property value, honouring the refetch window.

        Args:
            key: Property name
            default: Returned when the property is not set

        Raises:
            NotFoundError: If the property is absent and no default was given,
                           or the entity no longer exists remotely
        """
        properties = self._properties()
        if key in properties:
            return properties[key]
        if default is _MISSING:
            raise NotFoundError(f"{self.kind} {self.locator} has no property '{key}'")
        return default

    def has_property(self, key: str) -> bool:
        return key in self._properties()

    def get_property_keys(self) -> List[str]:
        return list(self._properties().keys())

    def get_properties(self) -> Dict[str, Any]:
        return dict(self._properties())

    def set_property(self, key: str, value: Any) -> None:
        """Write one property; ``None`` removes it."""
        if value is None:
            self.remove_property(key)
            return
        self._gateway.set_property(self, key, value)

    def set_properties(self, properties: Dict[str, Any]) -> None:
        """Replace the whole property map."""
        self._gateway.set_properties(self, properties)

    def remove_property(self, key: str) -> None:
        self._gateway.remove_property(self, key)

    def delete(self) -> None:
        self._gateway.delete(self)

    # =============================================================================
    # DUNDER
    # =============================================================================

    def __getitem__(self, key: str) -> Any:
        return self.get_property(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set_property(key, value)

    def __delitem__(self, key: str) -> None:
        self.remove_property(key)

    def __contains__(self, key: str) -> bool:
        return self.has_property(key)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, RemoteEntity):
            return NotImplemented
        if self._uri is None or other._uri is None:
            return False
        return self._uri == other._uri

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self) -> int:
        return hash(self.uri)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}('{self.locator}')"
