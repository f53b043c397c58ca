# src/restgraph/core/transport.py
"""
HTTP transport collaborator.

The gateway only depends on the ``Transport`` protocol: issue one request,
get back a ``RequestResult``. ``HttpTransport`` is the production
implementation on top of a ``requests.Session``; authentication and
identification headers are attached here, never by the gateway.
"""

import threading
from typing import Any, Dict, Optional, Protocol, runtime_checkable
from urllib.parse import urljoin

import requests
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from restgraph.config import RestGraphSettings
from restgraph.exceptions import TransportFailure


class RequestResult(BaseModel):
    """Status, decoded body and ``Location`` header of one HTTP exchange."""

    status: int = Field(..., ge=100, le=599)
    body: Any = None
    location: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class Transport(Protocol):
    """Anything able to perform a request against the graph service."""

    base_uri: str

    def request(
        self,
        method: str,
        uri: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> RequestResult: ...


class HttpTransport:
    """
    Blocking HTTP transport backed by ``requests``.

    One session is kept per transport and reused for every request. The
    session is created lazily by the first request, or explicitly with
    ``open()``; ``close()`` releases its connections.
    """

    def __init__(self, settings: RestGraphSettings):
        self.settings = settings
        self.base_uri: str = settings.base_uri
        self._session: Optional[requests.Session] = None
        self._session_lock = threading.Lock()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.settings.user_agent,
            }
        )
        if self.settings.stream:
            session.headers["X-Stream"] = "true"
        if self.settings.auth is not None:
            session.auth = self.settings.auth
        return session

    def open(self) -> None:
        """Create the underlying session. Idempotent."""
        with self._session_lock:
            if self._session is None:
                logger.info("restgraph: opening HTTP session for {}", self.base_uri)
                self._session = self._build_session()

    def close(self) -> None:
        """Close the underlying session if it is open."""
        with self._session_lock:
            if self._session is not None:
                logger.info("restgraph: closing HTTP session for {}", self.base_uri)
                self._session.close()
                self._session = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self.open()
        return self._session

    def resolve(self, uri: str) -> str:
        """Absolute URI for ``uri``, which may be relative to the service root."""
        if uri.startswith(("http://", "https://")):
            return uri
        return urljoin(self.base_uri, uri.lstrip("/"))

    def request(
        self,
        method: str,
        uri: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> RequestResult:
        """
        Perform one request and decode the JSON reply.

        Args:
            method: HTTP verb
            uri: Absolute URI or path relative to the service root
            body: JSON-serializable request body
            params: Query string parameters

        Returns:
            RequestResult with status, decoded body and Location header

        Raises:
            TransportFailure: On network errors and timeouts
        """
        url = self.resolve(uri)
        logger.debug("restgraph: >>> {} {} {}", method, url, body)
        kwargs: Dict[str, Any] = {"params": params, "timeout": self.settings.timeout}
        if body is not None:
            kwargs["json"] = body
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error("restgraph: {} {} failed: {}", method, url, e)
            raise TransportFailure(f"{method} {url} failed: {e}") from e

        decoded: Any = None
        if response.content:
            try:
                decoded = response.json()
            except ValueError:
                decoded = response.text
        logger.debug("restgraph: <<< {} {} {}", response.status_code, url, decoded)
        return RequestResult(
            status=response.status_code,
            body=decoded,
            location=response.headers.get("Location"),
        )

    def __enter__(self) -> "HttpTransport":
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"HttpTransport(base_uri='{self.base_uri}', open={self.is_open})"
