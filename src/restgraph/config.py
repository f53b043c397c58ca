# src/restgraph/config.py
"""
Settings for a restgraph connection.

Values may come from keyword arguments or from ``RESTGRAPH_*`` environment
variables. A settings object is passed explicitly to the transport and the
gateway; nothing reads process-wide state at call time.
"""

from typing import Optional, Tuple

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from restgraph import __version__

DEFAULT_USER_AGENT = f"restgraph/{__version__}"


class RestGraphSettings(BaseSettings):
    """Connection and caching settings for a remote graph service."""

    model_config = SettingsConfigDict(env_prefix="RESTGRAPH_", extra="ignore")

    base_uri: str = Field(
        default="http://localhost:7474/db/data/",
        description="Service root of the remote graph database",
    )
    username: Optional[str] = None
    password: Optional[SecretStr] = None

    property_refetch_time: Optional[float] = Field(
        default=None,
        description="Seconds a cached property/label set may be served; None caches forever",
    )
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = Field(default=30.0, gt=0, description="Read timeout in seconds")
    stream: bool = Field(default=True, description="Ask the service for streamed JSON")

    @field_validator("base_uri")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_uri must be an http(s) URI")
        return v if v.endswith("/") else v + "/"

    @field_validator("property_refetch_time")
    @classmethod
    def non_negative_refetch(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("property_refetch_time cannot be negative")
        return v

    @field_validator("user_agent")
    @classmethod
    def user_agent_not_blank(cls, v: str) -> str:
        # blank override falls back to the library default
        return v.strip() or DEFAULT_USER_AGENT

    @property
    def auth(self) -> Optional[Tuple[str, str]]:
        if self.username is None:
            return None
        password = self.password.get_secret_value() if self.password else ""
        return (self.username, password)
