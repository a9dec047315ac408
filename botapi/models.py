"""Pydantic models for client configuration and the inbound update envelope.

Message payloads themselves are opaque: the :class:`Update` model only types
``update_id`` and keeps every other field verbatim, so listeners always get
exactly what the remote API sent.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BASE_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT = 2.0  # seconds


class ProxySettings(BaseModel):
    """Outbound HTTP proxy used for every remote call."""

    host: str
    port: int
    user: Optional[str] = None
    password: Optional[str] = None
    https: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def url(self) -> str:
        """Render ``scheme://[user:password@]host:port``.

        Credentials are embedded only when both user and password are set.
        """
        scheme = "https" if self.https else "http"
        auth = ""
        if self.user is not None and self.password is not None:
            auth = f"{self.user}:{self.password}@"
        return f"{scheme}://{auth}{self.host}:{self.port}"


class ClientConfig(BaseModel):
    """Immutable client settings.  ``token`` is mandatory and never empty."""

    token: str = Field(min_length=1)
    base_url: str = DEFAULT_BASE_URL
    http_proxy: Optional[ProxySettings] = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("token must not be blank")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("base_url must not be empty")
        return value

    @property
    def request_base_url(self) -> str:
        """``{base_url}/bot{token}/``; every method name is appended to this."""
        return f"{self.base_url}/bot{self.token}/"


class Update(BaseModel):
    """One inbound update.  At most one payload field is expected per update."""

    update_id: int
    message: Optional[Dict[str, Any]] = None
    edited_message: Optional[Dict[str, Any]] = None
    callback_query: Optional[Dict[str, Any]] = None
    inline_query: Optional[Dict[str, Any]] = None
    chosen_inline_result: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")
