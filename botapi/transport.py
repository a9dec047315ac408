"""Transport -- one remote method call per HTTP round trip.

Builds ``POST {base_url}/bot{token}/{method}`` requests with a multipart body,
normalises parameter values, and turns the response into either the
``result`` payload or a typed exception.  HTTP calls use the ``requests``
library; the blocking call is offloaded via :func:`asyncio.to_thread` so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from botapi.exceptions import (
    NOT_SET_BY_API,
    RemoteAPIError,
    ResponseParseError,
    TransportError,
)
from botapi.models import ClientConfig
from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("transport")

_PRIMITIVES = (str, bool, int, float)


def _to_json(value: Any) -> str:
    """Compact JSON, the form the remote API documents for structured fields."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def is_binary_stream(value: Any) -> bool:
    """Return True for raw bytes and file-like objects (anything with ``read``)."""
    if isinstance(value, (bytes, bytearray)):
        return True
    return callable(getattr(value, "read", None))


def normalize_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Apply the wire normalisation rule to *params*.

    ``None`` values are dropped.  Strings, numbers, booleans and binary
    streams pass through unchanged; everything else (dicts, lists, models)
    is replaced by its JSON string so it can travel as a form field.
    """
    normalized: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, _PRIMITIVES) or is_binary_stream(value):
            normalized[key] = value
        elif hasattr(value, "model_dump"):
            normalized[key] = _to_json(value.model_dump(by_alias=True, exclude_none=True))
        else:
            normalized[key] = _to_json(value)
    return normalized


def _encode_field(key: str, value: Any) -> Tuple[Optional[str], Any]:
    """Map one normalised value to a ``requests`` multipart tuple."""
    if is_binary_stream(value):
        name = getattr(value, "name", None)
        filename = os.path.basename(name) if isinstance(name, str) and name else key
        return filename, value
    if isinstance(value, bool):
        return None, "true" if value else "false"
    return None, str(value)


def build_multipart(params: Mapping[str, Any]) -> Dict[str, Tuple[Optional[str], Any]]:
    """Return a ``files=`` mapping so ``requests`` always sends multipart/form-data."""
    return {key: _encode_field(key, value) for key, value in params.items()}


class Transport:
    """Performs outbound calls for a single bot token.

    The underlying :class:`requests.Session` carries the proxy settings from
    :class:`~botapi.models.ClientConfig`, so every request shares them.
    """

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._session = requests.Session()
        if config.http_proxy is not None:
            proxy_url = config.http_proxy.url
            self._session.proxies.update({"http": proxy_url, "https": proxy_url})

    @property
    def request_base_url(self) -> str:
        return self._config.request_base_url

    @property
    def proxies(self) -> Dict[str, str]:
        return dict(self._session.proxies)

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Invoke remote *method* and return its ``result`` payload.

        Args:
            method: Remote method name, e.g. ``"sendMessage"``.
            params: Parameter mapping; may be empty.
            timeout: Seconds before the request is abandoned.  Defaults to
                the client-wide ``timeout`` setting.

        Raises:
            TransportError: Connection failure or timeout.
            ResponseParseError: The body is not JSON.
            RemoteAPIError: The remote API reported failure.
        """
        if not isinstance(method, str) or not method:
            raise ValueError("method must be a non-empty string")

        fields = normalize_params(params)
        effective_timeout = timeout if timeout is not None else self._config.timeout
        url = self.request_base_url + method

        logger.debug(
            "Calling remote method",
            extra={"api_method": method, "params": sorted(fields), "timeout": effective_timeout},
        )
        try:
            response = await asyncio.to_thread(
                self._session.post,
                url,
                files=build_multipart(fields),
                timeout=effective_timeout,
            )
        except requests.RequestException as exc:
            logger.debug("Request failed", extra={"api_method": method, "error": repr(exc)})
            raise TransportError(f"{method} request failed: {exc}", original=exc) from exc

        return self._parse_response(method, response)

    @staticmethod
    def _parse_response(method: str, response: requests.Response) -> Any:
        """Classify *response* into a result or an exception."""
        try:
            body = response.json()
        except ValueError as exc:
            logger.debug("Failed to parse response", extra={"api_method": method, "status_code": response.status_code})
            raise ResponseParseError(original=exc) from exc

        if not isinstance(body, dict):
            if response.status_code != 200:
                raise RemoteAPIError(response.status_code, body=body)
            logger.debug("Response body is not an object", extra={"api_method": method})
            return None

        if body.get("ok") is None and response.status_code != 200:
            logger.debug("Remote returned HTTP error", extra={"api_method": method, "status_code": response.status_code})
            raise RemoteAPIError(response.status_code, body=body)

        if body.get("ok") is False:
            logger.debug("Remote returned ok=false", extra={"api_method": method, "api_response": body})
            raise RemoteAPIError(
                body.get("error_code", NOT_SET_BY_API),
                body.get("description", NOT_SET_BY_API),
                body,
            )

        return body.get("result")
