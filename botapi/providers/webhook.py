"""Webhook update provider.

Runs a small Starlette application under uvicorn with a single route,
``POST /{token}``, registers it with ``setWebhook``, and forwards every
received update to the attached client.  The HTTP answer (``200`` with an
empty body) never waits on application processing: dispatch runs as a
background task after the response is sent.

Ports: the remote API only delivers to 80, 88, 443 and 8443.  Any other port
is accepted only together with an explicit public ``url`` (a reverse proxy in
front of this listener).  When a key/certificate pair is given the listener
terminates TLS itself; otherwise TLS is up to the proxy.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from typing import Any, List, Optional

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from botapi.exceptions import (
    ConfigurationError,
    MissingClient,
    ProviderAlreadyStarted,
    ProviderNotStarted,
    WebhookSetFailed,
)
from botapi.models import Update
from botapi.providers.base import UpdateSink
from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("provider.webhook")

ALLOWED_PORTS: tuple[int, ...] = (80, 88, 443, 8443)


class WebhookProvider:
    """Receive updates pushed by the remote API.

    Args:
        host: Interface to listen on.
        port: Port to listen on.
        url: Public base URL registered with the remote API.  Defaults to
            ``https://{host}:{port}``; when set, forwarding it to this
            listener is the operator's job.
        allowed_updates: Update types to receive, e.g. ``["message"]``.
        private_key: Path to the TLS private key (PEM).
        public_key: Path to the TLS certificate (PEM).  Also uploaded to the
            remote API so self-signed certificates are trusted.

    Raises:
        ConfigurationError: No *url* is given and *port* is not one of
            :data:`ALLOWED_PORTS`.
    """

    STOP_TIMEOUT: float = 5.0

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8443,
        url: Optional[str] = None,
        allowed_updates: Optional[List[str]] = None,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
    ) -> None:
        self._client: Optional[UpdateSink] = None
        self._host = host
        self._port = int(port)
        self._url = url.rstrip("/") if url else None
        self._allowed_updates = list(allowed_updates) if allowed_updates else None
        self._private_key: Optional[str] = None
        self._public_key: Optional[str] = None

        if self._url is None and self._port not in ALLOWED_PORTS:
            raise ConfigurationError(
                f"Port {self._port} is not allowed for webhooks without an explicit url "
                f"(allowed: {', '.join(map(str, ALLOWED_PORTS))})"
            )

        if private_key and public_key:
            self._private_key = private_key
            self._public_key = public_key
        else:
            logger.debug("Not securing HTTPS endpoint since key pair is not set")

        self._app: Optional[Starlette] = None
        self._route_path: Optional[str] = None
        self._server: Optional[uvicorn.Server] = None
        self._socket: Optional[socket.socket] = None
        self._serve_task: Optional[asyncio.Task] = None

    # ── State ────────────────────────────────────────────────────────────

    @property
    def is_started(self) -> bool:
        return self._client is not None

    @property
    def uses_tls(self) -> bool:
        return self._private_key is not None

    @property
    def app(self) -> Optional[Starlette]:
        """The ASGI application serving the update route, once started."""
        return self._app

    @property
    def route_path(self) -> Optional[str]:
        return self._route_path

    @property
    def webhook_url(self) -> Optional[str]:
        """Full URL registered with ``setWebhook``, once started."""
        if self._route_path is None:
            return None
        base = self._url or f"https://{self._host}:{self._port}"
        return base + self._route_path

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, client: Optional[UpdateSink]) -> None:
        """Serve the update route and register it with the remote API.

        Raises:
            ProviderAlreadyStarted: The provider is already attached.
            MissingClient: *client* is ``None``.
            OSError: The listening socket could not be bound.
            WebhookSetFailed: ``setWebhook`` raised or returned anything but
                ``True``.  The listener is shut down again in that case.
        """
        if self._client is not None:
            raise ProviderAlreadyStarted()
        if client is None:
            raise MissingClient()

        self._client = client
        self._route_path = f"/{client.token}"
        self._app = Starlette(
            routes=[Route(self._route_path, self._handle_update, methods=["POST"])]
        )

        try:
            await self._start_server()
        except Exception:
            self._detach()
            raise

        logger.info("Setting webhook", extra={"host": self._host, "port": self._port, "tls": self.uses_tls})
        try:
            result = await self._register_webhook(client)
        except Exception as exc:
            logger.warning("setWebhook call failed", extra={"error": repr(exc)})
            await self._shutdown_after_failure()
            raise WebhookSetFailed() from exc

        logger.debug("setWebhook answered", extra={"result": result})
        if result is not True:
            await self._shutdown_after_failure()
            raise WebhookSetFailed()

        logger.info("Webhook provider started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Close the listener and remove the webhook, both best-effort.

        Raises:
            ProviderNotStarted: The provider is not attached.
        """
        if self._client is None:
            raise ProviderNotStarted()

        client = self._client
        try:
            await self._stop_server()
        except Exception as exc:
            logger.warning("Failed to stop webhook listener", extra={"error": repr(exc)})

        try:
            result = await client.call("deleteWebhook")
            logger.debug("Removed webhook", extra={"result": result})
        except Exception as exc:
            logger.warning("Failed to remove webhook", extra={"error": repr(exc)})

        self._detach()
        logger.info("Webhook provider stopped")

    def _detach(self) -> None:
        self._client = None
        self._route_path = None
        self._app = None

    async def _shutdown_after_failure(self) -> None:
        try:
            await self._stop_server()
        except Exception as exc:
            logger.warning("Failed to stop webhook listener", extra={"error": repr(exc)})
        self._detach()

    async def _register_webhook(self, client: UpdateSink) -> Any:
        """Call ``setWebhook``, uploading the certificate when one is configured."""
        with contextlib.ExitStack() as stack:
            certificate = None
            if self._public_key:
                certificate = stack.enter_context(open(self._public_key, "rb"))
            return await client.call(
                "setWebhook",
                {
                    "url": self.webhook_url,
                    "certificate": certificate,
                    "allowed_updates": self._allowed_updates,
                },
            )

    # ── HTTP route ───────────────────────────────────────────────────────

    async def _handle_update(self, request: Request) -> Response:
        """Accept one body and answer ``200`` before it is dispatched as received."""
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Webhook body is not valid JSON")
            return Response(status_code=200)

        client = self._client
        if client is None:
            logger.debug("Update received while detached, ignoring")
            return Response(status_code=200)

        try:
            Update.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Webhook body has no usable update_id", extra={"error": str(exc)})

        return Response(status_code=200, background=BackgroundTask(self._dispatch, client, payload))

    @staticmethod
    async def _dispatch(client: UpdateSink, payload: Any) -> None:
        try:
            client.process_update(payload)
        except Exception:
            update_id = payload.get("update_id") if isinstance(payload, dict) else None
            logger.exception("Update dispatch failed", extra={"update_id": update_id})

    # ── Listener ─────────────────────────────────────────────────────────

    def _bind_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, self._port))
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        return sock

    async def _start_server(self) -> None:
        """Bind the socket and wait until uvicorn is accepting connections."""
        config = uvicorn.Config(
            self._app,
            host=self._host,
            port=self._port,
            ssl_keyfile=self._private_key,
            ssl_certfile=self._public_key,
            lifespan="off",
            log_config=None,
        )
        self._socket = self._bind_socket()
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.get_running_loop().create_task(
            self._server.serve(sockets=[self._socket])
        )

        while not self._server.started:
            if self._serve_task.done():
                self._close_socket()
                exc = self._serve_task.exception()
                self._server = None
                self._serve_task = None
                raise OSError(f"Webhook listener failed to start on {self._host}:{self._port}") from exc
            await asyncio.sleep(0.01)

    async def _stop_server(self) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        task = self._serve_task
        self._server = None
        self._serve_task = None
        try:
            if task is not None:
                await asyncio.wait_for(task, timeout=self.STOP_TIMEOUT)
        finally:
            self._close_socket()

    def _close_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None
