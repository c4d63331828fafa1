"""Inbound service: HTTP endpoints a connected receiver exposes to its peer.

GET /        identity, returns {"account": ...}
POST /money  JSON Payment, settles through the ledger engine
POST /data   raw bytes, answered by the current data handler
"""

from __future__ import annotations

import asyncio
import socket

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import ValidationError

from paychan.handlers import HandlerRegistry
from paychan.ledger.contracts import LedgerEngine
from paychan.ledger.local import PAYWALL_TOKEN_HEADER
from paychan.ledger.types import Payment
from paychan.utils.exceptions import (
    ErrorCategory,
    PaychanError,
    PaymentRejectedError,
    TransportError,
    describe_exception,
    sanitize_error_message,
)

_CATEGORY_TO_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.REJECTED: 402,
    ErrorCategory.PRECONDITION: 409,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.RETRYABLE: 503,
    ErrorCategory.FATAL: 500,
}


def classify_http_status(exc: Exception) -> int:
    """Map exception to appropriate HTTP status code."""
    if isinstance(exc, PaychanError):
        return _CATEGORY_TO_STATUS.get(exc.category, 500)
    return 500


def create_inbound_app(*, account: str, ledger: LedgerEngine, handlers: HandlerRegistry) -> FastAPI:
    """Create the FastAPI app serving one session's peer endpoints."""
    app = FastAPI(title="paychan peer", docs_url=None, redoc_url=None, openapi_url=None)

    @app.exception_handler(PaychanError)
    async def paychan_exception_handler(request: Request, exc: PaychanError):
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=classify_http_status(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        sanitized = sanitize_error_message(str(exc))
        logger.exception(f"Unhandled exception on {request.url.path}: {sanitized}")
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
        )

    @app.get("/")
    async def identity(request: Request) -> dict:
        client = request.client.host if request.client else "unknown"
        logger.debug(f"got connection from: {client}")
        return {"account": account}

    @app.post("/money")
    async def money(request: Request) -> Response:
        try:
            payment = Payment.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            return JSONResponse(
                status_code=400,
                content={"error": "INVALID_PAYMENT", "message": describe_exception(e)},
            )
        logger.debug(f"got payment: channel={payment.channel_id} price={payment.price}")

        try:
            token = await ledger.accept_payment(payment)
        except PaymentRejectedError:
            raise
        except Exception as e:
            raise PaymentRejectedError(describe_exception(e), channel_id=payment.channel_id) from e

        if payment.price > 0:
            await handlers.handle_money(payment.price)
        return Response(status_code=200, headers={PAYWALL_TOKEN_HEADER: token})

    @app.post("/data")
    async def data(request: Request) -> Response:
        body = await request.body()
        logger.debug(f"got data: {body.hex()}")
        output = await handlers.handle_data(body)
        return Response(content=output, media_type="application/octet-stream")

    return app


class InboundService:
    """Serves an inbound app with uvicorn inside the running event loop."""

    def __init__(self, app: FastAPI, *, host: str = "0.0.0.0", port: int = 0):
        self.app = app
        self.host = host
        self.requested_port = port
        self.port: int | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.requested_port))
        except OSError as e:
            sock.close()
            raise TransportError(
                f"http://{self.host}:{self.requested_port}", f"cannot listen: {e}"
            ) from e
        sock.set_inheritable(True)
        return sock

    async def start(self) -> None:
        if self._task is not None:
            return
        sock = self._bind()
        self.port = sock.getsockname()[1]
        config = uvicorn.Config(
            self.app,
            log_level="warning",
            timeout_keep_alive=30,
            timeout_graceful_shutdown=10,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
        while not self._server.started:
            if self._task.done():
                self._task.result()
                raise TransportError(f"http://{self.host}:{self.port}", "server exited during startup")
            await asyncio.sleep(0.01)
        logger.debug(f"listening on port: {self.port}")

    async def wait_closed(self) -> None:
        """Block until the server exits (stop() or a shutdown signal)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def stop(self) -> None:
        """Stop accepting requests; closes the listener exactly once."""
        if self._stopped or self._server is None or self._task is None:
            return
        self._stopped = True
        self._server.should_exit = True
        await self._task
        logger.debug("listener closed")
