"""Starlette application exposing the time tools over MCP.

Routes:

* ``/mcp`` - streamable HTTP transport, every verb;
* ``/sse`` - legacy event stream (GET);
* ``/messages`` - legacy message submission (POST, ``?sessionId=``).
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from .config import ServerConfig
from .errors import BadHandshake, UnknownSession
from .sessions import SessionManager, SessionVariant
from .zones import get_local_tz

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"
SSE_PATH = "/sse"
MESSAGES_PATH = "/messages"


def _decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


def _replay_body(body: bytes, receive: Receive) -> Receive:
    """Hand an already consumed request body to the next reader, once."""
    replayed = False

    async def wrapped() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return wrapped


class StreamableEndpoint:
    def __init__(self, manager: SessionManager):
        self.manager = manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        payload = None
        if not session_id:
            body = await request.body()
            payload = _decode_json(body)
            receive = _replay_body(body, receive)

        try:
            session = await self.manager.attach_streamable(session_id, payload)
        except BadHandshake as e:
            logger.warning(
                "Invalid Streamable HTTP handshake request (%s %s, session=%s)",
                request.method,
                request.url.path,
                session_id,
            )
            await JSONResponse(e.to_jsonrpc(), status_code=e.status_code)(scope, receive, send)
            return

        if session_id:
            await session.transport.handle_request(scope, receive, send)
            return

        status: int | None = None

        async def send_and_record(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await session.transport.handle_request(scope, receive, send_and_record)
        finally:
            # a rejected handshake must not leave a registered session behind
            if status is None or not 200 <= status < 300:
                logger.warning(
                    "Streamable HTTP handshake for session %s failed with status %s",
                    session.session_id,
                    status,
                )
                self.manager.close(session)


class LegacyStreamEndpoint:
    def __init__(self, manager: SessionManager, message_path: str = MESSAGES_PATH):
        self.manager = manager
        self.message_path = message_path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.info("Received request for SSE connection")
        session = self.manager.open_legacy(self.message_path, scope, receive, send)
        await self.manager.serve(session)


class LegacyMessageEndpoint:
    def __init__(self, manager: SessionManager):
        self.manager = manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = Request(scope, receive).query_params.get("sessionId")
        logger.debug("Received POST %s for SSE sessionId: %s", MESSAGES_PATH, session_id)
        try:
            session = self.manager.require(SessionVariant.LEGACY_SSE, session_id)
            await session.transport.handle_request(scope, receive, send)
        except UnknownSession as e:
            logger.warning("Unknown or expired SSE sessionId: %s", session_id)
            await PlainTextResponse(str(e), status_code=e.status_code)(scope, receive, send)


def create_app(config: ServerConfig) -> Starlette:
    """Build the ASGI application.

    The local timezone is resolved here, once, and shared by every session.
    The session manager is exposed as ``app.state.session_manager``.
    """
    local_tz = get_local_tz(config.local_timezone)
    manager = SessionManager(local_tz, json_response=config.json_response)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with manager.run():
            logger.info("Default timezone for tool calls: %s", manager.local_tz)
            yield

    app = Starlette(
        routes=[
            Route(MCP_PATH, endpoint=StreamableEndpoint(manager)),
            Route(SSE_PATH, endpoint=LegacyStreamEndpoint(manager), methods=["GET"]),
            Route(MESSAGES_PATH, endpoint=LegacyMessageEndpoint(manager), methods=["POST"]),
        ],
        lifespan=lifespan,
    )
    app.state.session_manager = manager
    return app


async def serve(config: ServerConfig) -> None:
    app = create_app(config)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_config=None,
        )
    )
    logger.info("MCP Time server listening on http://%s:%s", config.host, config.port)
    await server.serve()
