"""HTTP transports that carry MCP messages for a single session.

Both transports offer the same surface to the session manager:

* ``session_id`` - the identifier the transport hands to its client;
* ``connect()`` - an async context manager yielding the read/write streams an
  MCP server runs on; leaving it means the connection is gone;
* ``handle_request(scope, receive, send)`` - accept one inbound HTTP request.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.streamable_http import StreamableHTTPServerTransport
from mcp.shared.message import SessionMessage
from mcp.types import InitializeRequest, JSONRPCMessage
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from .errors import UnknownSession

logger = logging.getLogger(__name__)

ReadStream = MemoryObjectReceiveStream[SessionMessage | Exception]
WriteStream = MemoryObjectSendStream[SessionMessage]


def is_initialize_request(payload: Any) -> bool:
    """Return True if ``payload`` is a JSON-RPC ``initialize`` request."""
    if not isinstance(payload, dict) or payload.get("jsonrpc") != "2.0":
        return False
    try:
        InitializeRequest.model_validate(payload)
    except ValidationError:
        return False
    return True


class StreamableSessionTransport:
    """Single-endpoint transport; the session id travels in the ``mcp-session-id`` header."""

    def __init__(self, session_id: str, json_response: bool = False):
        self._transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=json_response,
        )

    @property
    def session_id(self) -> str:
        return self._transport.mcp_session_id

    def connect(self):
        return self._transport.connect()

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._transport.handle_request(scope, receive, send)


class LegacySseTransport:
    """Server-sent-event stream paired with a separate message endpoint.

    The stream is served on the ASGI connection given at construction. Its first
    event tells the client where to POST messages for this session.
    """

    def __init__(
        self,
        session_id: str,
        message_path: str,
        scope: Scope,
        receive: Receive,
        send: Send,
    ):
        self.session_id = session_id
        self._message_path = message_path
        self._scope = scope
        self._receive = receive
        self._send = send
        self._inbound: MemoryObjectSendStream[SessionMessage | Exception] | None = None

    @property
    def endpoint(self) -> str:
        root_path = self._scope.get("root_path", "")
        return f"{root_path}{self._message_path}?sessionId={self.session_id}"

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[tuple[ReadStream, WriteStream]]:
        inbound_writer, inbound_reader = anyio.create_memory_object_stream(0)
        outbound_writer, outbound_reader = anyio.create_memory_object_stream(0)

        async def events():
            yield {"event": "endpoint", "data": self.endpoint}
            async for session_message in outbound_reader:
                yield {
                    "event": "message",
                    "data": session_message.message.model_dump_json(
                        by_alias=True, exclude_none=True
                    ),
                }

        async def stream_events():
            await EventSourceResponse(events())(self._scope, self._receive, self._send)
            logger.debug("SSE stream finished for sessionId: %s", self.session_id)
            self._inbound = None
            await inbound_writer.aclose()
            await outbound_reader.aclose()

        self._inbound = inbound_writer
        async with anyio.create_task_group() as tg:
            tg.start_soon(stream_events)
            try:
                yield inbound_reader, outbound_writer
            finally:
                self._inbound = None
                tg.cancel_scope.cancel()

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        inbound = self._inbound
        if inbound is None:
            raise UnknownSession(self.session_id)

        body = await Request(scope, receive).body()
        try:
            message = JSONRPCMessage.model_validate_json(body)
        except ValidationError as e:
            logger.warning("Could not parse message for sessionId %s: %s", self.session_id, e)
            await PlainTextResponse("Could not parse message", status_code=400)(
                scope, receive, send
            )
            return

        await Response("Accepted", status_code=202)(scope, receive, send)
        try:
            await inbound.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.warning("SSE sessionId %s closed before message was delivered", self.session_id)
