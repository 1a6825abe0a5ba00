"""Session bookkeeping for the streamable and legacy SSE transports.

Every session owns one transport and one MCP server built for it alone. The
manager keeps a lookup table per transport variant, keyed by the id the
transport reports, and drops the entry once the transport's MCP loop exits.
All mutation happens on the event loop thread.
"""

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server import Server
from starlette.types import Receive, Scope, Send

from .errors import BadHandshake, UnknownSession
from .server import build_server
from .transports import (
    LegacySseTransport,
    ReadStream,
    StreamableSessionTransport,
    WriteStream,
    is_initialize_request,
)

logger = logging.getLogger(__name__)


class SessionVariant(str, Enum):
    STREAMABLE = "streamable"
    LEGACY_SSE = "legacy-sse"


class SessionTransport(Protocol):
    @property
    def session_id(self) -> str: ...

    def connect(self) -> AbstractAsyncContextManager[tuple[ReadStream, WriteStream]]: ...

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None: ...


@dataclass
class Session:
    transport: SessionTransport
    variant: SessionVariant
    server: Server
    cancel_scope: anyio.CancelScope | None = field(default=None, repr=False)

    @property
    def session_id(self) -> str:
        return self.transport.session_id


def new_session_id() -> str:
    return str(uuid4())


class SessionManager:
    """Creates, looks up and tears down MCP sessions.

    Streamable sessions run their MCP loop in the manager's task group, so
    ``run()`` must be entered (normally from the application lifespan) before
    any handshake is accepted. Legacy sessions run inside the request that
    opened their event stream.
    """

    def __init__(
        self,
        local_tz: str,
        server_factory: Callable[[str], Server] = build_server,
        json_response: bool = False,
    ):
        self.local_tz = local_tz
        self._server_factory = server_factory
        self._json_response = json_response
        self._tables: dict[SessionVariant, dict[str, Session]] = {
            variant: {} for variant in SessionVariant
        }
        self._task_group: TaskGroup | None = None

    @asynccontextmanager
    async def run(self):
        if self._task_group is not None:
            raise RuntimeError("SessionManager.run() is already active")

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Session manager started")
            try:
                yield self
            finally:
                logger.info("Session manager shutting down")
                tg.cancel_scope.cancel()
                self._task_group = None

    def get(self, variant: SessionVariant, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        return self._tables[variant].get(session_id)

    def require(self, variant: SessionVariant, session_id: str | None) -> Session:
        session = self.get(variant, session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def session_ids(self, variant: SessionVariant) -> list[str]:
        return list(self._tables[variant])

    def discard(self, session: Session) -> None:
        """Forget ``session``. Safe to call more than once."""
        if self._tables[session.variant].pop(session.session_id, None) is not None:
            logger.info(
                "%s transport closed for session: %s", session.variant.value, session.session_id
            )

    def close(self, session: Session) -> None:
        """Stop the session's MCP loop, if running, and forget the session."""
        if session.cancel_scope is not None:
            session.cancel_scope.cancel()
        self.discard(session)

    def _register(self, transport: SessionTransport, variant: SessionVariant) -> Session:
        session = Session(
            transport=transport,
            variant=variant,
            server=self._server_factory(self.local_tz),
        )
        self._tables[variant][session.session_id] = session
        logger.info("%s session initialized: %s", variant.value, session.session_id)
        return session

    async def attach_streamable(self, session_id: str | None, payload: Any = None) -> Session:
        """Resolve the session for a streamable request.

        A request naming a live session reuses it. A request without a session
        id must carry an initialize request, which opens a new session. Anything
        else is rejected with ``BadHandshake``.
        """
        if session_id:
            session = self.get(SessionVariant.STREAMABLE, session_id)
            if session is None:
                raise BadHandshake()
            logger.debug("Reusing streamable session: %s", session_id)
            return session

        if not is_initialize_request(payload):
            raise BadHandshake()
        return await self.open_streamable()

    async def open_streamable(self) -> Session:
        if self._task_group is None:
            raise RuntimeError("SessionManager.run() must be active to open sessions")

        transport = StreamableSessionTransport(new_session_id(), json_response=self._json_response)
        session = self._register(transport, SessionVariant.STREAMABLE)
        await self._task_group.start(self.serve, session)
        return session

    def open_legacy(
        self, message_path: str, scope: Scope, receive: Receive, send: Send
    ) -> Session:
        transport = LegacySseTransport(new_session_id(), message_path, scope, receive, send)
        return self._register(transport, SessionVariant.LEGACY_SSE)

    async def serve(
        self, session: Session, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED
    ) -> None:
        """Run the session's MCP server until its transport closes or ``close()`` is called."""
        with anyio.CancelScope() as cancel_scope:
            session.cancel_scope = cancel_scope
            try:
                async with session.transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    await session.server.run(
                        read_stream,
                        write_stream,
                        session.server.create_initialization_options(),
                    )
            except Exception:
                logger.exception("MCP server for session %s crashed", session.session_id)
            finally:
                self.discard(session)
