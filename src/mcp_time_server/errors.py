"""Exception types shared by the time engine, the tool registry and the session layer."""

from typing import Any


class TimeServerError(Exception):
    """Base class for every error raised by mcp-time-server."""


class InvalidTimezone(TimeServerError):
    """A timezone name is not a recognized IANA zone.

    ``role`` is ``"source"`` or ``"target"`` when the name came from one end of a
    conversion, and ``None`` otherwise.
    """

    def __init__(self, timezone: str, role: str | None = None):
        self.timezone = timezone
        self.role = role
        label = f"{role} timezone" if role else "timezone"
        super().__init__(f"Invalid {label}: {timezone}")


class InvalidTimeFormat(TimeServerError):
    def __init__(self, value: str):
        self.value = value
        super().__init__("Invalid time format. Expected HH:MM [24-hour format]")


class SessionError(TimeServerError):
    """A request cannot be bound to a session and must be rejected."""

    status_code = 400


class UnknownSession(SessionError):
    def __init__(self, session_id: str | None):
        self.session_id = session_id
        super().__init__("Unknown or expired sessionId")


class BadHandshake(SessionError):
    """A streamable request arrived without a live session and is not an initialize request."""

    code = -32000

    def __init__(self):
        super().__init__("Bad Request: invalid MCP handshake")

    def to_jsonrpc(self) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "error": {"code": self.code, "message": str(self)},
            "id": None,
        }
