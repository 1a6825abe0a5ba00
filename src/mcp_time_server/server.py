import json
import logging
from enum import Enum
from typing import Sequence

from mcp.server import Server
from mcp.types import EmbeddedResource, ImageContent, TextContent, Tool
from pydantic import BaseModel, Field, ValidationError

from .engine import TimeServer
from .errors import InvalidTimeFormat, InvalidTimezone, TimeServerError

logger = logging.getLogger(__name__)

SERVER_NAME = "mcp-time-srv"
SERVER_VERSION = "1.0.0"
TIME_ARGUMENT_PATTERN = r"^\d{2}:\d{2}$"


class TimeTools(str, Enum):
    GET_CURRENT_TIME = "get_current_time"
    CONVERT_TIME = "convert_time"


class GetCurrentTimeArguments(BaseModel):
    timezone: str | None = None


class ConvertTimeArguments(BaseModel):
    source_timezone: str | None = None
    time: str = Field(pattern=TIME_ARGUMENT_PATTERN)
    target_timezone: str | None = None


def tool_definitions(local_tz: str) -> list[Tool]:
    return [
        Tool(
            name=TimeTools.GET_CURRENT_TIME.value,
            description="Get current time in a specific timezone",
            inputSchema={
                "type": "object",
                "properties": {
                    "timezone": {
                        "type": "string",
                        "description": f"IANA timezone name (e.g., 'America/New_York', 'Europe/London'). Defaults to server local: {local_tz}",
                    }
                },
            },
        ),
        Tool(
            name=TimeTools.CONVERT_TIME.value,
            description="Convert time between timezones",
            inputSchema={
                "type": "object",
                "properties": {
                    "source_timezone": {
                        "type": "string",
                        "description": f"Source IANA timezone name. Defaults to server local: {local_tz}",
                    },
                    "time": {
                        "type": "string",
                        "pattern": TIME_ARGUMENT_PATTERN,
                        "description": "Time to convert in 24-hour format (HH:MM)",
                    },
                    "target_timezone": {
                        "type": "string",
                        "description": f"Target IANA timezone name. Defaults to server local: {local_tz}",
                    },
                },
                "required": ["time"],
            },
        ),
    ]


def describe_error(tool: str, error: Exception) -> str:
    """Turn a failed tool call into the message returned to the caller."""
    if isinstance(error, ValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'arguments'}: {item['msg']}"
            for item in error.errors()
        )
        return f"Error: Invalid arguments for {tool}: {problems}"
    if isinstance(error, InvalidTimezone):
        if error.role:
            return (
                f"Error: Invalid {error.role} timezone specified ('{error.timezone}'). "
                "Please provide a valid IANA timezone name."
            )
        return (
            f"Error: Invalid timezone specified ('{error.timezone}'). Please provide a valid "
            "IANA timezone name (e.g., 'America/New_York', 'Europe/London')."
        )
    if isinstance(error, InvalidTimeFormat):
        return (
            f"Error: Invalid time format specified ('{error.value}'). "
            "Please use 24-hour HH:MM format (e.g., '14:30')."
        )
    return f"Error processing {tool}: {error}"


def build_server(local_tz: str) -> Server:
    """Build a fresh MCP server exposing the time tools.

    One instance is built per session. ``local_tz`` is the zone used whenever a
    caller leaves a timezone argument out.
    """
    logger.info("Building new MCP server instance for a connection")
    server = Server(SERVER_NAME, version=SERVER_VERSION)
    time_server = TimeServer()
    tools = tool_definitions(local_tz)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available time tools."""
        return tools

    @server.call_tool(validate_input=False)
    async def call_tool(
        name: str, arguments: dict | None
    ) -> Sequence[TextContent | ImageContent | EmbeddedResource]:
        """Handle tool calls for time queries."""
        arguments = arguments or {}
        try:
            match name:
                case TimeTools.GET_CURRENT_TIME.value:
                    args = GetCurrentTimeArguments.model_validate(arguments)
                    timezone = args.timezone or local_tz
                    logger.info(
                        "Handling tool call: get_current_time for timezone=%r", timezone
                    )
                    result = time_server.get_current_time(timezone)

                case TimeTools.CONVERT_TIME.value:
                    args = ConvertTimeArguments.model_validate(arguments)
                    source_tz = args.source_timezone or local_tz
                    target_tz = args.target_timezone or local_tz
                    logger.info(
                        "Handling tool call: convert_time from %s %r to %s",
                        source_tz,
                        args.time,
                        target_tz,
                    )
                    result = time_server.convert_time(
                        source_tz, args.time, target_tz
                    )

                case _:
                    raise ValueError(f"Unknown tool: {name}")

        except (ValidationError, TimeServerError) as e:
            logger.warning("Error in %s: %s", name, e)
            return [TextContent(type="text", text=describe_error(name, e))]

        return [TextContent(type="text", text=json.dumps(result.model_dump(), indent=2))]

    return server
