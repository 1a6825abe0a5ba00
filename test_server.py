import json
from datetime import datetime

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from mcp_time_server.errors import InvalidTimezone, TimeServerError
from mcp_time_server.server import (
    SERVER_NAME,
    TimeTools,
    build_server,
    describe_error,
)

LOCAL_TZ = "Asia/Tokyo"


async def call(name, arguments, local_tz=LOCAL_TZ):
    async with create_connected_server_and_client_session(build_server(local_tz)) as client:
        return await client.call_tool(name, arguments)


def text_of(result):
    assert len(result.content) == 1
    assert result.content[0].type == "text"
    return result.content[0].text


async def test_list_tools():
    async with create_connected_server_and_client_session(build_server(LOCAL_TZ)) as client:
        tools = {tool.name: tool for tool in (await client.list_tools()).tools}

    assert set(tools) == {TimeTools.GET_CURRENT_TIME.value, TimeTools.CONVERT_TIME.value}
    assert tools["convert_time"].inputSchema["required"] == ["time"]
    assert "required" not in tools["get_current_time"].inputSchema
    assert LOCAL_TZ in tools["get_current_time"].inputSchema["properties"]["timezone"]["description"]


async def test_server_identity():
    async with create_connected_server_and_client_session(build_server(LOCAL_TZ)) as client:
        # initialize already happened; ping proves the session is live
        await client.send_ping()
    assert build_server(LOCAL_TZ).name == SERVER_NAME


async def test_get_current_time():
    result = await call("get_current_time", {"timezone": "America/New_York"})

    assert not result.isError
    payload = json.loads(text_of(result))
    assert set(payload) == {"timezone", "datetime"}
    assert payload["timezone"] == "America/New_York"
    datetime.fromisoformat(payload["datetime"])


@pytest.mark.parametrize("arguments", [{}, {"timezone": ""}])
async def test_get_current_time_defaults_to_local_zone(arguments):
    result = await call("get_current_time", arguments)

    assert json.loads(text_of(result))["timezone"] == LOCAL_TZ


async def test_get_current_time_invalid_zone_is_not_a_fault():
    result = await call("get_current_time", {"timezone": "Mars/Gale_Crater"})

    assert not result.isError
    text = text_of(result)
    assert text.startswith("Error: Invalid timezone specified")
    assert "Mars/Gale_Crater" in text


async def test_convert_time():
    result = await call(
        "convert_time",
        {"source_timezone": "Europe/London", "time": "14:30", "target_timezone": "Asia/Tokyo"},
    )

    assert not result.isError
    payload = json.loads(text_of(result))
    assert set(payload) == {"source", "target", "time_difference"}
    assert payload["source"]["timezone"] == "Europe/London"
    assert payload["target"]["timezone"] == "Asia/Tokyo"
    assert payload["time_difference"] in ("+8h", "+9h")
    assert datetime.fromisoformat(payload["source"]["datetime"]) == datetime.fromisoformat(
        payload["target"]["datetime"]
    )


async def test_convert_time_defaults_both_ends():
    result = await call("convert_time", {"time": "09:00"}, local_tz="UTC")

    payload = json.loads(text_of(result))
    assert payload["source"]["timezone"] == "UTC"
    assert payload["target"]["timezone"] == "UTC"
    assert payload["time_difference"] == "+0h"


async def test_convert_time_out_of_range():
    result = await call(
        "convert_time",
        {"source_timezone": "UTC", "time": "25:00", "target_timezone": "Asia/Tokyo"},
    )

    assert not result.isError
    text = text_of(result)
    assert "'25:00'" in text
    assert "HH:MM" in text


@pytest.mark.parametrize(
    "arguments,expected",
    [
        (
            {"source_timezone": "Mars/Olympus", "time": "10:00", "target_timezone": "Venus/Base"},
            "Error: Invalid source timezone specified ('Mars/Olympus')",
        ),
        (
            {"source_timezone": "UTC", "time": "10:00", "target_timezone": "Venus/Base"},
            "Error: Invalid target timezone specified ('Venus/Base')",
        ),
    ],
)
async def test_convert_time_invalid_zones(arguments, expected):
    result = await call("convert_time", arguments)

    assert not result.isError
    assert text_of(result).startswith(expected)


async def test_convert_time_missing_time():
    result = await call("convert_time", {"source_timezone": "UTC"})

    assert not result.isError
    text = text_of(result)
    assert text.startswith("Error: Invalid arguments for convert_time: time:")


@pytest.mark.parametrize("value", ["2:30", "14-30", "14:30:00"])
async def test_convert_time_rejects_time_outside_argument_pattern(value):
    result = await call("convert_time", {"source_timezone": "UTC", "time": value})

    assert not result.isError
    text = text_of(result)
    assert text.startswith("Error: Invalid arguments for convert_time: time:")
    assert "pattern" in text


async def test_unknown_tool():
    result = await call("get_weather", {})

    assert result.isError
    assert "get_weather" in text_of(result)


async def test_sessions_get_independent_servers():
    first = build_server(LOCAL_TZ)
    second = build_server(LOCAL_TZ)

    assert first is not second
    assert first.request_handlers is not second.request_handlers


def test_describe_error_messages():
    assert describe_error("get_current_time", InvalidTimezone("Nowhere")).startswith(
        "Error: Invalid timezone specified ('Nowhere')"
    )
    assert (
        describe_error("convert_time", TimeServerError("boom"))
        == "Error processing convert_time: boom"
    )
