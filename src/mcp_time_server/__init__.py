from .app import create_app, serve
from .config import ServerConfig


def main():
    """MCP Time Server - Time and timezone conversion functionality for MCP"""
    import argparse
    import asyncio
    from dataclasses import replace

    from .logging_config import setup_logging
    from .zones import is_valid_timezone

    parser = argparse.ArgumentParser(
        description="give a model the ability to handle time queries and timezone conversions"
    )
    parser.add_argument("--local-timezone", type=str, help="Override local timezone")
    parser.add_argument("--host", type=str, help="Host to bind the server to (env HOST, default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to bind the server to (env PORT, default 3000)")
    parser.add_argument(
        "--json-response",
        action="store_true",
        default=None,
        help="Answer streamable HTTP requests with plain JSON instead of SSE streams",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (env LOG_LEVEL, default INFO)",
    )

    args = parser.parse_args()
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        parser.error(str(e))

    overrides = {
        "host": args.host,
        "port": args.port,
        "local_timezone": args.local_timezone,
        "json_response": args.json_response,
        "log_level": args.log_level,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    if config.local_timezone and not is_valid_timezone(config.local_timezone):
        parser.error(f"invalid local timezone: {config.local_timezone}")

    setup_logging(config.log_level)
    asyncio.run(serve(config))


__all__ = ["ServerConfig", "create_app", "main", "serve"]


if __name__ == "__main__":
    main()
