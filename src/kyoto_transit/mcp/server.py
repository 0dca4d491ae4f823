"""MCP Server for Kyoto Transit Search.

This module implements a Model Context Protocol (MCP) server exposing stop
search and route search around Kyoto. Every tool answers with one JSON
text content; failures answer with ``{"error": {"status", "message"}}``.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.types import (
    TextContent,
    Tool,
)

from .. import __version__
from ..core.config import Settings
from ..core.exceptions import (
    ConfigurationError,
    NetworkError,
    RouteNotFoundError,
    ScrapingError,
    StopNotFoundError,
    TransitSearchError,
    ValidationError,
)
from ..services.container import TransitServices, build_services

logger = logging.getLogger(__name__)

SERVER_NAME = "kyoto-transit-search"

_LANGUAGE_SCHEMA = {
    "type": "string",
    "enum": ["ja", "en"],
    "description": "Response language (ja: Japanese, en: English)",
}
_MAX_TOKENS_SCHEMA = {
    "type": "integer",
    "minimum": 1,
    "description": "Maximum size of the response in tokens",
}
_DATETIME_TYPE_SCHEMA = {
    "type": "string",
    "enum": ["departure", "arrival", "first", "last"],
    "description": "Meaning of datetime: depart after, arrive before, first or last service of the day",
}
_DATETIME_SCHEMA = {
    "type": "string",
    "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}",
    "description": "ISO-8601 local datetime (e.g. 2025-07-07T08:30)",
}
_LATLNG_SCHEMA = {
    "type": "string",
    "pattern": r"^-?\d+(\.\d+)?,-?\d+(\.\d+)?$",
    "description": 'Coordinate as "lat,lng" (e.g. 35.02527,135.79189)',
}


def error_status(error: Exception) -> int:
    """HTTP-like status code for an error response."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, (RouteNotFoundError, StopNotFoundError)):
        return 404
    if isinstance(error, (NetworkError, ScrapingError)):
        return 503
    return 500


class TransitMCPServer:
    """MCP Server for Kyoto Transit Search functionality."""

    def __init__(self, services: TransitServices | None = None) -> None:
        """Initialize the Transit MCP Server.

        Args:
            services: Services to expose; built from the environment by default
        """
        self.server = Server(SERVER_NAME)
        self.services = services or build_services(Settings.from_env())

        # Register handlers
        self._register_handlers()

    def _register_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> list[Tool]:
            """List available tools."""
            return self.list_tools()

        @self.server.call_tool()
        async def handle_call_tool(
            name: str, arguments: dict[str, Any]
        ) -> list[TextContent]:
            """Handle tool calls."""
            return await self.call_tool(name, arguments)

    def list_tools(self) -> list[Tool]:
        return [
            Tool(
                name="search_stop_by_substring",
                description="Search Kyoto bus stops, train stations and landmarks by substring (Japanese or English)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "language": _LANGUAGE_SCHEMA,
                        "max_tokens": _MAX_TOKENS_SCHEMA,
                        "query": {
                            "type": "string",
                            "description": "Substring of the stop or landmark name (kanji, kana or English)",
                        },
                    },
                    "required": ["language", "max_tokens", "query"],
                },
            ),
            Tool(
                name="search_route_by_name",
                description="Search bus/train routes between two named stops or landmarks in Kyoto, with per-leg times across midnight",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "language": _LANGUAGE_SCHEMA,
                        "max_tokens": _MAX_TOKENS_SCHEMA,
                        "from_station": {
                            "type": "string",
                            "description": "Departure stop or landmark name",
                        },
                        "to_station": {
                            "type": "string",
                            "description": "Destination stop or landmark name",
                        },
                        "datetime_type": _DATETIME_TYPE_SCHEMA,
                        "datetime": _DATETIME_SCHEMA,
                    },
                    "required": [
                        "language",
                        "max_tokens",
                        "from_station",
                        "to_station",
                        "datetime_type",
                        "datetime",
                    ],
                },
            ),
            Tool(
                name="search_route_by_geo",
                description="Search bus/train routes between two coordinates in Kyoto, with per-leg times across midnight",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "language": _LANGUAGE_SCHEMA,
                        "max_tokens": _MAX_TOKENS_SCHEMA,
                        "from_latlng": _LATLNG_SCHEMA,
                        "to_latlng": _LATLNG_SCHEMA,
                        "datetime_type": _DATETIME_TYPE_SCHEMA,
                        "datetime": _DATETIME_SCHEMA,
                    },
                    "required": [
                        "language",
                        "max_tokens",
                        "from_latlng",
                        "to_latlng",
                        "datetime_type",
                        "datetime",
                    ],
                },
            ),
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Run a tool and render its result or error as JSON text."""
        handlers = {
            "search_stop_by_substring": self._search_stop_by_substring,
            "search_route_by_name": self._search_route_by_name,
            "search_route_by_geo": self._search_route_by_geo,
        }
        handler = handlers.get(name)
        if handler is None:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        try:
            # Services block on HTTP; keep the event loop free.
            result = await asyncio.to_thread(handler, arguments or {})
        except TransitSearchError as e:
            status = error_status(e)
            if status >= 500:
                logger.error(f"Error in tool {name}: {e}")
            else:
                logger.info(f"Tool {name} failed with {status}: {e}")
            return [_json_content({"error": {"status": status, "message": str(e)}})]
        except KeyError as e:
            return [
                _json_content(
                    {"error": {"status": 400, "message": f"Missing argument: {e.args[0]}"}}
                )
            ]
        return [_json_content(result)]

    def _search_stop_by_substring(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return self.services.stops.search(
            arguments["query"],
            arguments["language"],
            arguments["max_tokens"],
        )

    def _search_route_by_name(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return self.services.routes.search_by_name(
            arguments["from_station"],
            arguments["to_station"],
            arguments["datetime"],
            arguments["datetime_type"],
            arguments["language"],
            arguments["max_tokens"],
        )

    def _search_route_by_geo(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return self.services.routes.search_by_geo(
            arguments["from_latlng"],
            arguments["to_latlng"],
            arguments["datetime"],
            arguments["datetime_type"],
            arguments["language"],
            arguments["max_tokens"],
        )

    def close(self) -> None:
        self.services.close()


def _json_content(data: Any) -> TextContent:
    return TextContent(type="text", text=json.dumps(data, ensure_ascii=False, indent=2))


async def main() -> None:
    """Main entry point for the MCP server."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    # stdout carries the protocol; logs go to stderr only.
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        stream=sys.stderr,
    )
    logger.info("Starting Kyoto Transit Search MCP Server")

    server_instance = TransitMCPServer(build_services(settings))

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("MCP Server running with stdio transport")
            await server_instance.server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server_instance.server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    finally:
        server_instance.close()


def main_sync() -> None:
    """Synchronous wrapper for the async main function - used as entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    main_sync()
