"""MCP (Model Context Protocol) server module for Kyoto transit search.

This module provides the MCP server exposing stop search and route search
through the Model Context Protocol.
"""

from .server import TransitMCPServer, main

__all__ = ["TransitMCPServer", "main"]
