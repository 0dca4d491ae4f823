"""Kyoto Transit Search Package

A Python package for searching bus and train routes around Kyoto, with
token-budgeted responses for CLI and MCP clients.
"""

__version__ = "0.1.0"

from .core.models import Route, RouteLeg, RouteSummary
from .parsing.reconciler import RoutePageParser

__all__ = ["Route", "RouteLeg", "RouteSummary", "RoutePageParser"]
