"""MCP (Model Context Protocol) server for movie-shelf.

Exposes the collection operations as structured tools for AI agents.
"""

from movie_shelf.mcp.server import create_mcp_server

__all__ = ["create_mcp_server"]
