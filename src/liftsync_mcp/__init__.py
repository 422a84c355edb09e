"""
MCP Server for the liftsync workout tracker.

Offline-first workout logging: sets are stored locally first and synced
to the workout server when it is reachable. Joint sessions and friend
watch sessions ride on a realtime websocket.

Supports two transport modes:
- stdio: For single-user local usage (default)
- http: For multi-user HTTP server deployment
"""

import os

from fastmcp import FastMCP

from liftsync_mcp import auth_tool
from liftsync_mcp import workouts
from liftsync_mcp import joint
from liftsync_mcp import watch


def create_app() -> FastMCP:
    """Create and configure the MCP app with all tools registered."""
    app = FastMCP("liftsync v1.0")

    # Register auth tools (session management, feature list)
    app = auth_tool.register_tools(app)

    # Register workout session tools
    app = workouts.register_tools(app)

    # Register joint session and watch tools
    app = joint.register_tools(app)
    app = watch.register_tools(app)

    return app


def main():
    """Initialize the MCP server and run with configured transport.

    Environment variables:
    - MCP_TRANSPORT: 'stdio' (default) or 'http'
    - MCP_HOST: Host to bind to (default: '0.0.0.0')
    - MCP_PORT: Port for HTTP transport (default: 8081)
    """
    app = create_app()

    transport = os.environ.get("MCP_TRANSPORT", "stdio")

    if transport == "http":
        host = os.environ.get("MCP_HOST", "0.0.0.0")
        port = int(os.environ.get("MCP_PORT", "8081"))
        app.run(transport="http", host=host, port=port)
    else:
        app.run()


if __name__ == "__main__":
    main()
