"""
Entry point for running liftsync_mcp as a module.

Usage:
    python -m liftsync_mcp                    # Run with stdio transport
    python -m liftsync_mcp --http             # Run with HTTP transport
    python -m liftsync_mcp --http --port 9000 # Run HTTP on custom port
"""

import argparse
import os

from liftsync_mcp import create_app


def main():
    parser = argparse.ArgumentParser(
        description="liftsync MCP Server - offline-first workout logging with joint sessions"
    )
    parser.add_argument(
        "--http",
        action="store_true",
        help="Use http transport instead of stdio"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8081,
        help="Port for HTTP transport (default: 8081)"
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help="Workout server base URL (default: $LIFTSYNC_SERVER_URL or http://localhost:3000)"
    )

    args = parser.parse_args()

    if args.server_url:
        os.environ["LIFTSYNC_SERVER_URL"] = args.server_url

    if args.http:
        os.environ["MCP_TRANSPORT"] = "http"
        os.environ["MCP_HOST"] = args.host
        os.environ["MCP_PORT"] = str(args.port)
    else:
        os.environ["MCP_TRANSPORT"] = "stdio"

    app = create_app()

    if args.http:
        print(f"Starting liftsync MCP server on http://{args.host}:{args.port}/mcp")
        app.run(transport="http", host=args.host, port=args.port)
    else:
        app.run()


if __name__ == "__main__":
    main()
