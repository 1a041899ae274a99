#!/usr/bin/env python
"""Main entry point for the Realm Graph MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from realm_graph.config import config
from realm_graph.models.db_models import init_db
from realm_graph.observability import configure_logging
from realm_graph.server.mcp_server import RealmGraphMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Realm Graph MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("REALM_GRAPH_DATABASE_PATH")
    )
    parser.add_argument(
        "--in-memory",
        help="Use an in-memory database (contents are lost on exit)",
        action="store_true",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("REALM_GRAPH_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.in_memory:
        config.in_memory_db = True


def main():
    """Run the Realm Graph MCP server."""
    args = parse_args()
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Initialize database schema; a single engine is shared by all services
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting Realm Graph MCP server")
        server = RealmGraphMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
