"""MCP server for the Realm Graph engine."""
