"""
Realm Graph - relationship and graph-projection engine for a personal
knowledge base.

Notes are connected by typed, directed relationships. The engine validates
and mutates those relationships, scores and suggests new links, finds paths
and clusters, and projects the graph into a render-ready node/edge structure.
It is exposed to clients as a Model Context Protocol (MCP) server.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("realm-graph")
except PackageNotFoundError:
    __version__ = "0.3.0"
