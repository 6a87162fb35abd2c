"""MCP server and transaction core for configuring Junos devices over NETCONF."""

__version__ = "0.1.0"
