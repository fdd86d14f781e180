"""Bundled MCP servers."""
