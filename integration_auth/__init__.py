"""OAuth authorization and token lifecycle for MCP integrations."""
