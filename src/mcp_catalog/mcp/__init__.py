"""FastMCP tool surface over the discovery orchestrators."""
