"""Scout: discovers MCP servers on GitHub and ingests them into a registry."""

__version__ = "0.1.0"
