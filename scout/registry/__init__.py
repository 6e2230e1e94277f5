"""Registry -- persistent catalog of discovered MCP servers.

The registry provides:
- Entries: one row per canonical repository URL
- Stats: stars and forks refreshed by discovery, installs counted elsewhere
- Provenance: which search queries surfaced each entry
- Run history: a summary row per discovery run
"""
