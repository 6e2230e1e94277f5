"""GitHub access for discovery."""

from scout.github.client import GitHubClient

__all__ = ["GitHubClient"]
