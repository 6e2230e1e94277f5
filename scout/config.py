"""Configuration for discovery runs.

Values come from three layers, later layers winning:
built-in defaults, an optional YAML file, then environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from scout.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_QUERIES: list[str] = [
    "@modelcontextprotocol/sdk language:typescript",
    "@modelcontextprotocol/sdk language:javascript",
    "mcp-server in:name,description",
    "model-context-protocol in:name,description,readme",
    "topic:mcp-server",
    "topic:model-context-protocol",
    '"@modelcontextprotocol" in:file',
]

# Evaluated in order, first match wins. Database keywords must stay ahead
# of the generic api keywords.
DEFAULT_CATEGORY_RULES: list[tuple[str, list[str]]] = [
    ("database", ["database", "sql", "postgres"]),
    ("filesystem", ["filesystem", "file", "storage"]),
    ("memory", ["memory", "cache", "redis"]),
    ("api", ["api", "http", "rest"]),
    ("search", ["search", "semantic"]),
    ("communication", ["communication", "slack", "email"]),
]

DEFAULT_CATEGORY = "custom"
SIGNATURE_PACKAGE = "@modelcontextprotocol/sdk"
GITHUB_API_BASE = "https://api.github.com"
USER_AGENT = "Scout-Discovery/0.1.0"


@dataclass
class ScoutConfig:
    """All tunables of a discovery run."""

    # External index
    github_token: str = ""
    api_base: str = GITHUB_API_BASE
    user_agent: str = USER_AGENT
    queries: list[str] = field(default_factory=lambda: list(DEFAULT_QUERIES))
    per_page: int = 100
    max_results_per_query: int = 100

    # Validation
    signature_package: str = SIGNATURE_PACKAGE
    manifest_path: str = "package.json"

    # Normalization
    category_rules: list[tuple[str, list[str]]] = field(
        default_factory=lambda: [(c, list(k)) for c, k in DEFAULT_CATEGORY_RULES]
    )
    default_category: str = DEFAULT_CATEGORY

    # Run limits
    workers: int = 4
    time_budget: float = 300.0  # seconds
    request_timeout: float = 15.0  # seconds, per HTTP call
    store_timeout: float = 10.0  # seconds, SQLite busy timeout
    max_errors: int = 50

    # Registry store
    db_path: str = ".scout/registry.db"

    # Shared secret guarding the HTTP trigger; empty disables the check
    cron_secret: str = ""

    def validate(self) -> None:
        """Raise ``ConfigurationError`` on values a run cannot work with."""
        if not self.queries:
            raise ConfigurationError("at least one search query is required")
        if not 1 <= self.per_page <= 100:
            raise ConfigurationError("per_page must be between 1 and 100")
        if self.max_results_per_query < 1:
            raise ConfigurationError("max_results_per_query must be positive")
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")
        if self.time_budget <= 0:
            raise ConfigurationError("time_budget must be positive")
        if self.request_timeout <= 0 or self.store_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")
        if self.max_errors < 1:
            raise ConfigurationError("max_errors must be at least 1")
        if not self.signature_package:
            raise ConfigurationError("signature_package must not be empty")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "GITHUB_TOKEN": ("github_token", str),
    "SCOUT_DB_PATH": ("db_path", str),
    "SCOUT_WORKERS": ("workers", int),
    "SCOUT_TIME_BUDGET": ("time_budget", float),
    "SCOUT_REQUEST_TIMEOUT": ("request_timeout", float),
    "SCOUT_CRON_SECRET": ("cron_secret", str),
}


def load_config(path: str | Path | None = None) -> ScoutConfig:
    """Build a ``ScoutConfig`` from defaults, YAML and the environment.

    When *path* is None the ``SCOUT_CONFIG`` environment variable is used,
    and when that is unset no file is read.
    """
    config = ScoutConfig()

    path = path or os.environ.get("SCOUT_CONFIG", "")
    if path:
        _apply_mapping(config, _read_yaml(Path(path)))

    for env_name, (attr, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            setattr(config, attr, cast(raw))
        except ValueError:
            raise ConfigurationError(f"{env_name} has an invalid value: {raw!r}")

    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}")
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data.get("scout", data)


def _apply_mapping(config: ScoutConfig, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if key == "category_rules":
            config.category_rules = _parse_category_rules(value)
            continue
        if not hasattr(config, key):
            raise ConfigurationError(f"Unknown config key: {key}")
        setattr(config, key, _check_type(key, getattr(config, key), value))


def _check_type(key: str, current: Any, value: Any) -> Any:
    """Check a YAML value against the type of the field's default."""
    if isinstance(current, list):
        if not isinstance(value, list):
            raise ConfigurationError(f"Config key {key} must be a list")
        return value
    # bool is an int subclass and never a valid number here
    if isinstance(value, bool) and not isinstance(current, bool):
        raise ConfigurationError(f"Config key {key} has an invalid value: {value!r}")
    if isinstance(current, float) and isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, type(current)):
        raise ConfigurationError(
            f"Config key {key} must be of type {type(current).__name__}, got {value!r}"
        )
    return value


def _parse_category_rules(value: Any) -> list[tuple[str, list[str]]]:
    """Parse rules written as a YAML list of ``{category, keywords}`` maps."""
    if not isinstance(value, list):
        raise ConfigurationError("category_rules must be a list")

    rules: list[tuple[str, list[str]]] = []
    for item in value:
        if not isinstance(item, dict) or "category" not in item:
            raise ConfigurationError(
                "each category rule needs a 'category' and a 'keywords' list"
            )
        keywords = item.get("keywords", [])
        if not isinstance(keywords, list) or not keywords:
            raise ConfigurationError(
                f"category rule {item['category']!r} needs a non-empty keywords list"
            )
        rules.append((str(item["category"]), [str(k).lower() for k in keywords]))
    return rules

