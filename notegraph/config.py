"""Configuration management for notegraph."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from notegraph.exceptions import (
    ConfigParseError,
    ConfigValidationError,
)
from notegraph.utils.fileops import write_private

VALID_SORT_MODES = ("relevance", "recent", "container_title", "hierarchy_depth")
VALID_EXPANSION_STRATEGIES = ("synonyms", "related", "broader", "all")


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".config" / "notegraph" / "config.toml"


def get_default_graph_db_path() -> Path:
    """Get the default graph database path."""
    return Path.home() / ".local" / "share" / "notegraph" / "graph.db"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        graph_db: Path to the SQLite graph database built by ``notegraph load``.
        thesaurus: Optional TOML/JSON thesaurus used for term expansion.
        colored_output: Whether to use colored terminal output.
        default_limit: Maximum number of results when ``--limit`` is not given.
        default_sort: Sort mode when ``--sort`` is not given.
        deep_strict_depth: Default traversal depth for ``>>``.
        deep_bidirectional_depth: Default traversal depth for ``<<=>>``.
        child_depth: Depth of attached child trees.
        parent_depth: Depth of attached parent chains.
        max_workers: Concurrent branches per search (1 = serial).
        timeout: Overall search deadline in seconds (0 = none).
        include_daily_notes: Whether daily-note pages are searched by default.
        expansion_strategy: Strategy used by ``--expand`` without ``--strategy``.
        expansion_max_terms: Upper bound on expanded terms per condition.
        expansion_fuzzy_threshold: Minimum rapidfuzz score for thesaurus lookups.
        expansion_endpoint_url: OpenAI-compatible endpoint for term expansion.
        expansion_model: Model name sent to the expansion endpoint.
        expansion_api_key_env: Environment variable holding the endpoint API key.
        config_path: Path where config was loaded from (None if defaults).
    """

    graph_db: Path = field(default_factory=get_default_graph_db_path)
    thesaurus: Path | None = None
    colored_output: bool = True
    default_limit: int = 50
    default_sort: str = "relevance"
    deep_strict_depth: int = 3
    deep_bidirectional_depth: int = 5
    child_depth: int = 3
    parent_depth: int = 2
    max_workers: int = 4
    timeout: float = 30.0
    include_daily_notes: bool = True
    expansion_strategy: str = "synonyms"
    expansion_max_terms: int = 5
    expansion_fuzzy_threshold: int = 85
    expansion_endpoint_url: str | None = None
    expansion_model: str = "gpt-4o-mini"
    expansion_api_key_env: str = "OPENAI_API_KEY"
    config_path: Path | None = None

    def validate(self) -> list[str]:
        """Validate configuration values.

        Returns:
            List of warning messages for non-fatal issues.

        Raises:
            ConfigValidationError: If a critical validation fails.
        """
        warnings: list[str] = []

        # Expand user paths
        self.graph_db = self.graph_db.expanduser().resolve()
        if self.thesaurus is not None:
            self.thesaurus = self.thesaurus.expanduser().resolve()

        # Check if paths exist (warnings, not errors - might be created later)
        if not self.graph_db.exists():
            warnings.append(f"Graph database not found: {self.graph_db}")

        if self.thesaurus is not None and not self.thesaurus.exists():
            warnings.append(f"Thesaurus not found: {self.thesaurus}")

        if self.default_sort not in VALID_SORT_MODES:
            raise ConfigValidationError(
                "search.default_sort",
                self.default_sort,
                f"must be one of {', '.join(VALID_SORT_MODES)}",
            )

        if self.expansion_strategy not in VALID_EXPANSION_STRATEGIES:
            raise ConfigValidationError(
                "expansion.strategy",
                self.expansion_strategy,
                f"must be one of {', '.join(VALID_EXPANSION_STRATEGIES)}",
            )

        for key, value in (
            ("search.default_limit", self.default_limit),
            ("search.deep_strict_depth", self.deep_strict_depth),
            ("search.deep_bidirectional_depth", self.deep_bidirectional_depth),
            ("search.max_workers", self.max_workers),
            ("expansion.max_terms", self.expansion_max_terms),
        ):
            if value < 1:
                raise ConfigValidationError(key, value, "must be at least 1")

        if self.child_depth < 0 or self.parent_depth < 0:
            raise ConfigValidationError(
                "search.child_depth/parent_depth",
                (self.child_depth, self.parent_depth),
                "must not be negative",
            )

        if self.timeout < 0:
            raise ConfigValidationError("search.timeout", self.timeout, "must not be negative")

        if not 0 <= self.expansion_fuzzy_threshold <= 100:
            warnings.append(
                f"expansion.fuzzy_threshold={self.expansion_fuzzy_threshold} "
                f"is outside valid range 0-100"
            )

        return warnings


def load_config(config_path: Path | None = None) -> tuple[Config, list[str]]:
    """Load configuration from file or use defaults.

    Args:
        config_path: Explicit config file path. If None, uses default location.

    Returns:
        Tuple of (Config object, list of warning messages).

    Raises:
        ConfigParseError: If config file exists but has invalid syntax.
        ConfigValidationError: If config values are invalid.
    """
    warnings: list[str] = []

    if config_path is None:
        config_path = get_default_config_path()

    config_path = config_path.expanduser().resolve()

    if not config_path.exists():
        # Use defaults
        config = Config()
        warnings.append(
            f"No config file found at {config_path}. Using defaults. "
            f"Create config with: notegraph init-config"
        )
        config_warnings = config.validate()
        return config, warnings + config_warnings

    # Load from file
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(config_path, str(e)) from e

    config = _parse_config_dict(data, config_path)
    config_warnings = config.validate()

    return config, warnings + config_warnings


def _get_int(section: dict[str, Any], name: str, key: str) -> int:
    value = section[name]
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(key, value, "must be an integer")
    return value


def _parse_config_dict(data: dict[str, Any], config_path: Path) -> Config:
    """Parse configuration dictionary into Config object."""
    config = Config(config_path=config_path)

    # Parse [paths] section
    paths = data.get("paths", {})
    if "graph_db" in paths:
        value = paths["graph_db"]
        if not isinstance(value, str):
            raise ConfigValidationError("paths.graph_db", value, "must be a string path")
        config.graph_db = Path(value)

    if "thesaurus" in paths:
        value = paths["thesaurus"]
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError("paths.thesaurus", value, "must be a string path")
        config.thesaurus = Path(value) if value else None

    # Parse [display] section
    display = data.get("display", {})
    if "colored_output" in display:
        value = display["colored_output"]
        if not isinstance(value, bool):
            raise ConfigValidationError("display.colored_output", value, "must be a boolean")
        config.colored_output = value

    # Parse [search] section
    search = data.get("search", {})
    for name in (
        "default_limit",
        "deep_strict_depth",
        "deep_bidirectional_depth",
        "child_depth",
        "parent_depth",
        "max_workers",
    ):
        if name in search:
            setattr(config, name, _get_int(search, name, f"search.{name}"))

    if "default_sort" in search:
        value = search["default_sort"]
        if not isinstance(value, str):
            raise ConfigValidationError("search.default_sort", value, "must be a string")
        config.default_sort = value

    if "timeout" in search:
        value = search["timeout"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigValidationError("search.timeout", value, "must be a number")
        config.timeout = float(value)

    if "include_daily_notes" in search:
        value = search["include_daily_notes"]
        if not isinstance(value, bool):
            raise ConfigValidationError("search.include_daily_notes", value, "must be a boolean")
        config.include_daily_notes = value

    # Parse [expansion] section
    expansion = data.get("expansion", {})
    if "strategy" in expansion:
        value = expansion["strategy"]
        if not isinstance(value, str):
            raise ConfigValidationError("expansion.strategy", value, "must be a string")
        config.expansion_strategy = value

    if "max_terms" in expansion:
        config.expansion_max_terms = _get_int(expansion, "max_terms", "expansion.max_terms")

    if "fuzzy_threshold" in expansion:
        config.expansion_fuzzy_threshold = _get_int(
            expansion, "fuzzy_threshold", "expansion.fuzzy_threshold"
        )

    if "endpoint_url" in expansion:
        value = expansion["endpoint_url"]
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError(
                "expansion.endpoint_url", value, "must be a string or null"
            )
        config.expansion_endpoint_url = value or None

    for name in ("model", "api_key_env"):
        if name in expansion:
            value = expansion[name]
            if not isinstance(value, str):
                raise ConfigValidationError(f"expansion.{name}", value, "must be a string")
            setattr(config, f"expansion_{name}", value)

    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Path to save to. If None, uses config.config_path or default.
    """
    if config_path is None:
        config_path = config.config_path or get_default_config_path()

    config_path = config_path.expanduser().resolve()

    # Build TOML structure
    data: dict[str, Any] = {
        "paths": {
            "graph_db": str(config.graph_db),
        },
        "display": {
            "colored_output": config.colored_output,
        },
        "search": {
            "default_limit": config.default_limit,
            "default_sort": config.default_sort,
            "deep_strict_depth": config.deep_strict_depth,
            "deep_bidirectional_depth": config.deep_bidirectional_depth,
            "child_depth": config.child_depth,
            "parent_depth": config.parent_depth,
            "max_workers": config.max_workers,
            "timeout": config.timeout,
            "include_daily_notes": config.include_daily_notes,
        },
    }

    if config.thesaurus is not None:
        data["paths"]["thesaurus"] = str(config.thesaurus)

    # Build [expansion] section (only if non-default values)
    expansion_data: dict[str, Any] = {}
    if config.expansion_strategy != "synonyms":
        expansion_data["strategy"] = config.expansion_strategy
    if config.expansion_max_terms != 5:
        expansion_data["max_terms"] = config.expansion_max_terms
    if config.expansion_fuzzy_threshold != 85:
        expansion_data["fuzzy_threshold"] = config.expansion_fuzzy_threshold
    if config.expansion_endpoint_url is not None:
        expansion_data["endpoint_url"] = config.expansion_endpoint_url
        expansion_data["model"] = config.expansion_model
        expansion_data["api_key_env"] = config.expansion_api_key_env
    if expansion_data:
        data["expansion"] = expansion_data

    write_private(config_path, tomli_w.dumps(data))
