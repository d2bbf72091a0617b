"""Unit tests for configuration."""

import tomllib
from pathlib import Path

import pytest

from notegraph.config import Config, load_config, save_config
from notegraph.exceptions import ConfigParseError, ConfigValidationError


def test_default_config() -> None:
    """Test that default config has sensible values."""
    config = Config()
    assert config.colored_output is True
    assert config.default_sort == "relevance"
    assert config.deep_strict_depth == 3
    assert config.deep_bidirectional_depth == 5
    assert config.thesaurus is None
    assert config.expansion_endpoint_url is None


def test_load_missing_config(temp_dir: Path) -> None:
    """Test loading when config file doesn't exist."""
    config_path = temp_dir / "nonexistent.toml"
    config, warnings = load_config(config_path)

    assert config.config_path is None
    assert any("No config file found" in w for w in warnings)


def test_load_valid_config(sample_config: Path, temp_dir: Path) -> None:
    """Test loading a valid config file."""
    config, warnings = load_config(sample_config)

    assert config.config_path == sample_config.resolve()
    assert config.graph_db == (temp_dir / "graph.db").resolve()
    assert config.colored_output is False
    assert config.default_limit == 20
    assert config.default_sort == "recent"
    assert config.deep_strict_depth == 2
    assert config.timeout == 10.0
    assert config.expansion_strategy == "related"
    assert config.expansion_max_terms == 3
    # The database has not been built yet
    assert any("Graph database not found" in w for w in warnings)


def test_load_invalid_toml(temp_dir: Path) -> None:
    """Test loading invalid TOML raises error."""
    config_path = temp_dir / "invalid.toml"
    config_path.write_text("this is not valid [ toml")

    with pytest.raises(ConfigParseError):
        load_config(config_path)


def test_config_validation_invalid_type(temp_dir: Path) -> None:
    """Test that invalid types raise validation error."""
    config_path = temp_dir / "bad_types.toml"
    config_path.write_text("""[display]
colored_output = "not a boolean"
""")

    with pytest.raises(ConfigValidationError):
        load_config(config_path)


@pytest.mark.parametrize(
    "body",
    [
        '[search]\ndefault_sort = "alphabetical"\n',
        "[search]\ndeep_strict_depth = 0\n",
        "[search]\nmax_workers = true\n",
        "[search]\ntimeout = -1\n",
        "[search]\nchild_depth = -2\n",
        '[expansion]\nstrategy = "fuzzy"\n',
        "[expansion]\nmax_terms = 1.5\n",
        "[paths]\ngraph_db = 42\n",
    ],
)
def test_invalid_values(temp_dir: Path, body: str) -> None:
    """Test that out-of-range and mistyped values are rejected."""
    config_path = temp_dir / "bad.toml"
    config_path.write_text(body)

    with pytest.raises(ConfigValidationError):
        load_config(config_path)


def test_fuzzy_threshold_out_of_range_warns(temp_dir: Path) -> None:
    """Test that a threshold outside 0-100 is only a warning."""
    config_path = temp_dir / "threshold.toml"
    config_path.write_text("[expansion]\nfuzzy_threshold = 150\n")

    _, warnings = load_config(config_path)
    assert any("fuzzy_threshold" in w for w in warnings)


def test_missing_thesaurus_warns(temp_dir: Path) -> None:
    """Test that a configured but absent thesaurus is reported."""
    config_path = temp_dir / "thesaurus.toml"
    config_path.write_text(f'[paths]\nthesaurus = "{temp_dir / "absent.toml"}"\n')

    config, warnings = load_config(config_path)
    assert config.thesaurus == (temp_dir / "absent.toml").resolve()
    assert any("Thesaurus not found" in w for w in warnings)


def test_config_path_expansion() -> None:
    """Test that paths are expanded."""
    config = Config(graph_db=Path("~/graph.db"))
    config.validate()

    assert "~" not in str(config.graph_db)


def test_save_and_reload(temp_dir: Path) -> None:
    """Test that saved settings load back unchanged."""
    config = Config(
        graph_db=temp_dir / "graph.db",
        default_limit=7,
        default_sort="hierarchy_depth",
        expansion_strategy="broader",
        expansion_endpoint_url="http://localhost:8080/v1",
    )
    config_path = temp_dir / "saved" / "config.toml"
    save_config(config, config_path)
    assert config_path.stat().st_mode & 0o777 == 0o600
    assert [p.name for p in config_path.parent.iterdir()] == ["config.toml"]

    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    assert data["expansion"]["strategy"] == "broader"
    assert "max_terms" not in data["expansion"]

    loaded, _ = load_config(config_path)
    assert loaded.default_limit == 7
    assert loaded.default_sort == "hierarchy_depth"
    assert loaded.expansion_endpoint_url == "http://localhost:8080/v1"
    assert loaded.expansion_model == "gpt-4o-mini"
