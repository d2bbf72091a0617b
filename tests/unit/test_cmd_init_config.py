"""Unit tests for the init-config command."""

from __future__ import annotations

import stat
import tomllib
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from notegraph.commands.init_config import _load_example_config, cli
from notegraph.config import load_config


class TestLoadExampleConfig:
    def test_loads_non_empty_content(self) -> None:
        content = _load_example_config()
        assert len(content) > 0

    def test_contains_all_sections(self) -> None:
        content = _load_example_config()
        for section in ("[paths]", "[display]", "[search]", "[expansion]"):
            assert section in content, f"Missing section {section}"

    def test_is_valid_toml(self) -> None:
        data = tomllib.loads(_load_example_config())
        assert data["search"]["default_sort"] == "relevance"
        assert data["search"]["deep_bidirectional_depth"] == 5


class TestInitConfigCommand:
    def test_creates_config_file(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--output", "test-config.toml"], standalone_mode=False)
            assert result.exception is None
            assert Path("test-config.toml").read_text() == _load_example_config()

    def test_created_file_loads_with_defaults(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["--output", "test-config.toml"], standalone_mode=False)
            config, _ = load_config(Path("test-config.toml"))
            assert config.default_limit == 50
            assert config.expansion_strategy == "synonyms"

    def test_owner_only_permissions(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["--output", "conf/notegraph.toml"], standalone_mode=False)
            assert stat.S_IMODE(Path("conf/notegraph.toml").stat().st_mode) == 0o600
            assert stat.S_IMODE(Path("conf").stat().st_mode) == 0o700

    def test_fails_if_exists_without_force(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("test-config.toml").write_text("existing")
            result = runner.invoke(cli, ["--output", "test-config.toml"], standalone_mode=False)
            assert isinstance(result.exception, SystemExit)
            assert result.exception.code == 1
            assert Path("test-config.toml").read_text() == "existing"

    def test_force_overwrites_existing(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("test-config.toml").write_text("old content")
            result = runner.invoke(
                cli, ["--output", "test-config.toml", "--force"], standalone_mode=False
            )
            assert result.exception is None
            assert "[search]" in Path("test-config.toml").read_text()

    def test_default_path_used_when_no_output(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            mock_path = MagicMock(return_value=Path("default-config.toml"))
            with patch("notegraph.commands.init_config.get_default_config_path", mock_path):
                result = runner.invoke(cli, [], standalone_mode=False)
            assert result.exception is None
            assert Path("default-config.toml").exists()

    def test_print_writes_nothing(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            mock_path = MagicMock(return_value=Path("default-config.toml"))
            with patch("notegraph.commands.init_config.get_default_config_path", mock_path):
                result = runner.invoke(cli, ["--print"], standalone_mode=False)
            assert result.exception is None
            assert result.output == _load_example_config()
            assert not Path("default-config.toml").exists()
