"""Tests for project configuration loading."""

from pathlib import Path

import pytest

from strata.config import DEFAULT_LEDGER, find_project_root, load_config
from strata.errors import ConfigError


def test_defaults_without_config(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config.root == tmp_path.resolve()
    assert config.ledger == DEFAULT_LEDGER
    assert config.ledger_path == tmp_path.resolve() / "migrations" / "ledger.toml"
    assert config.assets_path == tmp_path.resolve() / "assets"
    assert config.invoker is None
    assert config.timeout is None


def test_strata_toml(tmp_path: Path) -> None:
    (tmp_path / "strata.toml").write_text(
        '[strata]\nledger = "db/ledger.toml"\nassets = "models"\ninvoker = "hooks:apply"\ntimeout = 30\n',
        encoding="utf-8",
    )
    config = load_config(tmp_path)

    assert config.ledger_path == tmp_path.resolve() / "db" / "ledger.toml"
    assert config.assets_path == tmp_path.resolve() / "models"
    assert config.invoker == "hooks:apply"
    assert config.timeout == 30.0


def test_pyproject_tool_section(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "place"\n\n[tool.strata]\ninvoker = "place.migrations:run"\n',
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.invoker == "place.migrations:run"
    assert config.ledger == DEFAULT_LEDGER


def test_strata_toml_wins_over_pyproject(tmp_path: Path) -> None:
    (tmp_path / "strata.toml").write_text('[strata]\nledger = "a.toml"\n', encoding="utf-8")
    (tmp_path / "pyproject.toml").write_text('[tool.strata]\nledger = "b.toml"\n', encoding="utf-8")
    assert load_config(tmp_path).ledger == "a.toml"


def test_empty_assets_disables_orphan_scan(tmp_path: Path) -> None:
    (tmp_path / "strata.toml").write_text('[strata]\nassets = ""\n', encoding="utf-8")
    config = load_config(tmp_path)
    assert config.assets is None
    assert config.assets_path is None


@pytest.mark.parametrize(
    "body, fragment",
    [
        ("timeout = -1", "timeout"),
        ("timeout = 0", "timeout"),
        ("timeout = true", "timeout"),
        ('timeout = "10"', "timeout"),
        ('ledger = ""', "ledger"),
        ("ledger = 3", "ledger"),
        ("assets = 1", "assets"),
        ("invoker = ['a']", "invoker"),
    ],
)
def test_invalid_values(tmp_path: Path, body: str, fragment: str) -> None:
    (tmp_path / "strata.toml").write_text(f"[strata]\n{body}\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc_info:
        load_config(tmp_path)
    assert fragment in str(exc_info.value)


def test_invalid_toml(tmp_path: Path) -> None:
    (tmp_path / "strata.toml").write_text("[strata\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc_info:
        load_config(tmp_path)
    assert "invalid TOML" in str(exc_info.value)


def test_find_project_root_walks_up(tmp_path: Path) -> None:
    (tmp_path / "strata.toml").write_text("[strata]\n", encoding="utf-8")
    nested = tmp_path / "src" / "deep"
    nested.mkdir(parents=True)

    assert find_project_root(nested) == tmp_path.resolve()


def test_find_project_root_ignores_unrelated_pyproject(tmp_path: Path) -> None:
    outer = tmp_path / "outer"
    inner = outer / "inner"
    inner.mkdir(parents=True)
    (outer / "strata.toml").write_text("[strata]\n", encoding="utf-8")
    (inner / "pyproject.toml").write_text('[project]\nname = "x"\n', encoding="utf-8")

    assert find_project_root(inner) == outer.resolve()


def test_find_project_root_none(tmp_path: Path) -> None:
    # tmp_path sits under the system temp dir, which carries no strata config
    assert find_project_root(tmp_path) is None
