"""Project configuration (strata.toml or [tool.strata] in pyproject.toml)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigError

CONFIG_FILE = "strata.toml"
DEFAULT_LEDGER = "migrations/ledger.toml"
DEFAULT_ASSETS = "assets"


@dataclass(frozen=True)
class StrataConfig:
    """Resolved project settings."""

    root: Path
    ledger: str = DEFAULT_LEDGER
    assets: str | None = DEFAULT_ASSETS
    invoker: str | None = None
    timeout: float | None = None

    @property
    def ledger_path(self) -> Path:
        return self.root / self.ledger

    @property
    def assets_path(self) -> Path | None:
        return self.root / self.assets if self.assets else None


def _read_section(root: Path) -> dict[str, Any] | None:
    config_path = root / CONFIG_FILE
    if config_path.is_file():
        data = _load_toml(config_path)
        section = data.get("strata", {})
        if not isinstance(section, dict):
            raise ConfigError(f"{config_path}: [strata] must be a table")
        return section

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        tool = _load_toml(pyproject).get("tool", {})
        section = tool.get("strata") if isinstance(tool, dict) else None
        if section is None:
            return None
        if not isinstance(section, dict):
            raise ConfigError(f"{pyproject}: [tool.strata] must be a table")
        return section

    return None


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_bytes().decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ConfigError(f"{path}: not valid UTF-8 ({exc})") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: invalid TOML ({exc})") from exc


def find_project_root(start: Path) -> Path | None:
    """Find the nearest directory with strata configuration, walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / CONFIG_FILE).is_file():
            return p
        pyproject = p / "pyproject.toml"
        if pyproject.is_file() and _read_section(p) is not None:
            return p
    return None


def load_config(root: Path) -> StrataConfig:
    """Load settings for the project at `root`. Missing config means defaults."""
    root = root.resolve()
    section = _read_section(root) or {}

    ledger = section.get("ledger", DEFAULT_LEDGER)
    if not isinstance(ledger, str) or not ledger.strip():
        raise ConfigError("ledger must be a non-empty path string")

    assets = section.get("assets", DEFAULT_ASSETS)
    if assets is not None and not isinstance(assets, str):
        raise ConfigError("assets must be a path string")

    invoker = section.get("invoker")
    if invoker is not None and not isinstance(invoker, str):
        raise ConfigError("invoker must be a 'module:attribute' string")

    timeout = section.get("timeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError("timeout must be a positive number of seconds")
        timeout = float(timeout)

    return StrataConfig(
        root=root,
        ledger=ledger,
        assets=assets or None,
        invoker=invoker,
        timeout=timeout,
    )
