"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from strata.models import Ledger
from strata.store import LedgerStore

from helpers import ORIGIN, SCENARIO_TOML, SIDEWALKS, TERRAIN, TREES, FakeInvoker


@pytest.fixture
def scenario_ledger() -> Ledger:
    """Origin/terrain/sidewalks/trees, declared in reverse order."""
    return Ledger(entries=(TREES, SIDEWALKS, TERRAIN, ORIGIN))


@pytest.fixture
def store(tmp_path: Path) -> LedgerStore:
    """Store pointing at a fresh ledger path."""
    return LedgerStore(tmp_path / "migrations" / "ledger.toml")


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Project root with strata.toml and the scenario ledger."""
    root = tmp_path / "project"
    (root / "migrations").mkdir(parents=True)
    (root / "strata.toml").write_text('[strata]\nledger = "migrations/ledger.toml"\n', encoding="utf-8")
    (root / "migrations" / "ledger.toml").write_text(SCENARIO_TOML, encoding="utf-8")
    return root
