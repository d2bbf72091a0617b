"""Shared pytest fixtures."""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from notegraph.store.builder import load_export
from notegraph.store.query import SqlGraphStore
from notegraph.store.session import get_graph_session, open_graph_engine

if TYPE_CHECKING:
    from collections.abc import Generator

# Epoch milliseconds; later blocks are edited later
_T0 = 1_704_067_200_000  # 2024-01-01T00:00:00Z
_DAY = 86_400_000


def _block(uid: str, text: str, day: int, *children: dict[str, Any]) -> dict[str, Any]:
    block: dict[str, Any] = {
        "uid": uid,
        "string": text,
        "create-time": _T0 + day * _DAY,
        "edit-time": _T0 + day * _DAY,
    }
    if children:
        block["children"] = list(children)
    return block


# Layout used across the search tests:
#
#   Project Alpha
#     b1 Risk register
#       b2 mitigation plan for vendor risk
#       b3 owner: [[Alice]]
#         b4 deadline 2024-05-01
#     b5 alpha beta together            (both terms in one block)
#     b6 alpha notes                    (alpha above beta)
#       b7 beta details
#   January 2nd, 2024 (daily note)
#     d1 risk review #Meeting
#       d2 no mitigation yet, see ((b2))
#   Beta Program
#     p1 beta launch                    (beta above alpha above beta)
#       p2 alpha team
#         p3 beta checklist
SAMPLE_EXPORT: list[dict[str, Any]] = [
    {
        "title": "Project Alpha",
        "uid": "page-alpha",
        "create-time": _T0,
        "edit-time": _T0,
        "children": [
            _block(
                "b1",
                "Risk register",
                1,
                _block("b2", "mitigation plan for vendor risk", 2),
                _block("b3", "owner: [[Alice]]", 3, _block("b4", "deadline 2024-05-01", 4)),
            ),
            _block("b5", "alpha beta together", 5),
            _block("b6", "alpha notes", 6, _block("b7", "beta details", 7)),
        ],
    },
    {
        "title": "January 2nd, 2024",
        "create-time": _T0 + _DAY,
        "edit-time": _T0 + _DAY,
        "children": [
            _block(
                "d1",
                "risk review #Meeting",
                8,
                _block("d2", "no mitigation yet, see ((b2))", 9),
            ),
        ],
    },
    {
        "title": "Beta Program",
        "uid": "page-beta",
        "children": [
            _block(
                "p1",
                "beta launch",
                10,
                _block("p2", "alpha team", 11, _block("p3", "beta checklist", 12)),
            ),
        ],
    },
]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    path = Path(tempfile.mkdtemp())
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample config file."""
    config_path = temp_dir / "config.toml"
    config_path.write_text(f"""[paths]
graph_db = "{temp_dir / 'graph.db'}"

[display]
colored_output = false

[search]
default_limit = 20
default_sort = "recent"
deep_strict_depth = 2
max_workers = 2
timeout = 10

[expansion]
strategy = "related"
max_terms = 3
""")
    return config_path


@pytest.fixture
def export_file(temp_dir: Path) -> Path:
    """Write the sample graph as a Roam JSON export."""
    path = temp_dir / "export.json"
    path.write_text(json.dumps(SAMPLE_EXPORT), encoding="utf-8")
    return path


@pytest.fixture
def graph_db(temp_dir: Path, export_file: Path) -> Path:
    """A graph database loaded from the sample export."""
    db_path = temp_dir / "graph.db"
    with get_graph_session(db_path, create=True) as session:
        load_export(session, export_file)
    return db_path


@pytest.fixture
def graph_store(graph_db: Path) -> Generator[SqlGraphStore, None, None]:
    """A store over the sample graph database."""
    engine = open_graph_engine(graph_db)
    try:
        yield SqlGraphStore(engine)
    finally:
        engine.dispose()
