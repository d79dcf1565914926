"""Pytest configuration and fixtures."""

from __future__ import annotations

import sqlite3
import sys
from pathlib import Path
from typing import Iterator, List

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dbextract.connection.dbapi import SqliteConnection  # noqa: E402

CITIES = [
    (1, "Praha", 1165581),
    (2, "Brno", 369559),
    (3, "Ostrava", 306006),
    (4, "Plzen", 163392),
    (5, "Olomouc", 100663),
    (6, "Liberec", 97770),
]


@pytest.fixture
def cities_db(tmp_path: Path) -> Path:
    """SQLite database with a populated ``cities`` table and an empty ``orders`` table."""
    path = tmp_path / "cities.sqlite"
    native = sqlite3.connect(str(path))
    try:
        native.execute(
            "CREATE TABLE cities ("
            "id INTEGER PRIMARY KEY, "
            "name VARCHAR(255) NOT NULL, "
            "population INTEGER)"
        )
        native.executemany("INSERT INTO cities VALUES (?, ?, ?)", CITIES)
        native.execute(
            "CREATE TABLE orders ("
            "order_id INTEGER PRIMARY KEY, "
            "city_id INTEGER REFERENCES cities(id), "
            "note TEXT DEFAULT 'none')"
        )
        native.commit()
    finally:
        native.close()
    return path


@pytest.fixture
def sleeps() -> List[float]:
    """Collects retry sleeps instead of blocking."""
    return []


@pytest.fixture
def connection(cities_db: Path, sleeps: List[float]) -> Iterator[SqliteConnection]:
    conn = SqliteConnection(str(cities_db), sleep=sleeps.append)
    yield conn
    conn.close()
