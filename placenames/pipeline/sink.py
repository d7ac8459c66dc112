"""SQLite persistence sink; every row lands in one transaction."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable, Mapping

from placenames.common.errors import SinkError
from placenames.common.fs import ensure_dir

FEATURE_COLUMNS = ("feature_id", "country_code", "state", "lat", "lon", "in_qualifier", "near_qualifier")
NAME_COLUMNS = ("feature_id", "name_id", "is_primary", "name", "name_type")

SCHEMA = (
    """
    CREATE TABLE features (
        feature_id INTEGER PRIMARY KEY,
        country_code TEXT NOT NULL,
        state TEXT NOT NULL,
        lat REAL NOT NULL,
        lon REAL NOT NULL,
        in_qualifier TEXT NOT NULL,
        near_qualifier TEXT
    )
    """,
    """
    CREATE TABLE names (
        feature_id INTEGER NOT NULL REFERENCES features (feature_id),
        name_id INTEGER NOT NULL,
        is_primary INTEGER NOT NULL,
        name TEXT NOT NULL,
        name_type INTEGER NOT NULL,
        PRIMARY KEY (feature_id, name_id)
    )
    """,
    "CREATE INDEX idx_names_name ON names (name)",
)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def write_sqlite(
    db_path: Path,
    features: Iterable[Mapping[str, object]],
    names: Iterable[Mapping[str, object]],
) -> Path:
    """Replace ``db_path`` with a database holding ``features`` and ``names``.

    Rows are written into a sibling temporary file inside a single
    transaction; only a committed database is moved into place, so readers
    never see a partial dataset.
    """
    ensure_dir(db_path.parent)
    tmp_path = db_path.with_name(db_path.name + ".tmp")
    if tmp_path.exists():
        tmp_path.unlink()

    try:
        conn = sqlite3.connect(tmp_path)
        try:
            with conn:
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.executemany(
                    _insert_sql("features", FEATURE_COLUMNS),
                    ([row[column] for column in FEATURE_COLUMNS] for row in features),
                )
                conn.executemany(
                    _insert_sql("names", NAME_COLUMNS),
                    ([row[column] for column in NAME_COLUMNS] for row in names),
                )
        finally:
            conn.close()
        tmp_path.replace(db_path)
    except (sqlite3.Error, KeyError, OSError) as exc:
        tmp_path.unlink(missing_ok=True)
        raise SinkError(f"Persistence sink rejected the write: {exc!r}") from exc
    return db_path
