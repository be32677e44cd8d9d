"""
Sheet and Property Storage

SQLite-backed stand-ins for the two external stores the workflow needs:

- SheetBackend: a tabular store with a header row and positional cells,
  rows keyed by a monotonically assigned integer id.
- PropertyStore: a flat string key-value store (used for approval tokens).

Both share one database file and open a short-lived connection per call.
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


class SheetBackend(ABC):
    """Contract for the tabular row store"""

    @abstractmethod
    def get_headers(self) -> List[str]:
        """Return the header row, in column order"""

    @abstractmethod
    def append_row(self, values: Dict[str, Any], row_id: Optional[int] = None) -> int:
        """Append a row from a header->value mapping and return its id"""

    @abstractmethod
    def get_row(self, row_id: int) -> Optional[List[Any]]:
        """Return the row's cells in column order, or None if absent"""

    @abstractmethod
    def write_cells(self, row_id: int, start_position: int, values: Sequence[Any]) -> bool:
        """
        Overwrite consecutive cells starting at a 0-based column position.

        Returns False if the row does not exist.
        """


class PropertyStore(ABC):
    """Contract for the generic key-value property store"""

    @abstractmethod
    def get_property(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_property(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete_property(self, key: str) -> None:
        pass


class _SQLiteBase:
    """Shared connection handling"""

    def __init__(self, db_path: str):
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections"""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self):
        raise NotImplementedError


class SQLiteSheet(_SQLiteBase, SheetBackend):
    """
    Requisition sheet stored in SQLite.

    Cells are kept as a JSON list per row so column positions behave like
    a spreadsheet: new submitted fields extend the header row, and writes
    address cells by position.
    """

    def __init__(self, db_path: str = "data/requisitions.db", headers: Optional[Sequence[str]] = None):
        """
        Initialize sheet storage.

        Args:
            db_path: Path to SQLite database file
            headers: Header row to install if the sheet has none yet
        """
        super().__init__(db_path)
        if headers:
            self.ensure_headers(headers)

    def _initialize_schema(self):
        schema = """
        CREATE TABLE IF NOT EXISTS sheet_headers (
            position INTEGER PRIMARY KEY,
            name TEXT NOT NULL UNIQUE
        );

        CREATE TABLE IF NOT EXISTS sheet_rows (
            row_id INTEGER PRIMARY KEY AUTOINCREMENT,
            cells TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL
        );
        """
        with self._get_connection() as conn:
            conn.executescript(schema)

    # ===== Header Operations =====

    def get_headers(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT name FROM sheet_headers ORDER BY position"
            ).fetchall()
        return [row['name'] for row in rows]

    def ensure_headers(self, headers: Sequence[str]) -> List[str]:
        """
        Append any of the given headers not yet present.

        Existing positions are never reordered.
        """
        with self._get_connection() as conn:
            self._append_headers(conn, headers)
        return self.get_headers()

    @staticmethod
    def _append_headers(conn: sqlite3.Connection, names: Sequence[str]) -> List[str]:
        existing = [
            row['name'] for row in
            conn.execute("SELECT name FROM sheet_headers ORDER BY position").fetchall()
        ]
        for name in names:
            if name not in existing:
                conn.execute(
                    "INSERT INTO sheet_headers (position, name) VALUES (?, ?)",
                    (len(existing), name)
                )
                existing.append(name)
        return existing

    # ===== Row Operations =====

    def append_row(self, values: Dict[str, Any], row_id: Optional[int] = None) -> int:
        """
        Append a row. Unknown field names become new trailing columns.

        Args:
            values: Header name -> cell value
            row_id: Explicit id (import/replay); must not already exist

        Returns:
            The new row's id
        """
        now = datetime.now(timezone.utc).isoformat()

        with self._get_connection() as conn:
            headers = self._append_headers(conn, list(values.keys()))
            cells = ["" for _ in headers]
            for name, value in values.items():
                cells[headers.index(name)] = "" if value is None else value

            if row_id is None:
                cursor = conn.execute(
                    "INSERT INTO sheet_rows (cells, created_at) VALUES (?, ?)",
                    (json.dumps(cells), now)
                )
            else:
                cursor = conn.execute(
                    "INSERT INTO sheet_rows (row_id, cells, created_at) VALUES (?, ?, ?)",
                    (int(row_id), json.dumps(cells), now)
                )
            new_id = cursor.lastrowid

        self.logger.debug(f"Appended row {new_id}")
        return new_id

    def get_row(self, row_id: int) -> Optional[List[Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT cells FROM sheet_rows WHERE row_id = ?",
                (row_id,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(row['cells'])

    def write_cells(self, row_id: int, start_position: int, values: Sequence[Any]) -> bool:
        if start_position < 0:
            raise ValueError(f"Column position must be >= 0, got {start_position}")

        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT cells FROM sheet_rows WHERE row_id = ?",
                (row_id,)
            ).fetchone()
            if row is None:
                return False

            cells = json.loads(row['cells'])
            end = start_position + len(values)
            if len(cells) < end:
                cells.extend([""] * (end - len(cells)))
            cells[start_position:end] = list(values)

            conn.execute(
                "UPDATE sheet_rows SET cells = ? WHERE row_id = ?",
                (json.dumps(cells), row_id)
            )
        return True

    def row_ids(self) -> List[int]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT row_id FROM sheet_rows ORDER BY row_id").fetchall()
        return [row['row_id'] for row in rows]


class SQLitePropertyStore(_SQLiteBase, PropertyStore):
    """String key-value store backed by a single SQLite table"""

    def __init__(self, db_path: str = "data/requisitions.db"):
        super().__init__(db_path)

    def _initialize_schema(self):
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get_property(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM properties WHERE key = ?",
                (key,)
            ).fetchone()
        return row['value'] if row else None

    def set_property(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO properties (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now(timezone.utc).isoformat())
            )

    def delete_property(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM properties WHERE key = ?", (key,))
