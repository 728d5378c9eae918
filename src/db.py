"""SQLite access for the location log and permission record."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

# The daemon's scheduler thread and CLI commands open the same file.
BUSY_TIMEOUT_S = 5.0


@contextmanager
def wal_connect(db_path: str | Path, row_factory: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a WAL-mode connection; commit on success, roll back on error, always close.

    Args:
        db_path: Path to database file.
        row_factory: If True, rows come back as sqlite3.Row.
    """
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_S)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        if row_factory:
            conn.row_factory = sqlite3.Row
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_schema(db_path: str | Path, *statements: str) -> Path:
    """Create the parent directory and run idempotent DDL statements."""
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with wal_connect(path) as conn:
        for statement in statements:
            conn.execute(statement)
    return path
