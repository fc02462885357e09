# Strongbox - SQLite Connection Helpers
#
# Key stores open a fresh connection per operation through `open_db()`,
# which applies the same PRAGMAs everywhere (WAL journal, busy timeout,
# foreign keys), commits on success, rolls back on error and always closes.

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

BUSY_TIMEOUT_MS = 5000


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = True,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file (or ``":memory:"``).
        row_factory: If True, rows come back as ``sqlite3.Row``.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def open_db(db_path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    """Yield a connection inside a transaction and close it afterwards."""
    conn = connect(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def ensure_schema(db_path: Union[str, Path], ddl: str) -> None:
    """Create the parent directory and run idempotent DDL statements."""
    path = Path(db_path)
    if str(db_path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    with open_db(path) as conn:
        conn.executescript(ddl)
