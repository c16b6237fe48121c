# manages the sqlite file behind the key-value store, internal to db package
import os.path
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = config.DB_PATH

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_initialized: set[str] = set()


def _init_db(conn: sqlite3.Connection, path: str) -> None:
    _logger.info(f"Initializing key-value store at {path}...")
    conn.executescript(_SCHEMA)
    conn.commit()


@contextmanager
def connect(path: str | None = None) -> Iterator[sqlite3.Connection]:
    """Context manager yielding a sqlite connection to the store file.

    Creates the parent directory and the kv table on first use of a path.
    Errors are left to the caller; the store decides what is fatal.
    """
    path = path or DB_PATH
    parent = os.path.dirname(path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    conn = sqlite3.connect(path, timeout=5.0)
    try:
        if path not in _initialized:
            _init_db(conn, path)
            _initialized.add(path)
        yield conn
    finally:
        conn.close()
