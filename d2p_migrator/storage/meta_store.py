#!/usr/bin/env python3
"""
Keyed metadata stores read by pouchd.

Two backends are provided: a single-file database holding one table of
(bucket, key, value) rows, and a local directory layout with one
<key>/meta.json file per entry.
"""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Optional

from ..utils.file_utils import ensure_directory

META_FILE = "meta.json"
DIR_MODE = 0o744
FILE_MODE = 0o644


def write_file_sync(path: str, data: str, mode: int = FILE_MODE) -> None:
    """Write a file and fsync it before returning."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, 'w') as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


class DBStore:
    """
    Bucketed key/value store in a single sqlite file.

    Example:
        >>> with DBStore("/var/lib/pouch/volume/volume.db", "volume") as store:
        ...     store.put("data", '{"Name": "data"}')
    """

    def __init__(self, path: str, bucket: str):
        self.path = Path(path)
        self.bucket = bucket
        self.logger = logging.getLogger(__name__)
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "DBStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._conn is not None:
            return
        ensure_directory(str(self.path.parent), mode=DIR_MODE)
        self._conn = sqlite3.connect(str(self.path))
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS kv ("
            " bucket TEXT NOT NULL,"
            " key TEXT NOT NULL,"
            " value BLOB NOT NULL,"
            " PRIMARY KEY (bucket, key))"
        )
        self._conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError(f"store {self.path} is not open")
        return self._conn

    def put(self, key: str, value: str) -> None:
        db = self._db()
        with db:
            db.execute(
                "INSERT OR REPLACE INTO kv (bucket, key, value) VALUES (?, ?, ?)",
                (self.bucket, key, value),
            )


class LocalStore:
    """Directory store: <base_dir>/<key>/meta.json per entry."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def path_for(self, key: str) -> Path:
        return self.base_dir / key / META_FILE

    def put(self, key: str, value: str) -> None:
        ensure_directory(str(self.base_dir / key), mode=DIR_MODE)
        write_file_sync(str(self.path_for(key)), value)

