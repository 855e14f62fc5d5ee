"""
Key-value storage backends for the state trie.

`DB` persists trie nodes and the committed state root to LevelDB through
plyvel (install the `leveldb` extra); `MemoryDB` keeps them in a dict and
is what tests and dry runs use. Both expose get/put/close/is_closed.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 64 * 1024 * 1024,
                 max_open_files: int = 1000):
        """Open the launch state database at `db_path`."""
        import plyvel

        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
        except Exception as e:
            logger.error(f"Failed to open launch state at {db_path}: {e}")
            raise
        self._closed = False
        logger.info(f"Launch state opened at {db_path}")

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        self._check_open()
        try:
            return self._db.get(key)
        except Exception as e:
            logger.error(f"Error reading node {key.hex()[:16]}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        self._check_open()
        try:
            self._db.put(key, value)
        except Exception as e:
            logger.error(f"Error writing node {key.hex()[:16]}: {e}")
            raise

    def close(self):
        if self._closed:
            return
        try:
            self._db.close()
        except Exception as e:
            logger.error(f"Error closing launch state: {e}")
            raise
        self._closed = True
        logger.info("Launch state closed")

    def is_closed(self) -> bool:
        return self._closed


class MemoryDB:
    """In-memory drop-in for `DB`."""

    def __init__(self):
        self._data: dict[bytes, bytes] = {}
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        self._check_open()
        return self._data.get(key)

    def put(self, key: bytes, value: bytes):
        self._check_open()
        self._data[key] = value

    def close(self):
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed
