"""
Persisted state for the launch system.

All records live in one state trie; values are msgpack-encoded dicts
keyed by keccak(namespace + key). The committed root hash is written to
the DB under STATE_ROOT_KEY, so any code built over the same DB resumes
from the same state.
"""
# Prefer the msgpack library for compact, deterministic encoding
import msgpack
import logging
from contextlib import contextmanager
from typing import Any

from tokenlaunch.crypto import generate_hash
from tokenlaunch.events import EventLog
from tokenlaunch.trie import Trie

logger = logging.getLogger(__name__)

STATE_ROOT_KEY = b'state_root'

# msgpack ints stop at 64 bits; token amounts in base units do not
BIG_INT_EXT = 1


def _encode_big_int(obj):
    if isinstance(obj, int):
        length = (obj.bit_length() + 8) // 8
        return msgpack.ExtType(BIG_INT_EXT, obj.to_bytes(length, 'big', signed=True))
    raise TypeError(f"Cannot serialize {type(obj).__name__}")


def _decode_ext(code: int, data: bytes):
    if code == BIG_INT_EXT:
        return int.from_bytes(data, 'big', signed=True)
    return msgpack.ExtType(code, data)


def encode_value(value: Any) -> bytes:
    return msgpack.packb(value, use_bin_type=True, default=_encode_big_int)


def decode_value(encoded: bytes) -> Any:
    return msgpack.unpackb(encoded, raw=False, ext_hook=_decode_ext)


class StateStore:
    def __init__(self, db, root_hash: bytes = None):
        self.db = db
        if root_hash is None:
            root_hash = db.get(STATE_ROOT_KEY)
        self.trie = Trie(db, root_hash=root_hash)
        self.events = EventLog()
        self._depth = 0

    @property
    def root_hash(self) -> bytes:
        return self.trie.root_hash

    @staticmethod
    def _key(namespace: bytes, key: bytes) -> bytes:
        return generate_hash(namespace + b':' + key)

    def get(self, namespace: bytes, key: bytes = b'', default: Any = None) -> Any:
        encoded = self.trie.get(self._key(namespace, key))
        if encoded is None:
            return default
        return decode_value(encoded)

    def set(self, namespace: bytes, key: bytes, value: Any):
        self.trie.set(self._key(namespace, key), encode_value(value))

    def emit(self, name: str, **args):
        """Record a notification; it becomes visible when the enclosing operation commits."""
        self.events.emit(name, **args)
        if self._depth == 0:
            self.events.commit()

    @contextmanager
    def atomic(self):
        """
        Run a block all-or-nothing.

        On any exception the trie root and the pending events go back to
        where they were on entry, then the exception propagates. Nested
        blocks join the outermost one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = self.trie.root_hash
        mark = self.events.mark()
        self._depth = 1
        try:
            yield self
        except Exception as e:
            self.trie.root_hash = snapshot
            self.events.rollback(mark)
            logger.warning(f"Operation rolled back: {e}")
            raise
        finally:
            self._depth = 0

        self.db.put(STATE_ROOT_KEY, self.trie.root_hash)
        self.events.commit()
