"""
A Merkle Patricia Trie over a key-value DB.

Nodes are rlp-encoded and stored under their keccak hash, so every
committed root hash stays readable for as long as the DB lives. The
state store relies on that: rolling back an operation is just pointing
the trie at the previous root again.
"""
import rlp
from tokenlaunch.crypto import generate_hash

BLANK_NODE = b''
BLANK_ROOT = generate_hash(rlp.encode(BLANK_NODE))

BRANCH_WIDTH = 17
VALUE_SLOT = 16


def bytes_to_nibbles(b: bytes) -> tuple[int, ...]:
    """Convert a byte string into a nibble tuple."""
    res = []
    for byte in b:
        res.append(byte >> 4)
        res.append(byte & 15)
    return tuple(res)


def _nibbles_to_bytes(nibbles: tuple[int, ...]) -> bytes:
    if len(nibbles) % 2:
        raise ValueError("Nibbles must be of even length")
    return bytes((nibbles[i] << 4) + nibbles[i + 1] for i in range(0, len(nibbles), 2))


def hex_prefix_encode(nibbles: tuple[int, ...], is_leaf: bool) -> bytes:
    """Hex-prefix encode a path; the flag nibble marks leaf vs extension and odd length."""
    flag = (2 if is_leaf else 0) + (len(nibbles) % 2)
    if flag % 2:
        return _nibbles_to_bytes((flag,) + tuple(nibbles))
    return _nibbles_to_bytes((flag, 0) + tuple(nibbles))


def hex_prefix_decode(encoded: bytes) -> tuple[tuple[int, ...], bool]:
    """Returns (nibbles, is_leaf)."""
    nibbles = bytes_to_nibbles(encoded)
    flag = nibbles[0]
    if flag % 2:
        return nibbles[1:], flag >= 2
    return nibbles[2:], flag >= 2


def _common_prefix_length(a: tuple[int, ...], b: tuple[int, ...]) -> int:
    length = 0
    for x, y in zip(a, b):
        if x != y:
            break
        length += 1
    return length


class Trie:
    def __init__(self, db, root_hash=None):
        self.db = db
        self.root_hash = root_hash or BLANK_ROOT

    def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        return self._get(self.root_hash, bytes_to_nibbles(key))

    def set(self, key: bytes, value: bytes):
        """Set a key-value pair."""
        self.root_hash = self._insert(self.root_hash, bytes_to_nibbles(key), value)

    def _load(self, node_hash: bytes):
        if not node_hash or node_hash == BLANK_ROOT:
            return None
        node_data = self.db.get(node_hash)
        if not node_data:
            return None
        return rlp.decode(node_data)

    def _get(self, node_hash: bytes, path: tuple[int, ...]) -> bytes | None:
        node = self._load(node_hash)
        if not node:
            return None

        if len(node) == BRANCH_WIDTH:
            if not path:
                return node[VALUE_SLOT] or None
            return self._get(node[path[0]], path[1:])

        node_path, is_leaf = hex_prefix_decode(node[0])
        if is_leaf:
            return node[1] if node_path == path else None
        if path[:len(node_path)] == node_path:
            return self._get(node[1], path[len(node_path):])
        return None

    def _insert(self, node_hash: bytes, path: tuple[int, ...], value: bytes) -> bytes:
        """Insert below `node_hash`, returning the hash of the replacement node."""
        node = self._load(node_hash)
        if not node:
            return self._put_node([hex_prefix_encode(path, is_leaf=True), value])

        if len(node) == BRANCH_WIDTH:
            node = list(node)
            if not path:
                node[VALUE_SLOT] = value
            else:
                node[path[0]] = self._insert(node[path[0]] or BLANK_ROOT, path[1:], value)
            return self._put_node(node)

        node_path, is_leaf = hex_prefix_decode(node[0])
        common = _common_prefix_length(node_path, path)

        if is_leaf and node_path == path:
            return self._put_node([node[0], value])

        if not is_leaf and common == len(node_path):
            child = self._insert(node[1], path[common:], value)
            return self._put_node([node[0], child])

        # Paths diverge: split into a branch below the shared prefix.
        branch = [BLANK_NODE] * BRANCH_WIDTH
        old_rest = node_path[common:]
        if is_leaf:
            if old_rest:
                branch[old_rest[0]] = self._put_node(
                    [hex_prefix_encode(old_rest[1:], is_leaf=True), node[1]])
            else:
                branch[VALUE_SLOT] = node[1]
        elif len(old_rest) == 1:
            branch[old_rest[0]] = node[1]
        else:
            branch[old_rest[0]] = self._put_node(
                [hex_prefix_encode(old_rest[1:], is_leaf=False), node[1]])

        new_rest = path[common:]
        if new_rest:
            branch[new_rest[0]] = self._put_node(
                [hex_prefix_encode(new_rest[1:], is_leaf=True), value])
        else:
            branch[VALUE_SLOT] = value

        branch_hash = self._put_node(branch)
        if common:
            return self._put_node([hex_prefix_encode(path[:common], is_leaf=False), branch_hash])
        return branch_hash

    def _put_node(self, node) -> bytes:
        encoded_node = rlp.encode(node)
        node_hash = generate_hash(encoded_node)
        self.db.put(node_hash, encoded_node)
        return node_hash
