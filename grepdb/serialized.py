"""
Search and replace inside PHP serialized data.

A serialized value is decoded with a small recursive-descent scanner into a
tree of nodes, string leaves are edited, and the tree is re-encoded so every
``s:<length>:`` prefix (and every container header) matches the new UTF-8
byte length of its payload. Array keys, object property names, class names
and numeric/boolean leaves are never searched or modified.

Grammar handled::

    N;                      null
    b:<0|1>;                boolean
    i:<int>;                integer
    d:<float>;              float (including INF, -INF, NAN)
    s:<len>:"<bytes>";      string, <len> is the byte length
    a:<n>:{<key><value>...} array with n key/value pairs
    O:<len>:"<class>":<n>:{<key><value>...}
    r:<int>; R:<int>;       references (kept verbatim)
    C:<len>:"<class>":<len>:{<payload>}   custom serialized object (kept verbatim)
    E:<len>:"<class>:<case>";             enum case (kept verbatim)
"""

import re
from collections import namedtuple
from typing import Union

from grepdb.exceptions import SerializedDataError

# Scalars that are copied through untouched (null, bool, int, float, refs, custom objects, enums)
Raw = namedtuple('Raw', ['data'])
String = namedtuple('String', ['value'])
Array = namedtuple('Array', ['items'])
Object = namedtuple('Object', ['class_name', 'items'])

_INT_RE = re.compile(rb'^[+-]?\d+$')
_FLOAT_RE = re.compile(rb'^(?:[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?|[+-]?INF|NAN)$')

Data = Union[str, bytes]


class _Decoder:
    """Cursor over a byte buffer; each method consumes exactly one production."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def decode(self):
        node = self._value()
        if self.pos != len(self.data):
            raise SerializedDataError("Unexpected trailing data", self.pos)
        return node

    def _value(self):
        if self.pos >= len(self.data):
            raise SerializedDataError("Unexpected end of data", self.pos)

        tag = self.data[self.pos:self.pos + 1]
        if tag == b'N':
            start = self.pos
            self._expect(b'N;')
            return Raw(self.data[start:self.pos])
        if tag == b'b':
            start = self.pos
            self._expect(b'b:')
            value = self._read_until(b';')
            if value not in (b'0', b'1'):
                raise SerializedDataError(f"Invalid boolean {value!r}", start)
            return Raw(self.data[start:self.pos])
        if tag in (b'i', b'r', b'R'):
            start = self.pos
            self._expect(tag + b':')
            self._read_int(b';')
            return Raw(self.data[start:self.pos])
        if tag == b'd':
            start = self.pos
            self._expect(b'd:')
            value = self._read_until(b';')
            if not _FLOAT_RE.match(value):
                raise SerializedDataError(f"Invalid float {value!r}", start)
            return Raw(self.data[start:self.pos])
        if tag == b's':
            self._expect(b's:')
            return String(self._read_quoted(self._read_length(b':'), b';'))
        if tag == b'a':
            self._expect(b'a:')
            count = self._read_length(b':')
            return Array(self._read_members(count))
        if tag == b'O':
            self._expect(b'O:')
            class_name = self._read_quoted(self._read_length(b':'), b':')
            count = self._read_length(b':')
            return Object(class_name, self._read_members(count))
        if tag == b'C':
            start = self.pos
            self._expect(b'C:')
            self._read_quoted(self._read_length(b':'), b':')
            length = self._read_length(b':')
            self._expect(b'{')
            self._take(length)
            self._expect(b'}')
            return Raw(self.data[start:self.pos])
        if tag == b'E':
            start = self.pos
            self._expect(b'E:')
            self._read_quoted(self._read_length(b':'), b';')
            return Raw(self.data[start:self.pos])

        raise SerializedDataError(f"Unknown type tag {tag!r}", self.pos)

    def _key(self):
        tag = self.data[self.pos:self.pos + 1]
        if tag not in (b'i', b's'):
            raise SerializedDataError(f"Invalid key type {tag!r}", self.pos)
        return self._value()

    def _read_members(self, count):
        self._expect(b'{')
        items = []
        for _ in range(count):
            key = self._key()
            items.append((key, self._value()))
        self._expect(b'}')
        return tuple(items)

    def _read_quoted(self, length, terminator):
        self._expect(b'"')
        payload = self._take(length)
        self._expect(b'"' + terminator)
        return payload

    def _read_length(self, terminator):
        start = self.pos
        value = self._read_until(terminator)
        if not value.isdigit():
            raise SerializedDataError(f"Invalid length {value!r}", start)
        return int(value)

    def _read_int(self, terminator):
        start = self.pos
        value = self._read_until(terminator)
        if not _INT_RE.match(value):
            raise SerializedDataError(f"Invalid integer {value!r}", start)
        return int(value)

    def _read_until(self, terminator):
        end = self.data.find(terminator, self.pos)
        if end == -1:
            raise SerializedDataError(f"Missing {terminator!r}", self.pos)
        value = self.data[self.pos:end]
        self.pos = end + len(terminator)
        return value

    def _take(self, length):
        end = self.pos + length
        if end > len(self.data):
            raise SerializedDataError(f"Payload of {length} bytes is truncated", self.pos)
        value = self.data[self.pos:end]
        self.pos = end
        return value

    def _expect(self, literal):
        if not self.data.startswith(literal, self.pos):
            raise SerializedDataError(f"Expected {literal!r}", self.pos)
        self.pos += len(literal)


def decode(data: Data):
    """Decode serialized data into a node tree, raising SerializedDataError when malformed."""
    return _Decoder(_to_bytes(data)).decode()


def encode(node) -> bytes:
    """Re-encode a node tree, recomputing every length prefix from the payloads."""
    if isinstance(node, Raw):
        return node.data
    if isinstance(node, String):
        return b's:%d:"%s";' % (len(node.value), node.value)
    if isinstance(node, Array):
        return b'a:%d:{%s}' % (len(node.items), _encode_members(node.items))
    if isinstance(node, Object):
        return b'O:%d:"%s":%d:{%s}' % (
            len(node.class_name),
            node.class_name,
            len(node.items),
            _encode_members(node.items),
        )
    raise TypeError(f"Cannot encode {node!r}")


def _encode_members(items):
    return b''.join(encode(key) + encode(value) for key, value in items)


def count_in_node(node, term: bytes) -> int:
    """Occurrences of term in string leaves only (keys and class names excluded)."""
    if isinstance(node, String):
        return node.value.count(term)
    if isinstance(node, (Array, Object)):
        return sum(count_in_node(value, term) for _, value in node.items)
    return 0


def replace_in_node(node, term: bytes, replacement: bytes):
    """Return a new tree with term replaced in every string leaf."""
    if isinstance(node, String):
        return String(node.value.replace(term, replacement))
    if isinstance(node, Array):
        return Array(_replace_members(node.items, term, replacement))
    if isinstance(node, Object):
        return Object(node.class_name, _replace_members(node.items, term, replacement))
    return node


def _replace_members(items, term, replacement):
    return tuple((key, replace_in_node(value, term, replacement)) for key, value in items)


def contains_count(data: Data, term: Data) -> int:
    """Count occurrences of term inside the string leaves of serialized data."""
    node = decode(data)
    term = _to_bytes(term)
    if not term:
        return 0
    return count_in_node(node, term)


def replace(data: Data, term: Data, replacement: Data) -> Data:
    """
    Replace term with replacement inside the string leaves of serialized data.

    Returns the same type (str or bytes) that was passed in. Raises
    SerializedDataError if data does not decode.
    """
    node = decode(data)
    term = _to_bytes(term)
    if not term:
        return data
    result = encode(replace_in_node(node, term, _to_bytes(replacement)))
    if isinstance(data, str):
        return result.decode('utf-8', 'surrogateescape')
    return result


def is_serialized(data: Data) -> bool:
    try:
        decode(data)
    except SerializedDataError:
        return False
    return True


def _to_bytes(value: Data) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8', 'surrogateescape')


class Editor:
    """Object wrapper over contains_count/replace for use in strategy classes."""

    def contains_count(self, data: Data, term: Data) -> int:
        return contains_count(data, term)

    def replace(self, data: Data, term: Data, replacement: Data) -> Data:
        return replace(data, term, replacement)
