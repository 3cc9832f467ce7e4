from typing import Tuple

from . import codec


class Subspace:
    """Namespace of keys sharing a common binary prefix.

    Tuples packed with a Subspace are encoded and appended to its prefix,
    unpacking removes the prefix before decoding.
    """

    __slots__ = ['_raw_prefix']

    def __init__(self, prefix_tuple: tuple=tuple(), raw_prefix: bytes=b''):
        self._raw_prefix = raw_prefix + codec.encode(prefix_tuple)

    def __getitem__(self, item) -> 'Subspace':
        return Subspace((item,), self._raw_prefix)

    def subspace(self, prefix_tuple: tuple) -> 'Subspace':
        return Subspace(prefix_tuple, self._raw_prefix)

    def key(self) -> bytes:
        return self._raw_prefix

    def pack(self, t: tuple=tuple()) -> bytes:
        return self._raw_prefix + codec.encode(t)

    def unpack(self, key: bytes) -> tuple:
        if not self.contains(key):
            raise ValueError('Cannot unpack key that is not in subspace')
        return codec.decode(key[len(self._raw_prefix):])

    def range(self, t: tuple=tuple()) -> Tuple[bytes, bytes]:
        begin, end = codec.range(t)
        return self._raw_prefix + begin, self._raw_prefix + end

    def contains(self, key: bytes) -> bool:
        return key.startswith(self._raw_prefix)

    def __eq__(self, other):
        return (isinstance(other, Subspace) and
                self._raw_prefix == other._raw_prefix)

    def __hash__(self):
        return hash(self._raw_prefix)

    def __repr__(self):
        return '<Subspace: {!r}>'.format(self._raw_prefix)
