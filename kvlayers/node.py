from typing import Optional

from .const import PARTITION_LAYER
from .subspace import Subspace


# Sentinel value indicating that the layer of a node is not yet loaded
NOT_LOADED = object()


class Node:
    """Result of looking up a path in a directory layer.

    A Node only lives for the duration of a transaction, the tree itself is
    stored in the database. The walk stops at the first missing segment or at
    the first partition, `path` is the part of `target_path` that was walked.
    """

    __slots__ = ['subspace', 'path', 'target_path', '_layer']

    def __init__(self, subspace: Optional[Subspace], path: tuple,
                 target_path: tuple):
        self.subspace = subspace
        self.path = path
        self.target_path = target_path
        self._layer = NOT_LOADED

    @property
    def exists(self) -> bool:
        return self.subspace is not None

    def prefetch_metadata(self, tr) -> 'Node':
        if self.exists:
            self.load_layer(tr)
        return self

    def load_layer(self, tr) -> bytes:
        self._layer = tr.get(self.subspace.pack((b'layer',))) or b''
        return self._layer

    @property
    def layer(self) -> bytes:
        if self._layer is NOT_LOADED:
            raise ValueError('Layer has not been read')
        return self._layer

    def is_in_partition(self, include_empty_subpath: bool=False) -> bool:
        """Whether the rest of the target path belongs to a partition."""
        return (
            self.exists and
            self.layer == PARTITION_LAYER and
            (include_empty_subpath or len(self.target_path) > len(self.path))
        )

    @property
    def partition_subpath(self) -> tuple:
        return self.target_path[len(self.path):]

    def get_contents(self, directory_layer):
        return directory_layer.contents_of_node(self.subspace, self.path,
                                                self.layer)

    def __repr__(self):
        layer = '?' if self._layer is NOT_LOADED else repr(self._layer)
        return '<Node: {} {}>'.format(self.path, layer)
