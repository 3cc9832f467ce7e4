"""Hierarchy of named directories mapped to short key prefixes.

Directories are stored in a node subspace: each directory is a node indexed
by its prefix, holding the prefixes of its children by name and the layer it
was created with. Contents of directories live under their prefix in the
content subspace. A directory created with the "partition" layer manages its
own subtree with an independent DirectoryLayer nested in its prefix.
"""
from logging import getLogger
from typing import Iterator, List, Optional, Tuple

from . import codec
from .allocator import HighContentionAllocator
from .const import (
    ENDIAN, DIRECTORY_VERSION, VERSION_NUMBER_BYTES, NODE_SUBSPACE_PREFIX,
    PARTITION_LAYER, SUBDIRS
)
from .errors import (
    RootDirectoryInvalid, DirectoryMissing, SourceMissing, DirectoryExists,
    DestinationExists, ParentMissing, InvalidDestination, CrossPartitionMove,
    IncompatibleLayer, PrefixInUse, ManualPrefixNotAllowed,
    PartitionRootAccess, UnsupportedVersion, ReadOnlyVersion
)
from .node import Node
from .subspace import Subspace
from .utils import printable, starts_with, strinc, transactional

logger = getLogger(__name__)


def to_unicode_path(path) -> Tuple[str, ...]:
    if isinstance(path, str):
        return path,

    if isinstance(path, (tuple, list)):
        for i, name in enumerate(path):
            if not isinstance(name, str):
                raise ValueError('Path elements must be strings ({} at {})'
                                 .format(type(name).__name__, i))
        return tuple(path)

    raise ValueError('Invalid path: must be a string or a sequence of '
                     'strings')


def to_layer(layer) -> Optional[bytes]:
    if layer is None or isinstance(layer, bytes):
        return layer
    if isinstance(layer, str):
        return layer.encode('utf-8')
    raise ValueError('Layer must be bytes or a string')


class DirectoryLayer:

    __slots__ = ['_node_subspace', '_content_subspace',
                 '_allow_manual_prefixes', '_root_node', '_allocator',
                 '_path', 'parent']

    # ######################### Public API ################################

    def __init__(self, node_subspace: Optional[Subspace]=None,
                 content_subspace: Optional[Subspace]=None,
                 allow_manual_prefixes: bool=False, path: tuple=tuple(),
                 parent: Optional['DirectoryLayer']=None):
        if node_subspace is None:
            node_subspace = Subspace(raw_prefix=NODE_SUBSPACE_PREFIX)
        if content_subspace is None:
            content_subspace = Subspace()

        # Automatically allocated prefixes all fall within content_subspace
        self._node_subspace = node_subspace
        self._content_subspace = content_subspace
        self._allow_manual_prefixes = allow_manual_prefixes
        self._path = tuple(path)
        self.parent = parent

        # The root node is the one whose prefix is the node subspace
        self._root_node = node_subspace[node_subspace.key()]
        self._allocator = HighContentionAllocator(self._root_node[b'hca'])

    @property
    def path(self) -> tuple:
        return self._path

    @property
    def layer(self) -> bytes:
        return b''

    def partition(self, prefix: bytes, path: tuple) -> 'DirectoryLayer':
        """Create the directory layer of the partition stored at prefix."""
        return DirectoryLayer(
            Subspace(raw_prefix=prefix + NODE_SUBSPACE_PREFIX),
            Subspace(raw_prefix=prefix),
            path=path,
            parent=self
        )

    def create_or_open(self, db_or_tr, path, layer=None) -> 'DirectorySubspace':
        """Open a directory, creating it and its parents if needed.

        :param path: Name or tuple of names of the directory
        :param layer: If given, the directory is created with this layer and
                      opening it with a different layer raises an
                      IncompatibleLayer error
        """
        return self._create_or_open(db_or_tr, path, layer, None, True, True)

    def open(self, db_or_tr, path, layer=None) -> 'DirectorySubspace':
        return self._create_or_open(db_or_tr, path, layer, None, False, True)

    def create(self, db_or_tr, path, layer=None,
               prefix: Optional[bytes]=None) -> 'DirectorySubspace':
        """Create a directory that must not already exist.

        A prefix can only be given when manual prefixes are allowed, it must
        neither contain nor be contained in the prefix of another directory.
        """
        return self._create_or_open(db_or_tr, path, layer, prefix, True,
                                    False)

    def move_to(self, db_or_tr, new_absolute_path):
        raise RootDirectoryInvalid('The root directory cannot be moved')

    @transactional
    def move(self, tr, old_path, new_path) -> 'DirectorySubspace':
        """Move a directory to a new path, keeping its prefix and contents.

        The parent of the destination must exist, the destination itself
        must not.
        """
        self._check_version(tr)

        old_path = to_unicode_path(old_path)
        new_path = to_unicode_path(new_path)

        if starts_with(new_path, old_path):
            raise InvalidDestination('The destination directory cannot be a '
                                     'subdirectory of the source directory')
        if not new_path:
            raise RootDirectoryInvalid('The root directory cannot be the '
                                       'destination of a move')

        old_node = self._find(tr, old_path).prefetch_metadata(tr)
        new_node = self._find(tr, new_path).prefetch_metadata(tr)

        if not old_node.exists:
            raise SourceMissing('The source directory does not exist')

        old_in_partition = old_node.is_in_partition()
        new_in_partition = new_node.is_in_partition()
        if old_in_partition or new_in_partition:
            if (not old_in_partition or not new_in_partition or
                    old_node.path != new_node.path):
                raise CrossPartitionMove('Cannot move between partitions')

            return new_node.get_contents(self).directory_layer.move(
                tr, old_node.partition_subpath, new_node.partition_subpath
            )

        if new_node.exists:
            raise DestinationExists('The destination directory already '
                                    'exists, it must be removed first')

        parent_node = self._find(tr, new_path[:-1])
        if not parent_node.exists:
            raise ParentMissing('The parent of the destination directory '
                                'does not exist, create it first')

        prefix = self._node_subspace.unpack(old_node.subspace.key())[0]
        tr.set(parent_node.subspace.pack((SUBDIRS, new_path[-1])), prefix)
        self._remove_from_parent(tr, old_path)
        logger.debug('Moved directory %s to %s', old_path, new_path)
        return self.contents_of_node(old_node.subspace, new_path,
                                     old_node.layer)

    @transactional
    def remove(self, tr, path=tuple()) -> bool:
        """Remove a directory, its subdirectories and all their contents."""
        return self._remove(tr, path, True)

    @transactional
    def remove_if_exists(self, tr, path=tuple()) -> bool:
        return self._remove(tr, path, False)

    @transactional
    def list_children(self, tr, path=tuple()) -> List[str]:
        self._check_version(tr, write_access=False)

        path = to_unicode_path(path)
        node = self._find(tr, path).prefetch_metadata(tr)
        if not node.exists:
            raise DirectoryMissing('The directory does not exist')

        if node.is_in_partition(include_empty_subpath=True):
            return node.get_contents(self).directory_layer.list_children(
                tr, node.partition_subpath
            )

        return [name for name, _ in
                self._subdir_names_and_nodes(tr, node.subspace)]

    @transactional
    def exists(self, tr, path=tuple()) -> bool:
        self._check_version(tr, write_access=False)

        path = to_unicode_path(path)
        node = self._find(tr, path).prefetch_metadata(tr)
        if not node.exists:
            return False

        if node.is_in_partition():
            return node.get_contents(self).directory_layer.exists(
                tr, node.partition_subpath
            )

        return True

    def contents_of_node(self, node: Subspace, path: tuple,
                         layer: bytes=b'') -> 'DirectorySubspace':
        prefix = self._node_subspace.unpack(node.key())[0]
        return DirectorySubspace(self._path + tuple(path), prefix, self,
                                 layer)

    def __repr__(self):
        return '<DirectoryLayer: {!r} {}>'.format(self._node_subspace,
                                                  self._path)

    # ####################### Implementation ##############################

    @transactional
    def _create_or_open(self, tr, path, layer, prefix, allow_create,
                        allow_open) -> 'DirectorySubspace':
        self._check_version(tr, write_access=False)

        if prefix is not None and not self._allow_manual_prefixes:
            if not self._path:
                raise ManualPrefixNotAllowed('Cannot specify a prefix unless '
                                             'manual prefixes are enabled')
            raise ManualPrefixNotAllowed('Cannot specify a prefix in a '
                                         'partition')

        path = to_unicode_path(path)
        if not path:
            raise RootDirectoryInvalid('The root directory cannot be opened')
        layer = to_layer(layer)

        existing_node = self._find(tr, path).prefetch_metadata(tr)
        if existing_node.exists:
            if existing_node.is_in_partition():
                sublayer = existing_node.get_contents(self).directory_layer
                return sublayer._create_or_open(
                    tr, existing_node.partition_subpath, layer, prefix,
                    allow_create, allow_open
                )

            if not allow_open:
                raise DirectoryExists('The directory already exists')

            if layer and existing_node.layer != layer:
                raise IncompatibleLayer(
                    'The directory was created with an incompatible layer '
                    '{!r}'.format(existing_node.layer)
                )

            return existing_node.get_contents(self)

        if not allow_create:
            raise DirectoryMissing('The directory does not exist')

        self._check_version(tr)

        if prefix is None:
            prefix = self._allocate_prefix(tr)
        elif not self._is_prefix_free(tr, prefix):
            raise PrefixInUse('The prefix {} is already in use'.format(
                printable(prefix)
            ))

        if len(path) > 1:
            parent = self._create_or_open(tr, path[:-1], None, None, True,
                                          True)
            parent_node = self._node_with_prefix(parent.key())
        else:
            parent_node = self._root_node

        node = self._node_with_prefix(prefix)
        tr.set(parent_node.pack((SUBDIRS, path[-1])), prefix)
        tr.set(node.pack((b'layer',)), layer or b'')
        logger.debug('Created directory %s at prefix %s', path,
                     printable(prefix))

        return self.contents_of_node(node, path, layer or b'')

    def _allocate_prefix(self, tr) -> bytes:
        prefix = (self._content_subspace.key() +
                  codec.encode((self._allocator.allocate(tr),)))

        if tr.get_range(prefix, strinc(prefix), limit=1):
            raise PrefixInUse(
                'The database has keys stored at the prefix chosen by the '
                'automatic prefix allocator: {}'.format(printable(prefix))
            )

        if not self._is_prefix_free(tr.snapshot, prefix):
            raise PrefixInUse('The directory layer has manually allocated '
                              'prefixes that conflict with the automatic '
                              'prefix allocator')

        return prefix

    def _remove(self, tr, path, fail_on_nonexistent: bool) -> bool:
        self._check_version(tr)

        path = to_unicode_path(path)
        if not path:
            raise RootDirectoryInvalid('The root directory cannot be removed')

        node = self._find(tr, path).prefetch_metadata(tr)
        if not node.exists:
            if fail_on_nonexistent:
                raise DirectoryMissing('The directory does not exist')
            return False

        if node.is_in_partition():
            sublayer = node.get_contents(self).directory_layer
            return sublayer._remove(tr, node.partition_subpath,
                                    fail_on_nonexistent)

        self._remove_recursive(tr, node.subspace)
        self._remove_from_parent(tr, path)
        logger.debug('Removed directory %s', path)
        return True

    def _check_version(self, tr, write_access: bool=True):
        data = tr.get(self._root_node.pack((b'version',)))

        if data is None:
            if write_access:
                self._initialize_directory(tr)
            return

        version = tuple(
            int.from_bytes(data[start:start + VERSION_NUMBER_BYTES], ENDIAN)
            for start in range(0, 3 * VERSION_NUMBER_BYTES,
                               VERSION_NUMBER_BYTES)
        )
        if version[0] > DIRECTORY_VERSION[0]:
            raise UnsupportedVersion(
                'Cannot load directory with version {}.{}.{} using directory '
                'layer {}.{}.{}'.format(*(version + DIRECTORY_VERSION))
            )

        if version[1] > DIRECTORY_VERSION[1] and write_access:
            raise ReadOnlyVersion(
                'Directory with version {}.{}.{} is read-only when opened '
                'using directory layer {}.{}.{}'.format(
                    *(version + DIRECTORY_VERSION)
                )
            )

    def _initialize_directory(self, tr):
        data = b''.join(number.to_bytes(VERSION_NUMBER_BYTES, ENDIAN)
                        for number in DIRECTORY_VERSION)
        tr.set(self._root_node.pack((b'version',)), data)

    def _node_containing_key(self, tr, key: bytes) -> Optional[Subspace]:
        if key.startswith(self._node_subspace.key()):
            return self._root_node

        begin, _ = self._node_subspace.range()
        end = self._node_subspace.pack((key,)) + b'\x00'
        for node_key, _ in tr.get_range(begin, end, limit=1, reverse=True):
            previous_prefix = self._node_subspace.unpack(node_key)[0]
            if key.startswith(previous_prefix):
                return self._node_with_prefix(previous_prefix)
        return None

    def _node_with_prefix(self, prefix: Optional[bytes]) -> Optional[Subspace]:
        if prefix is None:
            return None
        return self._node_subspace[prefix]

    def _find(self, tr, path: tuple) -> Node:
        """Walk the tree down to path, stopping early at a partition."""
        node = Node(self._root_node, tuple(), path)
        for i, name in enumerate(path):
            prefix = tr.get(node.subspace.pack((SUBDIRS, name)))
            node = Node(self._node_with_prefix(prefix), path[:i + 1], path)
            if not node.exists or node.load_layer(tr) == PARTITION_LAYER:
                return node
        return node

    def _subdir_names_and_nodes(self, tr, node: Subspace) -> Iterator[tuple]:
        subdirs = node[SUBDIRS]
        begin, end = subdirs.range()
        for key, prefix in tr.get_range(begin, end):
            yield subdirs.unpack(key)[0], self._node_with_prefix(prefix)

    def _remove_from_parent(self, tr, path: tuple):
        parent = self._find(tr, path[:-1])
        tr.clear(parent.subspace.pack((SUBDIRS, path[-1])))

    def _remove_recursive(self, tr, node: Subspace):
        for _, child in self._subdir_names_and_nodes(tr, node):
            self._remove_recursive(tr, child)

        prefix = self._node_subspace.unpack(node.key())[0]
        tr.clear_range(prefix, strinc(prefix))
        tr.clear_range(*node.range())

    def _is_prefix_free(self, tr, prefix: bytes) -> bool:
        """Whether prefix neither contains nor is contained in a prefix.

        The root node is considered, so prefixes of the node subspace are
        never free.
        """
        # No key range lies beyond a prefix made only of 0xff bytes
        if not prefix.rstrip(b'\xff'):
            return False

        if self._node_containing_key(tr, prefix) is not None:
            return False

        nodes_in_prefix = tr.get_range(
            self._node_subspace.pack((prefix,)),
            self._node_subspace.pack((strinc(prefix),)),
            limit=1
        )
        return not nodes_in_prefix


class DirectorySubspace(Subspace):
    """Subspace of a directory, also giving access to its subdirectories.

    Paths given to the directory operations are relative to the directory.
    A directory whose layer is "partition" owns a nested DirectoryLayer
    stored in its prefix, its own prefix cannot be used to compose keys.
    """

    __slots__ = ['_path', '_layer', '_directory_layer']

    def __init__(self, path: tuple, prefix: bytes,
                 directory_layer: DirectoryLayer, layer: bytes=b''):
        super().__init__(raw_prefix=prefix)
        self._path = tuple(path)
        self._layer = layer
        if layer == PARTITION_LAYER:
            directory_layer = directory_layer.partition(prefix, self._path)
        self._directory_layer = directory_layer

    @property
    def path(self) -> tuple:
        return self._path

    @property
    def layer(self) -> bytes:
        return self._layer

    @property
    def directory_layer(self) -> DirectoryLayer:
        return self._directory_layer

    @property
    def is_partition(self) -> bool:
        return self._layer == PARTITION_LAYER

    def create_or_open(self, db_or_tr, path, layer=None) -> 'DirectorySubspace':
        return self._directory_layer.create_or_open(
            db_or_tr, self._partition_subpath(path), layer
        )

    def open(self, db_or_tr, path, layer=None) -> 'DirectorySubspace':
        return self._directory_layer.open(
            db_or_tr, self._partition_subpath(path), layer
        )

    def create(self, db_or_tr, path, layer=None,
               prefix: Optional[bytes]=None) -> 'DirectorySubspace':
        return self._directory_layer.create(
            db_or_tr, self._partition_subpath(path), layer, prefix
        )

    def list_children(self, db_or_tr, path=tuple()) -> List[str]:
        return self._directory_layer.list_children(
            db_or_tr, self._partition_subpath(path)
        )

    def move(self, db_or_tr, old_path, new_path) -> 'DirectorySubspace':
        return self._directory_layer.move(
            db_or_tr, self._partition_subpath(old_path),
            self._partition_subpath(new_path)
        )

    def move_to(self, db_or_tr, new_absolute_path) -> 'DirectorySubspace':
        """Move this directory to an absolute path in the same partition."""
        directory_layer = self._layer_for_path(tuple())
        new_absolute_path = to_unicode_path(new_absolute_path)
        partition_len = len(directory_layer.path)
        if new_absolute_path[:partition_len] != directory_layer.path:
            raise CrossPartitionMove('Cannot move between partitions')

        return directory_layer.move(db_or_tr, self._path[partition_len:],
                                    new_absolute_path[partition_len:])

    def remove(self, db_or_tr, path=tuple()) -> bool:
        directory_layer = self._layer_for_path(path)
        return directory_layer.remove(
            db_or_tr, self._partition_subpath(path, directory_layer)
        )

    def remove_if_exists(self, db_or_tr, path=tuple()) -> bool:
        directory_layer = self._layer_for_path(path)
        return directory_layer.remove_if_exists(
            db_or_tr, self._partition_subpath(path, directory_layer)
        )

    def exists(self, db_or_tr, path=tuple()) -> bool:
        directory_layer = self._layer_for_path(path)
        return directory_layer.exists(
            db_or_tr, self._partition_subpath(path, directory_layer)
        )

    # Composing keys from the root of a partition would write them in the
    # space of its nested directory layer

    def __getitem__(self, item) -> Subspace:
        self._check_not_partition()
        return super().__getitem__(item)

    def subspace(self, prefix_tuple: tuple) -> Subspace:
        self._check_not_partition()
        return super().subspace(prefix_tuple)

    def key(self) -> bytes:
        self._check_not_partition()
        return super().key()

    def pack(self, t: tuple=tuple()) -> bytes:
        self._check_not_partition()
        return super().pack(t)

    def unpack(self, key: bytes) -> tuple:
        self._check_not_partition()
        return super().unpack(key)

    def range(self, t: tuple=tuple()) -> Tuple[bytes, bytes]:
        self._check_not_partition()
        return super().range(t)

    def contains(self, key: bytes) -> bool:
        self._check_not_partition()
        return super().contains(key)

    def __repr__(self):
        return '<DirectorySubspace: {} {!r} {!r}>'.format(
            self._path, self._raw_prefix, self._layer
        )

    def _check_not_partition(self):
        if self.is_partition:
            raise PartitionRootAccess('Cannot use the root of a directory '
                                      'partition to compose keys')

    def _partition_subpath(self, path, directory_layer=None) -> tuple:
        if directory_layer is None:
            directory_layer = self._directory_layer
        return (self._path[len(directory_layer.path):] +
                to_unicode_path(path))

    def _layer_for_path(self, path) -> DirectoryLayer:
        # The partition itself belongs to the directory layer containing it
        if self.is_partition and not to_unicode_path(path):
            return self._directory_layer.parent
        return self._directory_layer
