import pytest

from kvlayers.node import Node, NOT_LOADED
from kvlayers.subspace import Subspace

node_subspace = Subspace(raw_prefix=b'\xfe')


def test_missing_node(db):
    node = Node(None, ('a',), ('a', 'b'))
    assert not node.exists
    assert node.prefetch_metadata(db.create_transaction()) is node
    assert not node.is_in_partition()
    with pytest.raises(ValueError):
        node.layer


def test_node_layer_is_loaded_lazily(db):
    subspace = node_subspace[b'\x15\x01']
    db[subspace.pack((b'layer',))] = b'my-layer'

    node = Node(subspace, ('a',), ('a',))
    assert node._layer is NOT_LOADED
    with pytest.raises(ValueError):
        node.layer

    node.prefetch_metadata(db.create_transaction())
    assert node.layer == b'my-layer'


def test_node_without_layer(db):
    node = Node(node_subspace[b'\x15\x01'], ('a',), ('a',))
    assert node.load_layer(db.create_transaction()) == b''


def test_node_in_partition(db):
    subspace = node_subspace[b'\x15\x02']
    db[subspace.pack((b'layer',))] = b'partition'
    tr = db.create_transaction()

    node = Node(subspace, ('p',), ('p', 'q', 'r')).prefetch_metadata(tr)
    assert node.is_in_partition()
    assert node.partition_subpath == ('q', 'r')

    node = Node(subspace, ('p',), ('p',)).prefetch_metadata(tr)
    assert not node.is_in_partition()
    assert node.is_in_partition(include_empty_subpath=True)
    assert node.partition_subpath == ()


def test_node_repr():
    node = Node(None, ('a',), ('a',))
    assert repr(node) == "<Node: ('a',) ?>"
