import pytest

from kvlayers import codec
from kvlayers.subspace import Subspace


def test_subspace_prefix():
    assert Subspace().key() == b''
    assert Subspace(raw_prefix=b'\xfe').key() == b'\xfe'
    assert Subspace(('foo',)).key() == b'\x02foo\x00'
    assert Subspace((1,), b'\xfe').key() == b'\xfe\x15\x01'


def test_subspace_nesting():
    s = Subspace(raw_prefix=b'\xfe')
    assert s['foo'].key() == b'\xfe\x02foo\x00'
    assert s['foo'][0].key() == b'\xfe\x02foo\x00\x14'
    assert s.subspace(('foo', 0)) == s['foo'][0]


def test_subspace_pack_unpack():
    s = Subspace(raw_prefix=b'\xfe')
    key = s.pack((b'bar', 42))
    assert key == b'\xfe' + codec.encode((b'bar', 42))
    assert s.unpack(key) == (b'bar', 42)
    assert s.pack() == b'\xfe'

    with pytest.raises(ValueError):
        s.unpack(b'\xfd\x14')


def test_subspace_range():
    s = Subspace(raw_prefix=b'\xfe')
    assert s.range() == (b'\xfe\x00', b'\xfe\xff')
    begin, end = s.range(('a',))
    assert begin <= s.pack(('a', 1)) < end
    assert not begin <= s.pack(('b',)) < end


def test_subspace_contains():
    s = Subspace(('foo',))
    assert s.contains(s.pack((1,)))
    assert not s.contains(b'\x02bar\x00')


def test_subspace_eq_hash_repr():
    assert Subspace((1,)) == Subspace(raw_prefix=b'\x15\x01')
    assert Subspace((1,)) != Subspace((2,))
    assert len({Subspace((1,)), Subspace(raw_prefix=b'\x15\x01')}) == 1
    assert repr(Subspace(raw_prefix=b'\xfe')) == "<Subspace: b'\\xfe'>"


def test_subspace_slots():
    s = Subspace()
    with pytest.raises(AttributeError):
        s.foo = True
