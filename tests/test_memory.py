from unittest import mock

import pytest

from kvlayers.const import StoreConf
from kvlayers.errors import NotCommitted, TransactionTooOld, RetryLimitExceeded
from kvlayers.memory import (
    MemoryDatabase, Transaction, add_little_endian, ranges_intersect
)


def test_set_get(db):
    assert db.get(b'foo') is None
    db.set(b'foo', b'bar')
    assert db.get(b'foo') == b'bar'
    db[b'foo'] = b'baz'
    assert db[b'foo'] == b'baz'
    del db[b'foo']
    assert db[b'foo'] is None


def test_set_needs_bytes(db):
    tr = db.create_transaction()
    with pytest.raises(ValueError):
        tr.set(b'foo', 'bar')
    with pytest.raises(ValueError):
        tr.set('foo', b'bar')


def test_get_range(db):
    for key in (b'a', b'b', b'c', b'd'):
        db[key] = key.upper()

    assert db.get_range(b'b', b'd') == [(b'b', b'B'), (b'c', b'C')]
    assert db.get_range(b'a', b'z', limit=2) == [(b'a', b'A'), (b'b', b'B')]
    assert db.get_range(b'a', b'z', limit=1, reverse=True) == [(b'd', b'D')]
    assert db.get_range(b'd', b'a') == []


def test_clear_range(db):
    for key in (b'a', b'b', b'c'):
        db[key] = b''
    db.clear_range(b'a', b'c')
    assert db.get_range(b'', b'\xff') == [(b'c', b'')]


def test_read_your_writes(db):
    db[b'a'] = b'1'
    db[b'b'] = b'2'
    db[b'c'] = b'3'

    tr = db.create_transaction()
    tr.clear(b'b')
    tr[b'd'] = b'4'
    tr.add(b'e', b'\x01\x00')
    tr.add(b'e', b'\x01\x00')
    assert tr[b'b'] is None
    assert tr[b'd'] == b'4'
    assert tr.get_range(b'a', b'z') == [
        (b'a', b'1'), (b'c', b'3'), (b'd', b'4'), (b'e', b'\x02\x00')
    ]
    tr.clear_range_startswith(b'd')
    assert tr.get_range_startswith(b'd') == []
    assert db[b'd'] is None

    tr.commit()
    assert db.get_range(b'a', b'z') == [
        (b'a', b'1'), (b'c', b'3'), (b'e', b'\x02\x00')
    ]


def test_transaction_reads_at_read_version(db):
    db[b'a'] = b'1'
    tr = db.create_transaction()
    assert tr[b'a'] == b'1'
    db[b'a'] = b'2'
    db[b'b'] = b'2'
    assert tr[b'a'] == b'1'
    assert tr.snapshot[b'b'] is None
    assert tr.get_range(b'a', b'z') == [(b'a', b'1')]


def test_conflict(db):
    db[b'a'] = b'1'
    tr = db.create_transaction()
    tr.get(b'a')
    tr.set(b'b', b'1')
    db[b'a'] = b'2'
    with pytest.raises(NotCommitted):
        tr.commit()
    assert db[b'b'] is None


def test_conflict_on_range(db):
    tr = db.create_transaction()
    assert tr.get_range(b'a', b'c') == []
    tr.set(b'x', b'1')
    db[b'b'] = b'1'
    with pytest.raises(NotCommitted):
        tr.commit()


def test_conflict_on_cleared_range(db):
    db[b'b'] = b'1'
    tr = db.create_transaction()
    tr.get(b'b')
    tr.set(b'x', b'1')
    db.clear_range(b'a', b'c')
    with pytest.raises(NotCommitted):
        tr.commit()


def test_no_conflict_outside_limited_range(db):
    db[b'a'] = b'1'
    tr = db.create_transaction()
    assert tr.get_range(b'a', b'z', limit=1) == [(b'a', b'1')]
    tr.set(b'x', b'1')
    db[b'y'] = b'1'
    tr.commit()
    assert db[b'x'] == b'1'


def test_snapshot_reads_do_not_conflict(db):
    db[b'a'] = b'1'
    tr = db.create_transaction()
    assert tr.snapshot.get(b'a') == b'1'
    assert tr.snapshot.get_range(b'a', b'z') == [(b'a', b'1')]
    tr.set(b'b', b'1')
    db[b'a'] = b'2'
    tr.commit()
    assert db[b'b'] == b'1'


def test_blind_writes_do_not_conflict(db):
    tr1 = db.create_transaction()
    tr2 = db.create_transaction()
    tr1.add(b'counter', b'\x01')
    tr2.add(b'counter', b'\x01')
    tr1.set(b'a', b'1')
    tr2.set(b'a', b'2')
    tr1.commit()
    tr2.commit()
    assert db[b'counter'] == b'\x02'
    assert db[b'a'] == b'2'


def test_read_only_commit(db):
    db[b'a'] = b'1'
    tr = db.create_transaction()
    tr.get(b'a')
    db[b'a'] = b'2'
    assert tr.commit() == 1


def test_transaction_too_old():
    db = MemoryDatabase(StoreConf(None, 2, 5.0))
    tr = db.create_transaction()
    tr.get(b'a')
    for key in (b'b', b'c', b'd'):
        db[key] = b''
    tr.set(b'e', b'')
    with pytest.raises(TransactionTooOld):
        tr.commit()


def test_transact_retries(db):
    calls = list()

    def func(tr):
        calls.append(tr.get(b'counter'))
        if len(calls) == 1:
            db[b'counter'] = b'1'
        tr.set(b'counter', b'2')
        return len(calls)

    assert db.transact(func) == 2
    assert calls == [None, b'1']
    assert db[b'counter'] == b'2'


def test_transact_retry_limit():
    db = MemoryDatabase(StoreConf(1, 100, 5.0))

    def func(tr):
        tr.get(b'a')
        db[b'a'] = b'1'
        tr.set(b'b', b'1')

    with pytest.raises(RetryLimitExceeded):
        db.transact(func)
    assert db[b'b'] is None


def test_transact_propagates_other_errors(db):

    def func(tr):
        tr.set(b'a', b'1')
        raise RuntimeError('foo')

    with pytest.raises(RuntimeError):
        db.transact(func)
    assert db[b'a'] is None


def test_transaction_transact(db):
    tr = db.create_transaction()
    assert tr.transact(lambda t: t) is tr


def test_reset(db):
    tr = db.create_transaction()
    tr.set(b'a', b'1')
    tr.reset()
    tr.commit()
    assert db[b'a'] is None


def test_commit_takes_write_lock(db):
    db._lock = mock.Mock()
    tr = db.create_transaction()
    tr.set(b'a', b'1')
    tr.commit()
    db._lock.writer_lock.acquire.assert_called_once_with()
    db._lock.writer_lock.release.assert_called_once_with()


def test_old_versions_are_pruned():
    db = MemoryDatabase(StoreConf(None, 2, 5.0))
    for i in range(10):
        db[b'a'] = str(i).encode()
    assert len(db._values[b'a']) <= 3
    assert db[b'a'] == b'9'


def test_read_of_pruned_versions_is_too_old():
    db = MemoryDatabase(StoreConf(None, 1, 5.0))
    db[b'a'] = b'x'
    tr = db.create_transaction()
    assert tr.get(b'other') is None
    db[b'a'] = b'y'
    db[b'a'] = b'z'
    with pytest.raises(TransactionTooOld):
        tr.get(b'a')
    with pytest.raises(TransactionTooOld):
        tr.snapshot.get_range(b'a', b'z')


def test_transact_retries_reads_of_pruned_versions():
    db = MemoryDatabase(StoreConf(None, 1, 5.0))
    db[b'a'] = b'x'
    attempts = list()
    reads = list()

    def func(tr):
        tr.get(b'other')
        attempts.append(tr.read_version)
        if len(attempts) == 1:
            db[b'a'] = b'y'
            db[b'a'] = b'z'
        reads.append(tr.get(b'a'))
        return reads[-1]

    assert db.transact(func) == b'z'
    assert len(attempts) == 2
    assert reads == [b'z']


def test_add_little_endian():
    assert add_little_endian(None, b'\x01\x00') == b'\x01\x00'
    assert add_little_endian(b'\xff\x00', b'\x01\x00') == b'\x00\x01'
    assert add_little_endian(b'\xff', b'\x01') == b'\x00'
    assert add_little_endian(b'\x01\x02\x03', b'\x01') == b'\x02'


def test_ranges_intersect():
    assert ranges_intersect((b'a', b'c'), (b'b', b'd'))
    assert ranges_intersect((b'a', b'z'), (b'b', b'c'))
    assert not ranges_intersect((b'a', b'b'), (b'b', b'c'))
    assert not ranges_intersect((b'c', b'd'), (b'a', b'b'))


def test_repr(db):
    assert repr(db) == '<MemoryDatabase: version 0>'
    assert repr(Transaction(db)) == '<Transaction: read version None>'
