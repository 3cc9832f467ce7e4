import bisect
import enum
from logging import getLogger
from typing import Callable, List, Optional, Tuple

import cachetools
import rwlock

from .const import DEFAULT_STORE_CONF, ENDIAN, StoreConf
from .errors import NotCommitted, TransactionTooOld, RetryLimitExceeded
from .utils import printable, strinc

logger = getLogger(__name__)

KeyValue = Tuple[bytes, bytes]
KeyRange = Tuple[bytes, bytes]


class Mutation(enum.Enum):
    SET = 1
    CLEAR_RANGE = 2
    ADD = 3


def add_little_endian(value: Optional[bytes], param: bytes) -> bytes:
    """Add two little endian integers, the result has the size of param.

    A missing value counts as zero, a value longer than param is truncated.
    """
    length = len(param)
    current = int.from_bytes((value or b'')[:length], ENDIAN)
    total = (current + int.from_bytes(param, ENDIAN)) % (1 << (8 * length))
    return total.to_bytes(length, ENDIAN)


def ranges_intersect(a: KeyRange, b: KeyRange) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def apply_mutation(mutation: tuple, key: bytes,
                   value: Optional[bytes]) -> Optional[bytes]:
    """Value of key after a single mutation."""
    kind, first, second = mutation
    if kind is Mutation.SET:
        return second if first == key else value
    if kind is Mutation.CLEAR_RANGE:
        return None if first <= key < second else value
    if kind is Mutation.ADD:
        return add_little_endian(value, second) if first == key else value
    assert False


class MemoryDatabase:
    """Ordered key-value store kept in memory.

    Transactions read a consistent snapshot of the data as of their read
    version and are committed optimistically: a commit fails with
    NotCommitted when a key read by the transaction was written by another
    transaction committed after its read version.
    """

    __slots__ = ['_conf', '_lock', '_keys', '_values', '_version',
                 '_history']

    def __init__(self, conf: Optional[StoreConf]=None):
        self._conf = conf or DEFAULT_STORE_CONF
        self._lock = rwlock.RWLock()

        # Every key ever written, sorted, and for each of them the list of
        # (version, value) it went through, None being a cleared value
        self._keys = list()
        self._values = dict()
        self._version = 0

        # Write conflict ranges of recent commits indexed by their version
        self._history = cachetools.TTLCache(
            maxsize=self._conf.history_size,
            ttl=self._conf.max_transaction_age
        )

    def create_transaction(self) -> 'Transaction':
        return Transaction(self)

    def transact(self, func: Callable):
        """Run func in a transaction and commit it, retrying on conflicts."""
        tr = self.create_transaction()
        retries = 0
        while True:
            try:
                rv = func(tr)
                tr.commit()
                return rv
            except (NotCommitted, TransactionTooOld) as e:
                retries += 1
                retry_limit = self._conf.retry_limit
                if retry_limit is not None and retries > retry_limit:
                    logger.warning('Giving up transaction after %d retries',
                                   retry_limit)
                    raise RetryLimitExceeded(
                        'Transaction failed after {} retries'.format(
                            retry_limit)
                    ) from e
                logger.debug('Retrying transaction: %s', e)
                tr.reset()

    def get(self, key: bytes) -> Optional[bytes]:
        return self.transact(lambda tr: tr.get(key))

    def get_range(self, begin: bytes, end: bytes, limit: int=0,
                  reverse: bool=False) -> List[KeyValue]:
        return self.transact(
            lambda tr: tr.get_range(begin, end, limit=limit, reverse=reverse)
        )

    def set(self, key: bytes, value: bytes):
        self.transact(lambda tr: tr.set(key, value))

    def clear(self, key: bytes):
        self.transact(lambda tr: tr.clear(key))

    def clear_range(self, begin: bytes, end: bytes):
        self.transact(lambda tr: tr.clear_range(begin, end))

    def __getitem__(self, key: bytes) -> Optional[bytes]:
        return self.get(key)

    def __setitem__(self, key: bytes, value: bytes):
        self.set(key, value)

    def __delitem__(self, key: bytes):
        self.clear(key)

    @property
    def read_access(self):

        class ReadAccess:

            def __enter__(self2):
                self._lock.reader_lock.acquire()

            def __exit__(self2, exc_type, exc_val, exc_tb):
                self._lock.reader_lock.release()

        return ReadAccess()

    @property
    def write_access(self):

        class WriteAccess:

            def __enter__(self2):
                self._lock.writer_lock.acquire()

            def __exit__(self2, exc_type, exc_val, exc_tb):
                self._lock.writer_lock.release()

        return WriteAccess()

    @property
    def version(self) -> int:
        with self.read_access:
            return self._version

    def read_value(self, key: bytes, version: int) -> Optional[bytes]:
        with self.read_access:
            self._check_readable(version)
            return self._value_at(key, version)

    def read_range(self, begin: bytes, end: bytes,
                   version: int) -> List[KeyValue]:
        rv = list()
        with self.read_access:
            self._check_readable(version)
            start = bisect.bisect_left(self._keys, begin)
            stop = bisect.bisect_left(self._keys, end)
            for key in self._keys[start:stop]:
                value = self._value_at(key, version)
                if value is not None:
                    rv.append((key, value))
        return rv

    def commit(self, read_version: int, read_ranges: List[KeyRange],
               mutations: List[tuple]) -> int:
        """Apply the mutations of a transaction, return its commit version."""
        if not mutations:
            # Read-only transactions never conflict
            return read_version

        with self.write_access:
            self._check_conflicts(read_version, read_ranges)

            self._version += 1
            write_ranges = list()
            for mutation in mutations:
                write_ranges.append(self._apply(mutation))
            self._history[self._version] = write_ranges
            return self._version

    def _check_readable(self, version: int):
        # Values older than the commit history may have been pruned
        if version < self._version - self._conf.history_size:
            raise TransactionTooOld(
                'Read version {} is older than the retained versions'.format(
                    version)
            )

    def _check_conflicts(self, read_version: int,
                         read_ranges: List[KeyRange]):
        version = read_version + 1
        while version <= self._version:
            write_ranges = self._history.get(version)
            if write_ranges is None:
                raise TransactionTooOld(
                    'Read version {} is older than the commit '
                    'history'.format(read_version)
                )
            for read_range in read_ranges:
                for write_range in write_ranges:
                    if ranges_intersect(read_range, write_range):
                        raise NotCommitted(
                            'Conflict on {} with version {}'.format(
                                printable(read_range[0]), version)
                        )
            version += 1

    def _apply(self, mutation: tuple) -> KeyRange:
        kind, first, second = mutation

        if kind is Mutation.CLEAR_RANGE:
            start = bisect.bisect_left(self._keys, first)
            stop = bisect.bisect_left(self._keys, second)
            for key in self._keys[start:stop]:
                if self._value_at(key, self._version) is not None:
                    self._store(key, None)
            return first, second

        current = self._value_at(first, self._version)
        self._store(first, apply_mutation(mutation, first, current))
        return first, first + b'\x00'

    def _store(self, key: bytes, value: Optional[bytes]):
        versions = self._values.get(key)
        if versions is None:
            bisect.insort(self._keys, key)
            versions = self._values[key] = list()

        if versions and versions[-1][0] == self._version:
            versions[-1] = (self._version, value)
        else:
            versions.append((self._version, value))

        # Versions older than the commit history cannot be read by a
        # transaction that will commit, only the last of them is needed
        oldest = self._version - self._conf.history_size
        while len(versions) > 1 and versions[1][0] <= oldest:
            del versions[0]

    def _value_at(self, key: bytes, version: int) -> Optional[bytes]:
        versions = self._values.get(key)
        if not versions:
            return None
        index = _bisect_versions(versions, version)
        if index == 0:
            return None
        return versions[index - 1][1]

    def __repr__(self):
        return '<MemoryDatabase: version {}>'.format(self._version)


def _bisect_versions(versions: List[tuple], version: int) -> int:
    """Index of the first entry whose version is greater than version."""
    low, high = 0, len(versions)
    while low < high:
        middle = (low + high) // 2
        if versions[middle][0] <= version:
            low = middle + 1
        else:
            high = middle
    return low


class Transaction:
    """Atomic set of reads and writes against a MemoryDatabase.

    Writes are buffered until commit, reads see them.
    """

    __slots__ = ['_db', '_read_version', '_read_ranges', '_mutations',
                 'snapshot']

    def __init__(self, db: MemoryDatabase):
        self._db = db
        self.snapshot = Snapshot(self)
        self.reset()

    def reset(self):
        self._read_version = None
        self._read_ranges = list()
        self._mutations = list()

    @property
    def read_version(self) -> int:
        if self._read_version is None:
            self._read_version = self._db.version
        return self._read_version

    def transact(self, func: Callable):
        return func(self)

    def get(self, key: bytes, snapshot: bool=False) -> Optional[bytes]:
        if not snapshot:
            self._read_ranges.append((key, key + b'\x00'))
        value = self._db.read_value(key, self.read_version)
        for mutation in self._mutations:
            value = apply_mutation(mutation, key, value)
        return value

    def get_range(self, begin: bytes, end: bytes, limit: int=0,
                  reverse: bool=False,
                  snapshot: bool=False) -> List[KeyValue]:
        if begin >= end:
            return list()

        items = dict(self._db.read_range(begin, end, self.read_version))
        for mutation in self._mutations:
            kind, first, _ = mutation
            if kind is Mutation.CLEAR_RANGE:
                keys = [k for k in items if first <= k < mutation[2]]
            elif begin <= first < end:
                keys = [first]
            else:
                keys = []
            for key in keys:
                value = apply_mutation(mutation, key, items.get(key))
                if value is None:
                    items.pop(key, None)
                else:
                    items[key] = value

        rv = sorted(items.items(), reverse=reverse)
        if limit and len(rv) > limit:
            rv = rv[:limit]
            # Only the part of the range actually returned is read
            if reverse:
                begin = rv[-1][0]
            else:
                end = rv[-1][0] + b'\x00'

        if not snapshot:
            self._read_ranges.append((begin, end))
        return rv

    def get_range_startswith(self, prefix: bytes, limit: int=0,
                             reverse: bool=False,
                             snapshot: bool=False) -> List[KeyValue]:
        return self.get_range(prefix, strinc(prefix), limit=limit,
                              reverse=reverse, snapshot=snapshot)

    def set(self, key: bytes, value: bytes):
        if not isinstance(key, bytes) or not isinstance(value, bytes):
            raise ValueError('Keys and values must be bytes objects')
        self._mutations.append((Mutation.SET, key, value))

    def clear(self, key: bytes):
        self._mutations.append((Mutation.CLEAR_RANGE, key, key + b'\x00'))

    def clear_range(self, begin: bytes, end: bytes):
        if begin < end:
            self._mutations.append((Mutation.CLEAR_RANGE, begin, end))

    def clear_range_startswith(self, prefix: bytes):
        self.clear_range(prefix, strinc(prefix))

    def add(self, key: bytes, param: bytes):
        """Add a little endian integer to the value of key.

        The addition is performed at commit time without reading the key,
        so concurrent additions do not conflict.
        """
        self._mutations.append((Mutation.ADD, key, param))

    def commit(self) -> int:
        version = self._db.commit(self.read_version, self._read_ranges,
                                  self._mutations)
        self.reset()
        return version

    def __getitem__(self, key: bytes) -> Optional[bytes]:
        return self.get(key)

    def __setitem__(self, key: bytes, value: bytes):
        self.set(key, value)

    def __delitem__(self, key: bytes):
        self.clear(key)

    def __repr__(self):
        return '<Transaction: read version {}>'.format(self._read_version)


class Snapshot:
    """Reads of a transaction that do not cause conflicts."""

    __slots__ = ['_tr']

    def __init__(self, tr: Transaction):
        self._tr = tr

    def get(self, key: bytes) -> Optional[bytes]:
        return self._tr.get(key, snapshot=True)

    def get_range(self, begin: bytes, end: bytes, limit: int=0,
                  reverse: bool=False) -> List[KeyValue]:
        return self._tr.get_range(begin, end, limit=limit, reverse=reverse,
                                  snapshot=True)

    def get_range_startswith(self, prefix: bytes, limit: int=0,
                             reverse: bool=False) -> List[KeyValue]:
        return self._tr.get_range_startswith(prefix, limit=limit,
                                             reverse=reverse, snapshot=True)

    def __getitem__(self, key: bytes) -> Optional[bytes]:
        return self.get(key)
