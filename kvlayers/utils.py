import functools
from typing import Sequence


def strinc(key: bytes) -> bytes:
    """Return the first key that does not start with key."""
    stripped = key.rstrip(b'\xff')
    if not stripped:
        raise ValueError('No key beyond {!r}'.format(key))
    return stripped[:-1] + bytes((stripped[-1] + 1,))


def printable(key: bytes) -> str:
    rv = list()
    for byte in key:
        if byte == ord('\\'):
            rv.append('\\\\')
        elif 32 <= byte < 127:
            rv.append(chr(byte))
        else:
            rv.append('\\x{:02x}'.format(byte))
    return ''.join(rv)


def starts_with(sequence: Sequence, prefix: Sequence) -> bool:
    return tuple(sequence[:len(prefix)]) == tuple(prefix)


def transactional(func):
    """Run a method inside a transaction.

    The decorated method receives a transaction as its first argument after
    self. Callers can pass either a database, in which case a new
    transaction is created and retried on conflicts, or an existing
    transaction that is used as is.
    """

    @functools.wraps(func)
    def wrapper(self, db_or_tr, *args, **kwargs):
        def run(tr):
            return func(self, tr, *args, **kwargs)

        return db_or_tr.transact(run)

    return wrapper
