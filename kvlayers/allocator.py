from logging import getLogger
import random

from .const import (
    ENDIAN, COUNTER_BYTES, COUNTER_INCREMENT_BYTES, ALLOCATION_WINDOWS,
    LARGEST_ALLOCATION_WINDOW
)
from .subspace import Subspace
from .utils import transactional

logger = getLogger(__name__)


def window_size(start: int) -> int:
    """Number of candidates of the allocation window starting at start.

    Windows get larger as allocated integers grow, making conflicts between
    concurrent allocations less likely at the cost of longer integers.
    """
    for below, size in ALLOCATION_WINDOWS:
        if start < below:
            return size
    return LARGEST_ALLOCATION_WINDOW


class HighContentionAllocator:
    """Allocate small unique integers to concurrent transactions.

    Allocations are made randomly within a window of candidates. A counter
    tracks how many allocations were made in the current window, once it is
    half full the next window is used. Claimed candidates are recorded so
    they are never handed out twice.
    """

    __slots__ = ['counters', 'recent']

    def __init__(self, subspace: Subspace):
        self.counters = subspace[0]
        self.recent = subspace[1]

    @transactional
    def allocate(self, tr) -> int:
        start, count = self._current_window(tr)

        window = window_size(start)
        if (count + 1) * 2 >= window:
            tr.clear_range(self.counters.key(),
                           self.counters.pack((start,)) + b'\x00')
            start += window
            # Candidates below the new window can never be claimed again
            tr.clear_range(self.recent.key(), self.recent.pack((start,)))
            window = window_size(start)
            logger.debug('Allocation window advanced to %d', start)

        # Blind increment, concurrent allocators do not conflict on it
        tr.add(self.counters.pack((start,)),
               (1).to_bytes(COUNTER_INCREMENT_BYTES, ENDIAN))

        while True:
            # As of the snapshot read, the window is less than half full so
            # this should take about two tries
            candidate = random.randrange(start, start + window)
            key = self.recent.pack((candidate,))
            if tr.get(key) is None:
                tr.set(key, b'')
                return candidate

    def _current_window(self, tr) -> tuple:
        begin, end = self.counters.range()
        rows = tr.snapshot.get_range(begin, end, limit=1, reverse=True)
        if not rows:
            return 0, 0

        key, value = rows[0]
        start = self.counters.unpack(key)[0]
        count = int.from_bytes(value[:COUNTER_BYTES], ENDIAN)
        return start, count

    def __repr__(self):
        return '<HighContentionAllocator: {!r}>'.format(self.counters)
