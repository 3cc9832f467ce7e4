from collections import namedtuple

VERSION = '0.1.0.dev1'

# Endianess for storing numbers in values (version record, counters)
ENDIAN = 'little'

# Integers are encoded big endian in keys to keep them ordered
KEY_ENDIAN = 'big'

# Type codes of the tuple encoding
NULL_CODE = 0x00
BYTES_CODE = 0x01
STRING_CODE = 0x02
INT_ZERO_CODE = 0x14

# Max number of magnitude bytes of an encoded integer, 8 bytes limit the
# range to signed 64 bits
INT_MAX_BYTES = 8
INT_MIN = -2 ** 63
INT_MAX = 2 ** 63 - 1

# Bytes used for each of the three version numbers of a directory layer
VERSION_NUMBER_BYTES = 4

# Bytes read from an allocator counter
COUNTER_BYTES = 4

# Operand of the atomic increment of an allocator counter
COUNTER_INCREMENT_BYTES = 8

# Raw prefix of the default node subspace, also appended to the prefix of a
# partition to form its own node subspace
NODE_SUBSPACE_PREFIX = b'\xfe'

PARTITION_LAYER = b'partition'

# Version of the directory layer written in the root node
DIRECTORY_VERSION = (1, 0, 0)

# Key of the child lists in a node
SUBDIRS = 0

# Allocation windows grow with the allocated integers:
# (window start below, window size)
ALLOCATION_WINDOWS = ((255, 64), (65535, 1024))
LARGEST_ALLOCATION_WINDOW = 8192


StoreConf = namedtuple('StoreConf', [
    'retry_limit',          # Max retries of transact(), None for unlimited
    'history_size',         # Max number of commits kept for conflict checks,
                            # at least 1
    'max_transaction_age',  # Seconds a commit is kept for conflict checks
])

DEFAULT_STORE_CONF = StoreConf(None, 10000, 5.0)
