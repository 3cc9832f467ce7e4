class KVLayersError(Exception):
    """Base class of all errors raised by kvlayers."""


# Tuple encoding


class MalformedEncoding(KVLayersError, ValueError):
    """Data cannot be converted to or from the tuple encoding."""


class UnknownTypeCode(MalformedEncoding):
    """A leading byte does not match any type."""


class Truncated(MalformedEncoding):
    """Encoded data ends before the value it started."""


class IntegerOutOfRange(MalformedEncoding):
    """Integer does not fit in 8 bytes."""


class UnsupportedType(KVLayersError, TypeError):
    """Value of a type the tuple encoding does not know."""


# Directory tree


class TreeStructureError(KVLayersError):
    """Operation incompatible with the current directory tree."""


class RootDirectoryInvalid(TreeStructureError):
    pass


class DirectoryMissing(TreeStructureError):
    pass


class SourceMissing(DirectoryMissing):
    """Source of a move does not exist."""


class DirectoryExists(TreeStructureError):
    pass


class DestinationExists(TreeStructureError):
    pass


class ParentMissing(TreeStructureError):
    pass


class InvalidDestination(TreeStructureError):
    pass


class CrossPartitionMove(TreeStructureError):
    pass


class IncompatibleLayer(TreeStructureError):
    pass


class PrefixInUse(TreeStructureError):
    pass


class ManualPrefixNotAllowed(TreeStructureError):
    pass


class PartitionRootAccess(TreeStructureError):
    """Keys cannot be composed from the root of a partition."""


# Directory layer version


class VersionError(KVLayersError):
    """Stored directory layer version is incompatible with this one."""


class UnsupportedVersion(VersionError):
    pass


class ReadOnlyVersion(VersionError):
    pass


# Store


class StoreError(KVLayersError):
    """Error raised by the in-memory store."""


class NotCommitted(StoreError):
    """Transaction conflicted with another one, it can be retried."""


class TransactionTooOld(StoreError):
    """Transaction is older than the commit history, it can be retried."""


class RetryLimitExceeded(StoreError):
    """Transaction was retried too many times."""
