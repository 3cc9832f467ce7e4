from .codec import encode, decode
from .subspace import Subspace
from .allocator import HighContentionAllocator
from .directory import DirectoryLayer, DirectorySubspace
from .memory import MemoryDatabase
from .const import VERSION, StoreConf

__version__ = VERSION
