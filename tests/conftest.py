import random

import pytest

from kvlayers.directory import DirectoryLayer
from kvlayers.memory import MemoryDatabase


@pytest.fixture(autouse=True)
def seed_random():
    random.seed(42)
    yield


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture
def directory():
    return DirectoryLayer()
