import itertools
import threading
import uuid
from typing import Iterable


class CounterIdGenerator:
    """Deterministic ids: prefix1, prefix2, ... skipping reserved ones"""

    def __init__(self, prefix: str = 'id'):
        self.prefix = prefix
        self._counter = itertools.count(1)
        self._taken = set()
        self._lock = threading.Lock()

    def reserve(self, ids: Iterable[str]):
        """Mark ids that already exist so they are never handed out"""
        with self._lock:
            self._taken.update(ids)

    def __call__(self) -> str:
        with self._lock:
            while True:
                candidate = f"{self.prefix}{next(self._counter)}"
                if candidate not in self._taken:
                    self._taken.add(candidate)
                    return candidate


class UuidIdGenerator:
    def __init__(self, prefix: str = ''):
        self.prefix = prefix

    def reserve(self, ids: Iterable[str]):
        pass

    def __call__(self) -> str:
        return f"{self.prefix}{uuid.uuid4().hex}"
