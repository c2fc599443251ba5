from __future__ import annotations

import contextlib
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator


class RunLock(ABC):
    """
    Single-flight guard for pipeline runs.

    try_acquire() never blocks: a caller that loses the race skips its run
    instead of queueing behind the winner.
    """

    @abstractmethod
    def try_acquire(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def release(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def locked(self) -> bool:
        raise NotImplementedError


class InMemoryLock(RunLock):
    """
    Process-local lock. Scheduler jobs run on a thread pool, so check-and-set
    goes through a real mutex rather than a bare boolean.
    Not shared across replicas; see db.SqliteLeaseLock for a store-backed lease.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()

    def try_acquire(self) -> bool:
        return self._mutex.acquire(blocking=False)

    def release(self) -> None:
        if self._mutex.locked():
            self._mutex.release()

    @property
    def locked(self) -> bool:
        return self._mutex.locked()


@contextlib.contextmanager
def held(lock: RunLock) -> Iterator[bool]:
    """
    Non-blocking acquire for a `with` block; yields whether the lock was taken.
    Releases on exit (including on exceptions) only if it was acquired here.

        with held(lock) as acquired:
            if not acquired:
                return None
            ...
    """
    acquired = lock.try_acquire()
    try:
        yield acquired
    finally:
        if acquired:
            lock.release()
