from contextlib import ExitStack, contextmanager
from threading import Lock
from typing import Iterator


LockKey = tuple[str, int]


class KeyedLockRegistry:
    """
    Hands out one mutex per (scope, id) key.

    A key's mutex lives only while some caller holds or waits on it, so the
    registry stays as small as the number of in-flight transitions.
    """

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[LockKey, Lock] = {}
        self._holders: dict[LockKey, int] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, keys: list[LockKey]) -> list[Lock]:
        with self._registry_lock:
            locks = []
            for key in keys:
                if key not in self._locks:
                    self._locks[key] = Lock()
                    self._holders[key] = 0
                self._holders[key] += 1
                locks.append(self._locks[key])
            return locks

    def _release(self, keys: list[LockKey]) -> None:
        with self._registry_lock:
            for key in keys:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]

    @contextmanager
    def hold(self, *keys: LockKey | None) -> Iterator[None]:
        # Sorted acquisition order keeps two transitions from deadlocking.
        unique_keys = sorted({key for key in keys if key is not None and key[1] is not None})
        locks = self._checkout(unique_keys)
        try:
            with ExitStack() as stack:
                for lock in locks:
                    stack.enter_context(lock)
                yield
        finally:
            self._release(unique_keys)


transition_locks = KeyedLockRegistry()


def printer_key(printer_id: int | None) -> LockKey | None:
    return ('printer', printer_id) if printer_id is not None else None


def job_key(job_id: int | None) -> LockKey | None:
    return ('job', job_id) if job_id is not None else None


def user_key(user_id: int | None) -> LockKey | None:
    return ('user', user_id) if user_id is not None else None
