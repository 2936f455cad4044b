"""Process-local per-task locks serializing moves and scheduler ticks."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_task_locks: Dict[str, threading.RLock] = {}


def _lock_for(task_id: str) -> threading.RLock:
    with _registry_lock:
        lock = _task_locks.get(task_id)
        if lock is None:
            lock = threading.RLock()
            _task_locks[task_id] = lock
        return lock


@contextmanager
def task_lock(task_id: str) -> Iterator[None]:
    lock = _lock_for(task_id)
    with lock:
        yield


def forget_task(task_id: str) -> None:
    """Drop the lock of a deleted task."""
    with _registry_lock:
        _task_locks.pop(task_id, None)
