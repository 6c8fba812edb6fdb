"""
Row-level write serialisation.

Combines an in-process lock per (table, id) with SELECT ... FOR UPDATE on
backends that support it. Callers commit inside the block so the check they
ran under the lock and their write land together.

Registry entries are reference counted and dropped when the last holder
leaves, so only rows currently being written have a lock.
"""

import threading
from contextlib import contextmanager

from sqlalchemy.orm import Session

# key -> [lock, number of holders and waiters]
_locks: dict = {}
_guard = threading.Lock()


def _acquire_entry(key: tuple) -> threading.Lock:
    with _guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = [threading.Lock(), 0]
        entry[1] += 1
        return entry[0]


def _release_entry(key: tuple) -> None:
    with _guard:
        entry = _locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _locks[key]


def active_lock_count() -> int:
    with _guard:
        return len(_locks)


@contextmanager
def row_write_lock(db: Session, model, row_id: str):
    key = (model.__tablename__, row_id)
    lock = _acquire_entry(key)
    try:
        with lock:
            if db.get_bind().dialect.name != "sqlite":
                db.query(model).filter(model.id == row_id).with_for_update().first()
            try:
                yield
            except Exception:
                # Release the row lock now instead of when the session closes
                db.rollback()
                raise
    finally:
        _release_entry(key)
