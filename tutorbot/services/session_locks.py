"""Per-learner asyncio locks so one process handles a learner's messages one at a time.

Cross-process races are caught by the version check in db.sessions.update_session.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager

# Locks disappear once no coroutine holds or waits on them
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(identity: str) -> asyncio.Lock:
    lock = _locks.get(identity)
    if lock is None:
        lock = asyncio.Lock()
        _locks[identity] = lock
    return lock


@asynccontextmanager
async def learner_lock(identity: str):
    lock = _lock_for(identity)
    async with lock:
        yield
