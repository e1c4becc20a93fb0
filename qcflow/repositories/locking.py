"""Execution-scoped locks

In-process stores use a keyed mutex registry. The MongoDB store uses a
lease document acquired with an atomic upsert so several API processes
and the sweeper can share one database safely.
"""
import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, List

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ..domain.errors import ConcurrencyError
from ..utils.idgen import generate_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class KeyedLock:
    """One threading.Lock per key, dropped once no caller holds or waits on it"""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, callers holding or waiting]
        self._locks: Dict[str, List[Any]] = {}

    @contextmanager
    def __call__(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class MongoLeaseLock:
    """
    Distributed lock backed by a MongoDB collection.

    A lock is a document {_id: key, owner, locked_until}. Acquisition is an
    upsert filtered on "free or expired"; when another owner holds a live
    lease the upsert collides on _id and we retry until wait_seconds.
    Expired leases are taken over, so a crashed holder never blocks forever.
    """

    def __init__(
        self,
        collection: Collection,
        ttl_seconds: int = 30,
        wait_seconds: float = 5.0,
        poll_interval: float = 0.05
    ):
        self._locks = collection
        self._ttl = timedelta(seconds=ttl_seconds)
        self._wait_seconds = wait_seconds
        self._poll_interval = poll_interval

    def _try_acquire(self, key: str, owner: str) -> bool:
        now = utc_now()
        try:
            self._locks.find_one_and_update(
                {
                    "_id": key,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {"$set": {"owner": owner, "locked_until": now + self._ttl}},
                upsert=True
            )
            return True
        except DuplicateKeyError:
            return False

    @contextmanager
    def __call__(self, key: str) -> Iterator[None]:
        owner = generate_id("LCK")
        deadline = time.monotonic() + self._wait_seconds

        while not self._try_acquire(key, owner):
            if time.monotonic() >= deadline:
                raise ConcurrencyError(
                    f"Could not lock {key}; another operation is in progress",
                    details={"key": key}
                )
            time.sleep(self._poll_interval)

        try:
            yield
        finally:
            result = self._locks.delete_one({"_id": key, "owner": owner})
            if result.deleted_count == 0:
                logger.warning(f"Lease on {key} expired before release", extra={"execution_id": key})
