"""
Dataset Cache Module

Process scoped cache of dataset results. Each entry is tagged with the
software version that produced it: an entry written by another version is
evicted the first time it is read, so a new release never serves records
built with older rules.

The storage is any mutable mapping (a plain dict by default), which lets the
service swap it for a shared store without touching the DatasetManager. The
scheduled jobs use the cache from different threads: every access to the
storage holds the cache lock.

Classes:
    - CacheEntry: One cached dataset
    - CacheInformation: What get_cache_information reports for an entry
    - DatasetCache: Versioned get/set/remove over the storage
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from orgcheck.constants import SOFTWARE_VERSION
from orgcheck.gauges import dataset_cache_size_gauge
from orgcheck.logger import logger


def _size_of(data):
    if isinstance(data, dict):
        return len(data)
    return 0 if data is None else 1


@dataclass
class CacheEntry:
    name: str
    data: object
    version: str
    created_date: datetime
    last_modification_date: datetime

    @property
    def size(self):
        return _size_of(self.data)


@dataclass
class CacheInformation:
    name: str
    length: int
    created_date: datetime
    last_modification_date: datetime
    version: str
    is_outdated: bool


class DatasetCache:
    """Versioned dataset cache with hit and miss counters, shared by the scheduler threads."""

    def __init__(self, storage=None, version=SOFTWARE_VERSION):
        self._storage = {} if storage is None else storage
        self._lock = threading.RLock()
        self.version = version
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __contains__(self, key):
        with self._lock:
            return key in self._storage

    def __len__(self):
        with self._lock:
            return len(self._storage)

    def get(self, key):
        """
        Return the entry of a key, or None when missing or written by another version.

        Args:
            key: Cache key of the dataset

        Returns:
            CacheEntry or None
        """
        with self._lock:
            entry = self._storage.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.version != self.version:
                logger.info("Evicting cache entry %s written by version %s (running %s)",
                            key, entry.version, self.version)
                self.remove(key)
                self.evictions += 1
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def set(self, key, data):
        now = datetime.now(timezone.utc)
        with self._lock:
            previous = self._storage.get(key)
            created_date = previous.created_date if previous is not None and previous.version == self.version else now
            entry = CacheEntry(name=key, data=data, version=self.version,
                               created_date=created_date, last_modification_date=now)
            self._storage[key] = entry
            dataset_cache_size_gauge.labels(dataset=key).set(entry.size)
        return entry

    def remove(self, key):
        with self._lock:
            if self._storage.pop(key, None) is None:
                return False
            try:
                dataset_cache_size_gauge.remove(key)
            except KeyError:
                pass
        return True

    def clear(self):
        with self._lock:
            count = len(self._storage)
            self._storage.clear()
            dataset_cache_size_gauge.clear()
        return count

    def information(self):
        with self._lock:
            entries = list(self._storage.items())
        return [
            CacheInformation(
                name=key,
                length=entry.size,
                created_date=entry.created_date,
                last_modification_date=entry.last_modification_date,
                version=entry.version,
                is_outdated=entry.version != self.version
            )
            for key, entry in entries
        ]
