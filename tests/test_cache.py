"""
Tests for the versioned dataset cache.
"""
import threading

from prometheus_client import REGISTRY

from orgcheck.cache import CacheEntry, DatasetCache


class TestDatasetCache:
    """Tests for get, set and remove."""

    def test_miss_then_hit(self):
        """Test a stored entry is returned with its data."""
        cache = DatasetCache(version='1.0.0')

        assert cache.get('Users') is None
        cache.set('Users', {'005000000000001': 'u'})
        entry = cache.get('Users')

        assert entry.data == {'005000000000001': 'u'}
        assert entry.size == 1
        assert (cache.hits, cache.misses) == (1, 1)

    def test_other_version_is_evicted(self):
        """Test an entry written by another version is removed when read."""
        storage = {}
        DatasetCache(storage, version='0.9.0').set('Users', {'a': 1})
        cache = DatasetCache(storage, version='1.0.0')

        assert cache.get('Users') is None
        assert 'Users' not in cache
        assert cache.evictions == 1

    def test_overwrite_keeps_created_date(self):
        """Test rewriting an entry keeps its creation date."""
        cache = DatasetCache(version='1.0.0')
        first = cache.set('Groups', {'a': 1})

        second = cache.set('Groups', {'a': 1, 'b': 2})

        assert second.created_date == first.created_date
        assert second.last_modification_date >= first.last_modification_date
        assert cache.get('Groups').size == 2

    def test_size_gauge(self):
        """Test the size gauge follows the entry and is removed with it."""
        cache = DatasetCache(version='1.0.0')

        cache.set('CacheGaugeTest', {'a': 1, 'b': 2, 'c': 3})
        assert REGISTRY.get_sample_value('orgcheck_dataset_cache_size', {'dataset': 'CacheGaugeTest'}) == 3

        assert cache.remove('CacheGaugeTest') is True
        assert REGISTRY.get_sample_value('orgcheck_dataset_cache_size', {'dataset': 'CacheGaugeTest'}) is None

    def test_remove_missing_key(self):
        """Test removing an unknown key reports it."""
        assert DatasetCache().remove('Nope') is False

    def test_clear(self):
        """Test clear empties the cache and returns the count."""
        cache = DatasetCache()
        cache.set('Users', {})
        cache.set('Groups', {})

        assert cache.clear() == 2
        assert len(cache) == 0

    def test_information(self):
        """Test the information of every entry, outdated ones flagged."""
        storage = {'Old': CacheEntry('Old', {'a': 1}, '0.1.0', None, None)}
        cache = DatasetCache(storage, version='1.0.0')
        cache.set('Object_Account', object())

        information = {i.name: i for i in cache.information()}

        assert information['Old'].is_outdated is True
        assert information['Object_Account'].is_outdated is False
        assert information['Object_Account'].length == 1

    def test_custom_storage(self):
        """Test entries are written to the given storage."""
        storage = {}
        DatasetCache(storage).set('Users', {'a': 1})

        assert isinstance(storage['Users'], CacheEntry)


class ClearingStorage(dict):
    """Storage that starts clearing the cache from another thread while being listed."""

    cache = None
    clearer = None
    clear_was_blocked = None

    def items(self):
        self.clearer = threading.Thread(target=self.cache.clear)
        self.clearer.start()
        self.clearer.join(timeout=0.2)
        self.clear_was_blocked = self.clearer.is_alive()
        return super().items()


class TestDatasetCacheThreads:
    """Tests for the cache shared by the scheduler threads."""

    def test_clear_waits_for_information(self):
        """Test a clear from another thread waits until the entries are listed."""
        storage = ClearingStorage()
        cache = DatasetCache(storage, version='1.0.0')
        storage.cache = cache
        cache.set('Users', {'a': 1})
        cache.set('Groups', {'b': 2})

        information = cache.information()
        storage.clearer.join()

        assert storage.clear_was_blocked is True
        assert sorted(i.name for i in information) == ['Groups', 'Users']
        assert len(cache) == 0
