import unittest

import redis

from chordcraft.core.errors import CacheError
from chordcraft.services.jobs.cache import ResultCache


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)


class DownRedis:
    def setex(self, key, ttl, value):
        raise redis.ConnectionError("connection refused")

    def get(self, key):
        raise redis.ConnectionError("connection refused")

    def delete(self, key):
        raise redis.ConnectionError("connection refused")


class ResultCacheTests(unittest.TestCase):
    def test_set_get_with_ttl(self) -> None:
        client = FakeRedis()
        cache = ResultCache(ttl_seconds=3600, client=client)
        cache.set("abc", {"job_id": "abc", "chords": []})

        self.assertEqual(cache.get("abc"), {"job_id": "abc", "chords": []})
        self.assertEqual(client.ttls["chordcraft:result:abc"], 3600)
        self.assertIsNone(cache.get("missing"))

        cache.delete("abc")
        self.assertIsNone(cache.get("abc"))

    def test_unavailable_backend_raises_cache_error(self) -> None:
        cache = ResultCache(client=DownRedis())
        with self.assertRaises(CacheError):
            cache.set("abc", {"x": 1})
        with self.assertRaises(CacheError):
            cache.get("abc")

    def test_unconfigured_cache(self) -> None:
        cache = ResultCache(redis_url=None)
        with self.assertRaises(CacheError):
            cache.set("abc", {})
        with self.assertRaises(CacheError):
            cache.get("abc")

    def test_corrupt_entry(self) -> None:
        client = FakeRedis()
        client.data["chordcraft:result:abc"] = "{not json"
        with self.assertRaises(CacheError):
            ResultCache(client=client).get("abc")


if __name__ == "__main__":
    unittest.main()
