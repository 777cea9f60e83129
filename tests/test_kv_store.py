from unittest.mock import MagicMock, patch

import redis

from connectors.kv_store import MemoryStore, RedisStore, create_store


class TestMemoryStore:
    """In-process key-value store."""

    def test_value_expires_after_ttl(self, store, clock):
        store.set("k", "v", ttl=10)

        clock.advance(9)
        assert store.get("k") == "v"

        clock.advance(1)
        assert store.get("k") is None

    def test_expired_keys_are_swept_on_write(self, store, clock):
        for i in range(5):
            store.set(f"shortcut_utms:visitor-{i}", "{}", ttl=60)
        store.set("permanent", "v")

        clock.advance(61)
        store.set("shortcut_utms:visitor-new", "{}", ttl=60)

        assert sorted(store._data) == ["permanent", "shortcut_utms:visitor-new"]


class TestRedisStore:
    def test_keys_are_prefixed(self):
        client = MagicMock()
        client.get.return_value = b"1760000000000"
        store = RedisStore(client)

        store.set("social_media_jane@acme.com", "1760000000000", ttl=301)

        client.set.assert_called_once_with(
            name="leads:social_media_jane@acme.com", value="1760000000000", ex=301
        )
        assert store.get("social_media_jane@acme.com") == "1760000000000"


class TestCreateStore:
    def test_memory_without_url(self):
        assert create_store(None).backend == "memory"

    @patch("connectors.kv_store.redis.from_url")
    def test_falls_back_when_redis_is_down(self, mock_from_url):
        mock_from_url.return_value.ping.side_effect = redis.ConnectionError("refused")

        assert create_store("redis://localhost:6379/0").backend == "memory"
