import pytest
import redis

import cache_helpers
from cache_helpers import backend_name, cache_get, cache_set, cache_status


class FakeRedis:
    def __init__(self, reachable=True):
        self.reachable = reachable
        self.values = {}

    def ping(self):
        if not self.reachable:
            raise redis.ConnectionError('Connection refused')
        return True

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value


@pytest.fixture
def fresh_cache(monkeypatch):
    monkeypatch.setattr(cache_helpers, '_redis_client', None)
    monkeypatch.setattr(cache_helpers, '_redis_url', None)
    monkeypatch.setattr(cache_helpers, '_redis_retry_at', 0.0)


def use_fake_redis(monkeypatch, fake):
    calls = []

    def from_url(url, **kwargs):
        calls.append(url)
        return fake

    monkeypatch.setattr(cache_helpers.redis, 'from_url', from_url)
    return calls


def test_unreachable_redis_reports_memory_backend(app, monkeypatch, fresh_cache):
    calls = use_fake_redis(monkeypatch, FakeRedis(reachable=False))
    app.config['REDIS_URL'] = 'redis://cache.invalid:6379/0'

    with app.app_context():
        assert backend_name() == 'memory'
        cache_set('schools:list', {'total': 3})
        assert cache_get('schools:list') == {'total': 3}
        assert cache_status()['backend'] == 'memory'

    # retried only after REDIS_RETRY_SECONDS
    assert calls == ['redis://cache.invalid:6379/0']


def test_reachable_redis_is_used(app, monkeypatch, fresh_cache):
    fake = FakeRedis()
    use_fake_redis(monkeypatch, fake)
    app.config['REDIS_URL'] = 'redis://localhost:6379/0'

    with app.app_context():
        assert backend_name() == 'redis'
        cache_set('admin:stats', {'schools': 2})
        assert fake.values == {'school-saas:admin:stats': '{"schools": 2}'}
        assert cache_get('admin:stats') == {'schools': 2}


def test_expired_keys_are_swept_without_reads(app, monkeypatch):
    monkeypatch.setattr(cache_helpers, '_memory_swept_at', 0.0)

    with app.app_context():
        cache_set('stale', 1, ttl=-1)
        assert 'school-saas:stale' in cache_helpers._memory_cache

        monkeypatch.setattr(cache_helpers, '_memory_swept_at', 0.0)
        cache_set('fresh', 2)

    assert 'school-saas:stale' not in cache_helpers._memory_cache
    assert 'school-saas:fresh' in cache_helpers._memory_cache
