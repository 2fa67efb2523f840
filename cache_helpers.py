"""
Cache Helper Functions
Get-or-set caching on Redis with an in-process fallback, plus short-TTL
HTTP cache headers for list endpoints.

Configuration via environment variables:
- REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0).
  When unset or unreachable, values are kept in process memory.
"""

import os
import json
import time
import threading
import logging

import redis
from flask import current_app, has_app_context, request

logger = logging.getLogger(__name__)

KEY_PREFIX = 'school-saas:'


class CacheTTL:
    """Cache lifetimes in seconds"""
    SHORT = 120
    MEDIUM = 300
    LONG = 600
    VERY_LONG = 900


_redis_client = None
_redis_url = None
_redis_retry_at = 0.0
_memory_cache = {}
_memory_lock = threading.Lock()
_memory_swept_at = 0.0
_stats = {'hits': 0, 'misses': 0, 'errors': 0, 'sets': 0}

REDIS_RETRY_SECONDS = 30
MEMORY_SWEEP_SECONDS = 60


def _configured_url():
    if has_app_context():
        return current_app.config.get('REDIS_URL') or ''
    return os.getenv('REDIS_URL', '')


def get_redis():
    """
    Redis client for the configured URL

    A new client must answer PING before it is used. While Redis is
    unreachable this returns None and the connection is retried every
    REDIS_RETRY_SECONDS.

    Returns:
        redis.Redis or None when Redis is not configured or not reachable
    """
    global _redis_client, _redis_url, _redis_retry_at

    url = _configured_url()
    if not url:
        return None
    if url == _redis_url and _redis_client is not None:
        return _redis_client
    if url == _redis_url and time.time() < _redis_retry_at:
        return None

    _redis_url = url
    _redis_client = None
    client = redis.from_url(url, decode_responses=True, socket_timeout=2)
    try:
        client.ping()
    except redis.RedisError as e:
        _stats['errors'] += 1
        _redis_retry_at = time.time() + REDIS_RETRY_SECONDS
        logger.warning(f"Redis unreachable, using memory cache: {e}")
        return None

    _redis_client = client
    logger.info("Redis cache connected")
    return _redis_client


def _drop_redis(error):
    """Forget a client that stopped answering so the next call reconnects later"""
    global _redis_client, _redis_retry_at

    _stats['errors'] += 1
    _redis_client = None
    _redis_retry_at = time.time() + REDIS_RETRY_SECONDS
    logger.warning(f"Redis error, using memory cache: {error}")


def backend_name():
    return 'redis' if get_redis() is not None else 'memory'


def _memory_get(key):
    with _memory_lock:
        entry = _memory_cache.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at < time.time():
            del _memory_cache[key]
            return None
        return raw


def _sweep_expired(now):
    """Drop expired entries; caller holds _memory_lock"""
    global _memory_swept_at

    for key in [k for k, (expires_at, _) in _memory_cache.items() if expires_at < now]:
        del _memory_cache[key]
    _memory_swept_at = now


def _memory_set(key, raw, ttl):
    now = time.time()
    with _memory_lock:
        if now - _memory_swept_at >= MEMORY_SWEEP_SECONDS:
            _sweep_expired(now)
        _memory_cache[key] = (now + ttl, raw)


def cache_get(key):
    """Cached value for key or None"""
    full_key = KEY_PREFIX + key
    raw = None
    client = get_redis()
    if client is not None:
        try:
            raw = client.get(full_key)
        except redis.RedisError as e:
            _drop_redis(e)
            raw = _memory_get(full_key)
    else:
        raw = _memory_get(full_key)

    if raw is None:
        return None
    return json.loads(raw)


def cache_set(key, value, ttl=CacheTTL.MEDIUM):
    full_key = KEY_PREFIX + key
    raw = json.dumps(value, default=str)
    _stats['sets'] += 1
    client = get_redis()
    if client is not None:
        try:
            client.setex(full_key, ttl, raw)
            return
        except redis.RedisError as e:
            _drop_redis(e)
    _memory_set(full_key, raw, ttl)


def get_or_set(key, fetch_fn, ttl=CacheTTL.MEDIUM):
    """
    Return the cached value for key, computing and storing it on a miss

    Args:
        key: Cache key (namespaced internally)
        fetch_fn: Zero-argument callable producing a JSON-serialisable value
        ttl: Lifetime in seconds

    Returns:
        The cached or freshly fetched value
    """
    cached = cache_get(key)
    if cached is not None:
        _stats['hits'] += 1
        return cached

    _stats['misses'] += 1
    value = fetch_fn()
    if value is not None:
        cache_set(key, value, ttl)
    return value


def invalidate(prefix):
    """Drop every cached key starting with prefix; returns the number removed"""
    full_prefix = KEY_PREFIX + prefix
    removed = 0
    client = get_redis()
    if client is not None:
        try:
            keys = list(client.scan_iter(match=full_prefix + '*'))
            if keys:
                removed += client.delete(*keys)
        except redis.RedisError as e:
            _drop_redis(e)

    with _memory_lock:
        for key in [k for k in _memory_cache if k.startswith(full_prefix)]:
            del _memory_cache[key]
            removed += 1
    return removed


def clear_cache():
    return invalidate('')


def cache_status():
    total = _stats['hits'] + _stats['misses']
    with _memory_lock:
        memory_keys = len(_memory_cache)
    return {
        'backend': backend_name(),
        'hits': _stats['hits'],
        'misses': _stats['misses'],
        'errors': _stats['errors'],
        'sets': _stats['sets'],
        'hit_rate': round(_stats['hits'] / total * 100, 1) if total else 0.0,
        'memory_keys': memory_keys,
    }


def ping_cache():
    """True when the cache backend answers (memory always does)"""
    client = get_redis()
    if client is None:
        return True
    try:
        return bool(client.ping())
    except redis.RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False


def add_cache_headers(response, max_age=60, stale_while_revalidate=120):
    """
    Mark a JSON response as briefly cacheable by the browser

    Sets Cache-Control and a strong ETag; when the request's If-None-Match
    matches, the response becomes an empty 304.
    """
    response.headers['Cache-Control'] = (
        f"private, max-age={max_age}, stale-while-revalidate={stale_while_revalidate}"
    )
    response.add_etag()
    return response.make_conditional(request)
