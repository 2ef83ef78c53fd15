"""
Cache utilities for IdleKeeper.

Provides Redis-backed caching with graceful fallback to simple in-memory caching.
Uses Flask-Caching for integration with the Flask app.

Usage:
    from idlekeeper.utils.cache import cache, cache_key

    cache.set(cache_key('grants', community_id='123'), grant_map, timeout=0)
    grant_map = cache.get(cache_key('grants', community_id='123'))

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
              Falls back to simple cache if not set or unavailable.
"""
import os
import logging
from flask_caching import Cache

logger = logging.getLogger(__name__)

# Global cache instance - initialized in init_cache()
cache = Cache()


def init_cache(app):
    """
    Initialize Flask-Caching with Redis or fallback to simple cache.

    Args:
        app: Flask application instance

    Returns:
        bool: True if Redis connected, False if using fallback
    """
    redis_url = app.config.get('REDIS_URL') or os.getenv('REDIS_URL')

    if redis_url:
        try:
            # Test Redis connection before configuring
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()

            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_DEFAULT_TIMEOUT'] = 0
            app.config['CACHE_KEY_PREFIX'] = 'idlekeeper:'

            cache.init_app(app)
            logger.info('[Cache] Redis cache connected: %s', redis_url.split('@')[-1])
            return True

        except Exception as e:
            logger.warning('[Cache] Redis unavailable (%s), using simple cache', str(e))

    # Fallback to simple in-memory cache; entries live for the process lifetime
    app.config['CACHE_TYPE'] = 'SimpleCache'
    app.config['CACHE_DEFAULT_TIMEOUT'] = 0

    cache.init_app(app)
    logger.info('[Cache] Using simple in-memory cache (no Redis)')
    return False


def cache_key(*args, **kwargs):
    """
    Generate a cache key from arguments.

        key = cache_key('grants', community_id=123)  # 'grants:community_id=123'
    """
    parts = list(args)
    for k, v in sorted(kwargs.items()):
        parts.append(f'{k}={v}')
    return ':'.join(str(p) for p in parts)
