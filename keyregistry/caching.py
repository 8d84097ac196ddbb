from typing import Any, Dict

from django.core.exceptions import ImproperlyConfigured

REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


def cache_settings(url: str) -> Dict[str, Dict[str, Any]]:
    """
    Build ``CACHES`` from ``REGISTRY_CACHE_URL``.

    A Redis URL selects the shared Redis backend; an empty URL falls back to
    the per-process local memory cache used in development and tests.
    """
    if url.startswith(REDIS_SCHEMES):
        return {
            "default": {
                "BACKEND": "django.core.cache.backends.redis.RedisCache",
                "LOCATION": url,
                "KEY_PREFIX": "keyregistry",
            }
        }
    if url:
        raise ImproperlyConfigured(f"Unsupported REGISTRY_CACHE_URL scheme: {url}")
    return {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "registry",
        }
    }
