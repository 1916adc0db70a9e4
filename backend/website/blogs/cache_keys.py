import uuid

from django.core.cache import cache

LIST_VERSION_KEY = "posts:list:version"


def list_version():
    return cache.get_or_set(LIST_VERSION_KEY, lambda: uuid.uuid4().hex, timeout=None)


def list_cache_key(params: dict):
    # build a stable cache key for list views; the version rotates on every write
    parts = [f"{k}={v}" for k, v in sorted(params.items())]
    return f"posts:list:{list_version()}:" + "&".join(parts)


def invalidate_list_cache():
    cache.set(LIST_VERSION_KEY, uuid.uuid4().hex, timeout=None)
