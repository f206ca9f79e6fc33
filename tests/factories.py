import json
from datetime import datetime

import redis

from pricetracker.catalog.models import Site, UpsertCommand


class MemoryCache:
    """Dict-backed cache that round-trips values through JSON like redis does."""

    def __init__(self):
        self.entries = {}
        self.ttls = {}

    def get(self, key):
        data = self.entries.get(key)
        return None if data is None else json.loads(data)

    def set(self, key, value, ttl):
        self.entries[key] = json.dumps(value)
        self.ttls[key] = ttl

    def delete(self, key):
        self.entries.pop(key, None)

    def flush(self):
        self.entries.clear()

    def ping(self):
        return True


def make_command(url, price="100", **overrides):
    values = {
        "url": url,
        "site": Site.AMAZON,
        "search_query": "phones",
        "scraped_at": datetime(2024, 1, 1),
        "title": f"Product {url}",
        "price": price,
    }
    values.update(overrides)
    return UpsertCommand(**values)


class DownRedis:
    """Redis client whose every call fails as if the server were unreachable."""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    get = setex = delete = scan_iter = ping = _fail
