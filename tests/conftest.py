"""Shared fakes for the concierge tests: no test touches the network."""

import pytest
import requests

from gift_concierge.catalog_client import CatalogClient
from gift_concierge.search_cache import SearchCache


def product_record(pid, name=None, min_price=40.0, **overrides):
    """A catalog record shaped like the search endpoint's JSON."""
    record = {
        "id": pid,
        "name": name or f"Product {pid}",
        "description": f"<p>Description of {pid}</p>",
        "minPrice": min_price,
        "maxPrice": min_price,
        "occasion": "Birthday, Thank You",
        "category": "Fruit",
        "ingrediantNames": "Strawberries, Chocolate",
        "sizeCount": 2,
        "isOneHourDelivery": False,
        "productImageTag": "",
        "@search.score": 1.0,
        "allergyinformation": "",
        "url": f"product-{pid}",
        "image": f"https://img.example/{pid}.jpg",
        "thumbnail": f"https://img.example/{pid}-t.jpg",
    }
    record.update(overrides)
    return record


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


class FakeSession:
    """Answers catalog POSTs from a keyword -> records (or FakeResponse / exception) map."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        keyword = json["keyword"]
        self.calls.append(keyword)
        outcome = self.results.get(keyword, [])
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(200, outcome)


class ScriptedGateway:
    """Returns queued replies in order and records every request."""

    def __init__(self, *replies, stream_fragments=None):
        self.replies = list(replies)
        self.stream_fragments = stream_fragments or []
        self.calls = []

    def complete(self, messages, temperature=0.7, max_tokens=1024):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def stream(self, messages, temperature=0.7, max_tokens=1024):
        self.calls.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens, "stream": True}
        )
        return iter(self.stream_fragments)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_catalog(clock):
    def _make(results=None, ttl=300):
        session = FakeSession(results)
        client = CatalogClient(
            search_url="https://catalog.example/api/search/",
            base_url="https://catalog.example",
            cache=SearchCache(ttl_seconds=ttl, clock=clock),
            session=session,
        )
        return client, session

    return _make


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
