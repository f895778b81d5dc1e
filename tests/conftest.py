"""
Shared pytest fixtures for TickerFeed tests.

Network access is never used: relay attempts are scripted through
ScriptedRelayClient and HTTP through FakeSession.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from feeds.cache import FeedCache, MemoryStorage
from feeds.errors import NetworkError
from feeds.models import Post, RelayDescriptor, ResponseShape


FEED_URL = "https://blog.example.com/rss.xml"

RSS_THREE_ITEMS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com/</link>
    <description>Posts from the example blog</description>
    <item>
      <title>Post One</title>
      <link>https://blog.example.com/posts/one</link>
      <pubDate>Fri, 05 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Post Two</title>
      <link>https://blog.example.com/posts/two</link>
      <pubDate>Sat, 06 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Post Three</title>
      <link>https://blog.example.com/posts/three</link>
      <pubDate>Sun, 07 Jan 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <updated>2024-02-01T12:00:00Z</updated>
  <entry>
    <title>Atom entry alpha</title>
    <link rel="alternate" href="https://news.example.org/alpha"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <published>2024-02-01T12:00:00Z</published>
  </entry>
  <entry>
    <title>Atom entry beta</title>
    <link rel="alternate" href="https://news.example.org/beta"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6b</id>
    <updated>2024-02-03T08:30:00Z</updated>
  </entry>
</feed>
"""

RDF_FEED = """<?xml version="1.0"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="https://rdf.example.net/">
    <title>RDF Example</title>
    <link>https://rdf.example.net/</link>
    <description>An RSS 1.0 feed</description>
  </channel>
  <item rdf:about="https://rdf.example.net/first">
    <title>First RDF post</title>
    <link>https://rdf.example.net/first</link>
    <dc:date>2024-03-02T10:00:00Z</dc:date>
  </item>
</rdf:RDF>
"""


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_posts(*titles: str, domain: str = "blog.example.com") -> List[Post]:
    return [
        Post(domain=domain, date="Jan 5, 2024", title=t, link=f"https://{domain}/{i}")
        for i, t in enumerate(titles)
    ]


def relay(name: str, shape: ResponseShape = ResponseShape.RAW_XML, timeout: float = 1.0) -> RelayDescriptor:
    return RelayDescriptor(
        name=name,
        endpoint_template=f"https://{name}.relay.test/?u={{url}}&n={{count}}",
        timeout=timeout,
        response_shape=shape,
    )


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRelayClient:
    """Stands in for RelayClient with per-relay scripted outcomes.

    ``outcomes[name]`` is either a single value used for every call or a list
    consumed one call at a time (the last item repeats). A value that is an
    exception instance is raised; anything else is returned as the posts.
    ``delays[name]`` makes that relay sleep before answering.
    ``load_sensitive`` relays fail while any other attempt is in flight.
    """

    def __init__(
        self,
        outcomes: Dict[str, Any],
        delays: Optional[Dict[str, float]] = None,
        load_sensitive: Optional[set] = None,
        on_call: Optional[Callable[[str, str], None]] = None,
    ):
        self.outcomes = outcomes
        self.delays = delays or {}
        self.load_sensitive = load_sensitive or set()
        self.on_call = on_call
        self.calls: List[str] = []
        self.urls: List[str] = []
        self.cancelled: List[str] = []
        self.active = 0
        self.closed = False

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def attempt(self, descriptor, feed_url, max_posts=None):
        name = descriptor.name
        self.calls.append(name)
        self.urls.append(feed_url)
        if self.on_call is not None:
            self.on_call(name, feed_url)
        self.active += 1
        try:
            await asyncio.sleep(self.delays.get(name, 0))
            if name in self.load_sensitive and self.active > 1:
                raise NetworkError("HTTP 429 under concurrent load", status=429)
            outcome = self._next(name)
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise
        finally:
            self.active -= 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def _next(self, name: str):
        script = self.outcomes[name]
        if isinstance(script, list) and not all(isinstance(item, Post) for item in script):
            if len(script) > 1:
                return script.pop(0)
            return script[0]
        return script

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as a context manager."""

    def __init__(self, status: int = 200, body: str = "", raise_on_enter: Optional[BaseException] = None):
        self.status = status
        self.body = body
        self.raise_on_enter = raise_on_enter

    async def text(self, encoding=None, errors="strict") -> str:
        return self.body

    async def __aenter__(self):
        if self.raise_on_enter is not None:
            raise self.raise_on_enter
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Routes GET requests to FakeResponses by relay host."""

    def __init__(self, routes: Dict[str, FakeResponse]):
        self.routes = routes
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def get(self, url, **kwargs):
        self.requests.append({"url": url, **kwargs})
        for host, response in self.routes.items():
            if host in url:
                return response
        raise AssertionError(f"unexpected request to {url}")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    """FeedCache on an in-memory medium driven by the fake clock."""
    return FeedCache(storage=MemoryStorage(), clock=clock)
