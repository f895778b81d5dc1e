"""
Tests for RelayClient.

The aiohttp session is replaced with FakeSession so no request leaves the
process.
"""
import asyncio
import base64
import json
from urllib.parse import quote

import aiohttp
import pytest

from feeds.client import RelayClient, decode_data_uri
from feeds.errors import NetworkError, ParseError, RelayError, ShapeError
from feeds.models import RelayDescriptor, ResponseShape

from conftest import FEED_URL, RSS_THREE_ITEMS, FakeResponse, FakeSession, relay, run


def _attempt(response, shape=ResponseShape.RAW_XML, max_posts=None, timeout=1.0):
    session = FakeSession({"probe.relay.test": response})
    client = RelayClient(session=session)
    descriptor = relay("probe", shape, timeout=timeout)
    posts = run(client.attempt(descriptor, FEED_URL, max_posts))
    return posts, session


class TestRawXml:
    """Relays that return the feed document unchanged."""

    def test_success(self):
        posts, session = _attempt(FakeResponse(200, RSS_THREE_ITEMS))
        assert [p.title for p in posts] == ["Post One", "Post Two", "Post Three"]
        assert posts[0].domain == "blog.example.com"

    def test_request_url_encodes_feed_url(self):
        _, session = _attempt(FakeResponse(200, RSS_THREE_ITEMS))
        url = session.requests[0]["url"]
        assert quote(FEED_URL, safe="") in url
        assert url.startswith("https://probe.relay.test/")

    def test_request_carries_timeout_and_no_headers(self):
        _, session = _attempt(FakeResponse(200, RSS_THREE_ITEMS), timeout=2.5)
        request = session.requests[0]
        assert "headers" not in request
        assert isinstance(request["timeout"], aiohttp.ClientTimeout)
        assert request["timeout"].total == 2.5

    def test_max_posts_passed_to_parser(self):
        posts, _ = _attempt(FakeResponse(200, RSS_THREE_ITEMS), max_posts=1)
        assert len(posts) == 1

    def test_short_body_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, "<rss></rss>"))

    def test_html_page_is_shape_error(self):
        page = "<!doctype html><html><head><title>Blocked</title></head><body>" + "x" * 200 + "</body></html>"
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, page))

    def test_feed_without_usable_items_is_parse_error(self):
        doc = '<?xml version="1.0"?><rss version="2.0"><channel><title>Quiet feed</title>' \
              '<description>Nothing to see here, move along please</description></channel></rss>'
        with pytest.raises(ParseError):
            _attempt(FakeResponse(200, doc))


class TestWrappedJson:
    """Relays that wrap the feed in {"contents": ...}."""

    def test_plain_contents(self):
        body = json.dumps({"contents": RSS_THREE_ITEMS, "status": {"http_code": 200}})
        posts, _ = _attempt(FakeResponse(200, body), ResponseShape.WRAPPED_JSON)
        assert len(posts) == 3

    def test_base64_data_uri_contents(self):
        encoded = base64.b64encode(RSS_THREE_ITEMS.encode("utf-8")).decode("ascii")
        body = json.dumps({"contents": f"data:application/rss+xml; charset=utf-8;base64,{encoded}"})
        posts, _ = _attempt(FakeResponse(200, body), ResponseShape.WRAPPED_JSON)
        assert [p.title for p in posts][0] == "Post One"

    def test_missing_contents_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, json.dumps({"status": {"http_code": 404}})), ResponseShape.WRAPPED_JSON)

    def test_null_contents_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, json.dumps({"contents": None})), ResponseShape.WRAPPED_JSON)

    def test_short_contents_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, json.dumps({"contents": "<rss/>"})), ResponseShape.WRAPPED_JSON)

    def test_non_json_body_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, RSS_THREE_ITEMS), ResponseShape.WRAPPED_JSON)


class TestJsonFeed:
    """Relays that convert the feed to JSON."""

    def test_items(self):
        body = json.dumps({
            "status": "ok",
            "items": [{"title": "Converted item", "pubDate": "2024-01-05 10:00:00",
                       "link": "https://blog.example.com/c"}],
        })
        posts, _ = _attempt(FakeResponse(200, body), ResponseShape.JSON_FEED)
        assert posts[0].title == "Converted item"
        assert posts[0].date == "Jan 5, 2024"

    def test_error_status_is_shape_error(self):
        body = json.dumps({"status": "error", "message": "Cannot download this RSS feed"})
        with pytest.raises(ShapeError) as exc_info:
            _attempt(FakeResponse(200, body), ResponseShape.JSON_FEED)
        assert "Cannot download" in str(exc_info.value)

    def test_unknown_shape_is_shape_error(self):
        with pytest.raises(ShapeError):
            _attempt(FakeResponse(200, json.dumps({"status": "ok", "feed": {}})), ResponseShape.JSON_FEED)

    def test_count_parameter_capped(self):
        descriptor = RelayDescriptor(
            "rss2json", "https://rss2json.relay.test/?rss_url={url}&count={count}", 2.0, ResponseShape.JSON_FEED
        )
        assert descriptor.build_url(FEED_URL, 500).endswith("count=100")
        assert descriptor.build_url(FEED_URL, 7).endswith("count=7")
        assert descriptor.build_url(FEED_URL, None).endswith("count=100")
        assert descriptor.build_url(FEED_URL, 0).endswith("count=100")


class TestTransportFailures:
    """HTTP and connection failures become NetworkError."""

    def test_http_500(self):
        with pytest.raises(NetworkError) as exc_info:
            _attempt(FakeResponse(500, "Internal Server Error"))
        assert exc_info.value.status == 500
        assert "HTTP 500" in str(exc_info.value)

    def test_timeout(self):
        with pytest.raises(NetworkError) as exc_info:
            _attempt(FakeResponse(raise_on_enter=asyncio.TimeoutError()), timeout=3.5)
        assert "3.5s" in str(exc_info.value)

    def test_connection_error(self):
        with pytest.raises(NetworkError):
            _attempt(FakeResponse(raise_on_enter=aiohttp.ClientConnectionError("refused")))

    def test_all_failures_are_relay_errors(self):
        for response in (FakeResponse(404, ""), FakeResponse(200, "tiny")):
            with pytest.raises(RelayError):
                _attempt(response)


class TestSessionOwnership:
    def test_injected_session_not_closed(self):
        session = FakeSession({})
        client = RelayClient(session=session)
        run(client.close())
        assert session.closed is False

    def test_owned_session_created_lazily_and_closed(self):
        async def scenario():
            client = RelayClient()
            session = client.session
            assert isinstance(session, aiohttp.ClientSession)
            assert client.session is session
            await client.close()
            return session

        session = run(scenario())
        assert session.closed


class TestDecodeDataUri:
    def test_plain_text_passthrough(self):
        assert decode_data_uri("<rss/>") == "<rss/>"

    def test_percent_encoded(self):
        assert decode_data_uri("data:text/xml,%3Crss%3E%3C%2Frss%3E") == "<rss></rss>"

    def test_base64(self):
        encoded = base64.b64encode("<feed>héllo</feed>".encode("utf-8")).decode("ascii")
        assert decode_data_uri(f"data:text/xml;base64,{encoded}") == "<feed>héllo</feed>"

    def test_missing_comma(self):
        with pytest.raises(ShapeError):
            decode_data_uri("data:text/xml;base64")

    def test_bad_base64(self):
        with pytest.raises(ShapeError):
            decode_data_uri("data:text/xml;base64,abc")
