"""
RelayClient - One bounded-time attempt against one relay service.

Responsibilities:
    - Build the relay request URL for a feed
    - Issue the request on a shared aiohttp session with a hard deadline
    - Unwrap the relay transport (raw XML, {"contents": ...}, JSON items)
    - Validate the payload before handing it to FeedParser
    - Translate transport failures into NetworkError / ShapeError
"""
import asyncio
import base64
import binascii
import json
import re
import time
from typing import List, Optional
from urllib.parse import unquote

import aiohttp

from feeds.constants import MIN_PAYLOAD_LENGTH
from feeds.errors import NetworkError, ShapeError
from feeds.models import Post, RelayDescriptor, ResponseShape
from feeds.parser import FeedParser, json_items
from core.logging.logger import get_logger
from core.logging.tags import TAG_RELAY

logger = get_logger(__name__)

_FEED_ROOT_RE = re.compile(r"<(?:rss|feed|channel|rdf:rdf)[\s>/]", re.IGNORECASE)


class RelayClient:
    """Performs relay attempts on one aiohttp session.

    The session is created lazily inside the running loop unless one is
    supplied. Only a session created here is closed by ``close()``.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Attempt
    # ------------------------------------------------------------------

    async def attempt(
        self,
        descriptor: RelayDescriptor,
        feed_url: str,
        max_posts: Optional[int] = None,
    ) -> List[Post]:
        """Fetch *feed_url* through *descriptor* and parse it into posts.

        Raises:
            NetworkError: unreachable relay, non-2xx status or deadline exceeded
            ShapeError: response does not match the relay's envelope
            ParseError: envelope fine but no usable posts
        """
        request_url = descriptor.build_url(feed_url, max_posts)
        started = time.monotonic()
        body = await self._fetch(descriptor, request_url)
        logger.debug(
            f"{TAG_RELAY} {descriptor.name}: {len(body)} chars in "
            f"{time.monotonic() - started:.2f}s"
        )

        shape = descriptor.response_shape
        if shape is ResponseShape.JSON_FEED:
            data = self._decode_json_feed(body)
            return FeedParser.parse_json(data, feed_url, max_posts)

        if shape is ResponseShape.WRAPPED_JSON:
            payload = self._decode_wrapped(body)
        else:
            payload = self._decode_raw(body)

        if not _FEED_ROOT_RE.search(payload):
            raise ShapeError("payload has no rss/feed/channel root")
        return FeedParser.parse_xml(payload, feed_url, max_posts)

    async def _fetch(self, descriptor: RelayDescriptor, request_url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=descriptor.timeout)
        try:
            async with self.session.get(request_url, timeout=timeout) as resp:
                if not 200 <= resp.status < 300:
                    raise NetworkError(f"HTTP {resp.status}", status=resp.status)
                return await resp.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise NetworkError(f"timed out after {descriptor.timeout:g}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"request failed: {e}") from e

    # ------------------------------------------------------------------
    # Transport decoding
    # ------------------------------------------------------------------

    @staticmethod
    def _load_json(body: str):
        try:
            return json.loads(body)
        except ValueError as e:
            raise ShapeError(f"response is not JSON ({e})") from e

    @classmethod
    def _decode_wrapped(cls, body: str) -> str:
        data = cls._load_json(body)
        contents = data.get("contents") if isinstance(data, dict) else None
        if not isinstance(contents, str):
            raise ShapeError("no 'contents' string in response")
        if len(contents) < MIN_PAYLOAD_LENGTH:
            raise ShapeError(f"'contents' too short ({len(contents)} chars)")
        return decode_data_uri(contents)

    @staticmethod
    def _decode_raw(body: str) -> str:
        if len(body) < MIN_PAYLOAD_LENGTH:
            raise ShapeError(f"response too short ({len(body)} chars)")
        return body

    @classmethod
    def _decode_json_feed(cls, body: str):
        data = cls._load_json(body)
        if isinstance(data, dict) and "status" in data and data["status"] != "ok":
            detail = data.get("message") or ""
            raise ShapeError(f"relay status {data['status']!r} {detail}".rstrip())
        if json_items(data) is None:
            raise ShapeError("unrecognised JSON feed shape")
        return data


def decode_data_uri(contents: str) -> str:
    """Return the feed text carried by *contents*.

    Plain strings pass through. ``data:`` URIs are split at the first comma;
    a ``;base64`` header means Base64, anything else is percent-encoded.
    """
    if not contents.startswith("data:"):
        return contents
    header, sep, data = contents.partition(",")
    if not sep:
        raise ShapeError("malformed data URI")
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(data).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            raise ShapeError(f"bad Base64 payload ({e})") from e
    return unquote(data)
