"""
FeedParser - Turns relay payloads into normalised Post lists.

Responsibilities:
    - Parse RSS 2.0, RSS 1.0/RDF and Atom text (via feedparser)
    - Parse JSON conversions of feeds (items / entries / bare array)
    - Resolve title, date and link through ordered field candidates
    - Truncate to the requested count, then drop placeholder titles
    - No network I/O and no cache interaction
"""
import html
import io
import re
import xml.sax
from datetime import datetime
from typing import Any, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

import feedparser
from dateutil import parser as date_parser

from feeds.constants import DOMAIN_PREFIXES, MIN_TITLE_LENGTH
from feeds.errors import ParseError
from feeds.models import NO_DATE, NO_LINK, NO_TITLE, Post
from core.logging.logger import get_logger
from core.logging.tags import TAG_PARSER

logger = get_logger(__name__)

_TAG_RE = re.compile(r"<.*?>", re.DOTALL)

# feedparser exposes RSS pubDate / Atom published as "published" and
# dc:date / Atom updated as "updated".
_XML_PARSED_DATE_FIELDS = ("published_parsed", "updated_parsed", "created_parsed")
_XML_RAW_DATE_FIELDS = ("published", "pubdate", "updated", "dc_date", "created", "date")

_JSON_DATE_FIELDS = ("pubDate", "published", "date_published", "updated", "date_modified", "date")
_JSON_LINK_FIELDS = ("link", "url", "guid", "id")
_JSON_ITEM_KEYS = ("items", "entries")


class FeedParser:
    """Stateless feed parser. All methods are staticmethods."""

    # ------------------------------------------------------------------
    # XML family (RSS 2.0, RSS 1.0/RDF, Atom)
    # ------------------------------------------------------------------

    @staticmethod
    def parse_xml(payload: str, source_url: str, max_posts: Optional[int] = None) -> List[Post]:
        """Parse an XML feed document into posts.

        Args:
            payload: Feed document text
            source_url: The feed URL (domain source, base for relative links)
            max_posts: Truncate to this many entries before filtering

        Raises:
            ParseError: on malformed XML or when no usable post remains
        """
        if not payload or not payload.strip():
            raise ParseError("Empty feed document")

        # Hand feedparser bytes with an explicit charset so it never falls
        # back to the document's (possibly wrong) encoding declaration.
        feed = feedparser.parse(
            io.BytesIO(payload.encode("utf-8")),
            response_headers={"content-type": "application/xml; charset=utf-8"},
        )
        exc = feed.get("bozo_exception")
        if feed.get("bozo") and isinstance(exc, xml.sax.SAXException):
            raise ParseError(f"Malformed XML: {exc}")

        entries = list(feed.entries)
        if not entries:
            raise ParseError("No item or entry elements found")

        domain = extract_domain(source_url)
        raw_posts = [
            Post(
                domain=domain,
                date=_format_date(_resolve_xml_date(entry)),
                title=clean_title(entry.get("title")),
                link=_absolute(_resolve_xml_link(entry), source_url),
            )
            for entry in _truncate(entries, max_posts)
        ]
        posts = filter_posts(raw_posts)

        feed_title = feed.feed.get("title", "Unknown Feed")
        logger.info(
            f"{TAG_PARSER} XML feed '{feed_title}': {len(entries)} entries, "
            f"{len(raw_posts)} kept after limit, {len(posts)} usable"
        )
        if not posts:
            raise ParseError(f"No usable posts among {len(raw_posts)} entries")
        return posts

    # ------------------------------------------------------------------
    # JSON family
    # ------------------------------------------------------------------

    @staticmethod
    def parse_json(payload: Any, source_url: str, max_posts: Optional[int] = None) -> List[Post]:
        """Parse a JSON feed conversion into posts.

        Accepts ``{"items": [...]}``, ``{"entries": [...]}`` or a bare list.

        Raises:
            ParseError: on an unrecognised shape or when no usable post remains
        """
        items = json_items(payload)
        if items is None:
            raise ParseError("Unrecognised JSON structure (no items/entries array)")
        if not items:
            raise ParseError("JSON feed contains no items")

        domain = extract_domain(source_url)
        raw_posts = []
        for item in _truncate(items, max_posts):
            if not isinstance(item, dict):
                continue
            raw_posts.append(Post(
                domain=domain,
                date=_format_date(_resolve_json_date(item)),
                title=clean_title(item.get("title")),
                link=_absolute(_resolve_json_link(item), source_url),
            ))
        posts = filter_posts(raw_posts)

        logger.info(
            f"{TAG_PARSER} JSON feed: {len(items)} items, "
            f"{len(raw_posts)} kept after limit, {len(posts)} usable"
        )
        if not posts:
            raise ParseError(f"No usable posts among {len(raw_posts)} items")
        return posts


parse_xml = FeedParser.parse_xml
parse_json = FeedParser.parse_json


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------

def json_items(payload: Any) -> Optional[list]:
    """Return the item array of a JSON feed payload, or None if unrecognised."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _JSON_ITEM_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None


def extract_domain(url: str) -> str:
    """Hostname of *url* without one common subdomain prefix."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        host = ""
    if not host:
        return "Unknown"
    for prefix in DOMAIN_PREFIXES:
        if host.startswith(prefix) and len(host) > len(prefix):
            return host[len(prefix):]
    return host


def clean_title(raw: Optional[str]) -> str:
    """Strip markup and entities from a title; empty becomes NO_TITLE."""
    if not raw:
        return NO_TITLE
    text = html.unescape(_TAG_RE.sub("", str(raw)))
    text = " ".join(text.split())
    return text or NO_TITLE


def filter_posts(posts: Iterable[Post]) -> List[Post]:
    """Drop posts whose title is a placeholder."""
    return [
        p for p in posts
        if p.title and p.title != NO_TITLE and len(p.title) >= MIN_TITLE_LENGTH
    ]


def _truncate(items: list, max_posts: Optional[int]) -> list:
    if max_posts is None or max_posts <= 0:
        return items
    return items[:max_posts]


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return NO_DATE
    return f"{value:%b} {value.day}, {value.year}"


def _parse_date_string(raw: Any) -> Optional[datetime]:
    if not raw or not isinstance(raw, str):
        return None
    try:
        return date_parser.parse(raw)
    except (ValueError, OverflowError, TypeError):
        logger.debug(f"{TAG_PARSER} Unparsable date '{raw}'")
        return None


def _resolve_xml_date(entry) -> Optional[datetime]:
    for field in _XML_PARSED_DATE_FIELDS:
        ts = entry.get(field)
        if ts:
            try:
                return datetime(*ts[:6])
            except (ValueError, TypeError):
                logger.debug(f"{TAG_PARSER} Bad {field} tuple {ts}", exc_info=True)
    for field in _XML_RAW_DATE_FIELDS:
        parsed = _parse_date_string(entry.get(field))
        if parsed is not None:
            return parsed
    return None


def _resolve_xml_link(entry) -> str:
    link = entry.get("link")
    if link:
        return link.strip()
    for candidate in entry.get("links") or []:
        href = candidate.get("href")
        if href and candidate.get("rel", "alternate") == "alternate":
            return href.strip()
    for field in ("id", "guid"):
        value = entry.get(field)
        if value:
            return str(value).strip()
    return NO_LINK


def _resolve_json_date(item: dict) -> Optional[datetime]:
    for field in _JSON_DATE_FIELDS:
        parsed = _parse_date_string(item.get(field))
        if parsed is not None:
            return parsed
    return None


def _resolve_json_link(item: dict) -> str:
    for field in _JSON_LINK_FIELDS:
        value = item.get(field)
        if isinstance(value, dict):
            value = value.get("href") or value.get("url")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return NO_LINK


def _absolute(link: str, source_url: str) -> str:
    if not link or link == NO_LINK:
        return NO_LINK
    try:
        return urljoin(source_url, link)
    except ValueError:
        return link
