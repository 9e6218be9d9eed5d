from __future__ import annotations

import datetime
import re
from email.utils import parsedate_to_datetime
from functools import lru_cache
from typing import Any, Iterable, Optional

from dateutil import parser as dateutil_parser

from .dom import (
    Element,
    Node,
    TreeOptions,
    build_tree,
    find_by_tag,
    find_one,
    text_of,
)
from .models import Feed, FeedItem, FeedType, MediaInfo

_UTC = datetime.timezone.utc

_RE_WHITESPACE = re.compile(r"\s+")
_RE_ISO_TZ_NO_COLON = re.compile(r"([+-]\d{2})(\d{2})$")
_RE_RFC822 = re.compile(
    r"(?:\w{3},\s+)?(\d{1,2})\s+(\w{3})\s+(\d{4})\s+(\d{2}):(\d{2}):(\d{2})\s+([+-]\d{4}|[A-Z]{2,3})"
)
_MONTHS_RFC822: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# RFC 822 zone names, plus UTC and JST seen on the trackers
_ZONE_OFFSETS: dict[str, int] = {
    "UT": 0,
    "UTC": 0,
    "GMT": 0,
    "EST": -18000,
    "EDT": -14400,
    "CST": -21600,
    "CDT": -18000,
    "MST": -25200,
    "MDT": -21600,
    "PST": -28800,
    "PDT": -25200,
    "JST": 32400,
}

# Two defaults that differ in every date part: a result that changes with
# the default was filled in by dateutil, not read from the source.
_DATEUTIL_DEFAULTS = (
    datetime.datetime(1970, 1, 1),
    datetime.datetime(1971, 2, 2),
)

# Root tag -> dialect. Only these spellings are recognised as feeds.
_FEED_ROOTS: dict[str, FeedType] = {
    "feed": "atom",
    "rss": "rss",
    "rdf:RDF": "rdf",
}


def _normalize_iso_datetime_string(value: str) -> str:
    """Coerce Atom-style timestamps into a form datetime.fromisoformat can parse."""
    if value[-1] in ("Z", "z"):
        return value[:-1] + "+00:00"

    # "2024-01-15 10:30:00" -> "2024-01-15T10:30:00"
    if len(value) > 10 and value[10] == " ":
        value = f"{value[:10]}T{value[11:]}"

    match = _RE_ISO_TZ_NO_COLON.search(value)
    if match and "T" in value:
        value = value[:-5] + f"{match.group(1)}:{match.group(2)}"
    return value


def _ensure_utc(dt: datetime.datetime) -> Optional[datetime.datetime]:
    """Return a timezone-aware datetime normalized to UTC."""
    try:
        return dt.replace(tzinfo=_UTC) if dt.tzinfo is None else dt.astimezone(_UTC)
    except (ValueError, OverflowError):
        return None


def _fast_rfc822(value: str) -> Optional[datetime.datetime]:
    """Regex RFC-822 parsing for the common `Tue, 01 Jan 2024 00:00:00 GMT` shape."""
    m = _RE_RFC822.match(value)
    if not m:
        return None
    day, mon_str, year, hour, minute, second, tz = m.groups()
    month = _MONTHS_RFC822.get(mon_str.lower())
    if month is None:
        return None
    if tz[0] in "+-":
        offset = (int(tz[1:3]) * 3600 + int(tz[3:5]) * 60) * (1 if tz[0] == "+" else -1)
    else:
        offset = _ZONE_OFFSETS.get(tz)
        if offset is None:
            return None
    try:
        dt = datetime.datetime(
            int(year),
            month,
            int(day),
            int(hour),
            int(minute),
            int(second),
            tzinfo=datetime.timezone(datetime.timedelta(seconds=offset)),
        )
    except ValueError:
        return None
    return _ensure_utc(dt)


def _parsedate_to_utc(value: str) -> Optional[datetime.datetime]:
    """RFC-822 / RFC-2822 parsing via email.utils (fallback)."""
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return _ensure_utc(parsed)


def _dateutil_parse(value: str) -> Optional[datetime.datetime]:
    try:
        first, second = (
            dateutil_parser.parse(value, default=default, tzinfos=_ZONE_OFFSETS)
            for default in _DATEUTIL_DEFAULTS
        )
    except (ValueError, TypeError, OverflowError):
        return None
    if first != second:
        return None
    return _ensure_utc(first)


@lru_cache(maxsize=8192)
def parse_date(date_str: str) -> Optional[datetime.datetime]:
    """Parse an RFC-822 or ISO-8601 style date string.

    Args:
        date_str: Date string as found in pubDate, lastBuildDate, updated or dc:date

    Returns:
        Timezone-aware UTC datetime, or None when parsing fails
    """
    candidate = _RE_WHITESPACE.sub(" ", date_str).strip()
    if not candidate:
        return None

    if len(candidate) >= 10 and candidate[4] == "-" and candidate[0:4].isdigit():
        try:
            dt = datetime.datetime.fromisoformat(
                _normalize_iso_datetime_string(candidate)
            )
        except ValueError:
            dt = None
        if dt is not None:
            utc_dt = _ensure_utc(dt)
            if utc_dt is not None:
                return utc_dt

    return (
        _fast_rfc822(candidate)
        or _parsedate_to_utc(candidate)
        or _dateutil_parse(candidate)
    )


_MEDIA_KEYS_STRING = ("url", "type", "lang")

# media:content attribute -> MediaInfo field
_MEDIA_KEYS_INT = {
    "fileSize": "file_size",
    "bitrate": "bitrate",
    "framerate": "framerate",
    "samplingrate": "samplingrate",
    "channels": "channels",
    "duration": "duration",
    "height": "height",
    "width": "width",
}


def _parse_non_negative_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        number = int(value.strip(), 10)
    except ValueError:
        return None
    return number if number >= 0 else None


def extract_media(nodes: Iterable[Node]) -> tuple[MediaInfo, ...]:
    """Collect the `media:content` elements directly among `nodes`."""
    media: list[MediaInfo] = []
    for elem in find_by_tag("media:content", nodes, recurse=False):
        attribs = elem.attribs
        values: dict[str, Any] = {
            key: attribs[key] for key in _MEDIA_KEYS_STRING if attribs.get(key)
        }
        for attrib, name in _MEDIA_KEYS_INT.items():
            number = _parse_non_negative_int(attribs.get(attrib))
            if number is not None:
                values[name] = number
        media.append(
            MediaInfo(
                medium=attribs.get("medium") or None,
                is_default=bool(attribs.get("isDefault")),
                expression=attribs.get("expression") or None,
                **values,
            )
        )
    return tuple(media)


_TEXT = "text"
_HREF = "href"
_DATE = "date"

# (field, candidate tags tried in order until one is non-empty, value kind, recurse)
_FieldSpec = tuple[str, tuple[str, ...], str, bool]

_ATOM_ENTRY_FIELDS: tuple[_FieldSpec, ...] = (
    ("id", ("id",), _TEXT, False),
    ("title", ("title",), _TEXT, False),
    ("link", ("link",), _HREF, False),
    ("description", ("summary", "content"), _TEXT, False),
    ("pub_date", ("updated",), _DATE, False),
)

_ATOM_FEED_FIELDS: tuple[_FieldSpec, ...] = (
    ("id", ("id",), _TEXT, False),
    ("title", ("title",), _TEXT, False),
    ("link", ("link",), _HREF, False),
    ("description", ("subtitle",), _TEXT, False),
    ("updated", ("updated",), _DATE, False),
    # <author><email>...</email></author>
    ("author", ("email",), _TEXT, True),
)

_RSS_ITEM_FIELDS: tuple[_FieldSpec, ...] = (
    ("id", ("guid",), _TEXT, False),
    ("title", ("title",), _TEXT, False),
    ("link", ("link",), _TEXT, False),
    ("description", ("description",), _TEXT, False),
    ("guid", ("guid",), _TEXT, False),
    ("torrent", ("enclosure",), _TEXT, False),
    ("pub_date", ("pubDate", "dc:date"), _DATE, False),
)

_RSS_FEED_FIELDS: tuple[_FieldSpec, ...] = (
    ("title", ("title",), _TEXT, False),
    ("link", ("link",), _TEXT, False),
    ("description", ("description",), _TEXT, False),
    ("updated", ("lastBuildDate",), _DATE, False),
    ("author", ("managingEditor",), _TEXT, True),
)


def _first_value(
    tags: tuple[str, ...], nodes: list[Node], kind: str, recurse: bool
) -> str:
    for tag in tags:
        if kind == _HREF:
            element = find_one(tag, nodes, recurse)
            href = element.attribs.get("href") if element is not None else None
            value = href.strip() if href else ""
        else:
            value = text_of(tag, nodes, recurse)
        if value:
            return value
    return ""


def _extract_fields(
    fields: tuple[_FieldSpec, ...], nodes: list[Node]
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, tags, kind, recurse in fields:
        raw = _first_value(tags, nodes, kind, recurse)
        # An empty string means the source did not carry the field.
        if not raw:
            continue
        value = parse_date(raw) if kind == _DATE else raw
        if value is not None:
            values[name] = value
    return values


def _build_item(node: Element, fields: tuple[_FieldSpec, ...]) -> FeedItem:
    children = node.children
    return FeedItem(media=extract_media(children), **_extract_fields(fields, children))


def _parse_atom_feed(feed_root: Element) -> Feed:
    children = feed_root.children
    items = tuple(
        _build_item(entry, _ATOM_ENTRY_FIELDS)
        for entry in find_by_tag("entry", children, recurse=False)
    )
    return Feed(type="atom", items=items, **_extract_fields(_ATOM_FEED_FIELDS, children))


def _parse_rss_feed(feed_root: Element) -> Feed:
    # RDF keeps <item> next to <channel>, RSS nests it inside: items are
    # searched in the whole root, the channel only supplies feed metadata.
    channel = find_one("channel", feed_root.children)
    container = channel.children if channel is not None else feed_root.children
    items = tuple(
        _build_item(item, _RSS_ITEM_FIELDS)
        for item in find_by_tag("item", feed_root.children)
    )
    return Feed(
        type=_FEED_ROOTS[feed_root.name],
        items=items,
        **_extract_fields(_RSS_FEED_FIELDS, container),
    )


def _is_feed_root(name: str) -> bool:
    return name in _FEED_ROOTS


def parse_feed(
    source: str | bytes, options: Optional[TreeOptions] = None
) -> Optional[Feed]:
    """Parse an RSS 2.0, RDF (RSS 1.0) or Atom document into a Feed.

    Args:
        source: Feed markup as text or bytes
        options: Tree builder options; feeds are parsed as XML by default

    Returns:
        The normalized Feed, or None when no rss/feed/rdf:RDF element exists

    Raises:
        TreeBuildError: If the markup cannot be parsed at all
    """
    feed_root = find_one(_is_feed_root, build_tree(source, options))
    if feed_root is None:
        return None
    if feed_root.name == "feed":
        return _parse_atom_feed(feed_root)
    return _parse_rss_feed(feed_root)
