from __future__ import annotations

import gzip
import logging
import re
import zlib
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote
from urllib.request import (
    HTTPErrorProcessor,
    HTTPRedirectHandler,
    Request,
    build_opener,
)

import brotli

from .main import parse_feed
from .models import Feed

logger = logging.getLogger(__name__)

_RE_LONE_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36 Edg/123.0.0.0"
)


@dataclass(frozen=True)
class Site:
    key: str
    name: str
    search_url: str
    # The tracker links .torrent files instead of magnet URIs.
    returns_torrent_files: bool = False


SITES: dict[str, Site] = {
    "acg": Site(
        "acg", "ACG.RIP", "https://acg.rip/.xml?term=", returns_torrent_files=True
    ),
    "dmhy": Site(
        "dmhy", "动漫花园", "https://share.dmhy.org/topics/rss/rss.xml?keyword="
    ),
    "mikanani": Site("mikanani", "密柑计划", "https://mikanani.me/RSS/Search?searchstr="),
}

DEFAULT_SITE = "acg"


def get_site(key: Optional[str]) -> Site:
    """Look up a tracker, falling back to the default one for unknown keys."""
    return SITES.get(key or DEFAULT_SITE, SITES[DEFAULT_SITE])


def search_url(site: Optional[str], keyword: str) -> str:
    """Build the RSS search URL for `keyword` on `site`.

    Spaces become `+`; already percent-encoded sequences are kept as is.
    """
    term = _RE_LONE_PERCENT.sub("%25", keyword.strip().replace(" ", "+"))
    term = quote(term, safe="+%")
    return get_site(site).search_url + term


def fetch_text(url: str, timeout: float = 30) -> str | bytes:
    request = Request(
        url,
        method="GET",
        headers={
            "Accept-Encoding": "gzip, deflate, br",
            "Content-Type": "application/xml; charset=utf-8",
            "User-Agent": USER_AGENT,
        },
    )
    opener = build_opener(HTTPRedirectHandler(), HTTPErrorProcessor())
    with opener.open(request, timeout=timeout) as response:
        content: bytes = response.read()
        content_encoding = response.headers.get("Content-Encoding")
        if content_encoding == "gzip":
            content = gzip.decompress(content)
        elif content_encoding == "deflate":
            content = zlib.decompress(content, -zlib.MAX_WBITS)
        elif content_encoding == "br":
            content = brotli.decompress(content)
        content_charset = response.headers.get_content_charset()
        if content_charset:
            try:
                return content.decode(content_charset)
            except (UnicodeDecodeError, LookupError):
                # Wrong charset header; the XML declaration decides instead.
                return content
        return content


def search(site: Optional[str], keyword: str, timeout: float = 30) -> Optional[Feed]:
    """Fetch a tracker's search feed and normalize it.

    Returns None when the response is not a feed.

    Raises:
        URLError: If the request fails
    """
    url = search_url(site, keyword)
    logger.debug("Fetching %s", url)
    content = fetch_text(url, timeout=timeout)
    if not content:
        return None
    return parse_feed(content)
