import gzip
from http.client import HTTPMessage
from urllib.parse import quote

import brotli
import pytest

from torrentfeed import sites

RSS = (
    '<?xml version="1.0" encoding="utf-8"?>'
    "<rss><channel><title>ACG.RIP</title>"
    '<item><title>One</title><enclosure url="https://acg.rip/t/1.torrent"/></item>'
    "</channel></rss>"
)


class _FakeResponse:
    def __init__(self, body, headers):
        self._body = body
        self.headers = headers

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class _FakeOpener:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def open(self, request, timeout=None):
        self.requests.append((request, timeout))
        return self.response


def _headers(**values):
    message = HTTPMessage()
    for key, value in values.items():
        message[key.replace("_", "-")] = value
    return message


@pytest.fixture
def opener(monkeypatch):
    fake = _FakeOpener(
        _FakeResponse(RSS.encode("utf-8"), _headers(Content_Type="application/xml; charset=utf-8"))
    )
    monkeypatch.setattr(sites, "build_opener", lambda *handlers: fake)
    return fake


def test_catalog():
    assert set(sites.SITES) == {"acg", "dmhy", "mikanani"}
    assert sites.SITES["acg"].returns_torrent_files
    assert not sites.SITES["dmhy"].returns_torrent_files
    assert not sites.SITES["mikanani"].returns_torrent_files


def test_search_url_joins_words_with_plus():
    assert sites.search_url("acg", "frieren 1080p") == "https://acg.rip/.xml?term=frieren+1080p"
    assert (
        sites.search_url("mikanani", "frieren")
        == "https://mikanani.me/RSS/Search?searchstr=frieren"
    )


def test_search_url_unknown_site_uses_default():
    assert sites.search_url("nyaa", "x") == "https://acg.rip/.xml?term=x"
    assert sites.search_url(None, "x") == "https://acg.rip/.xml?term=x"


def test_search_url_quotes_non_ascii_and_keeps_encoded_input():
    keyword = "葬送的芙莉莲"
    expected = "https://share.dmhy.org/topics/rss/rss.xml?keyword=" + quote(keyword)
    assert sites.search_url("dmhy", keyword) == expected
    assert sites.search_url("dmhy", quote(keyword)) == expected


def test_fetch_text_sends_browser_headers(opener):
    text = sites.fetch_text("https://acg.rip/.xml?term=x", timeout=5)
    assert text == RSS
    request, timeout = opener.requests[0]
    assert timeout == 5
    assert request.full_url == "https://acg.rip/.xml?term=x"
    assert request.get_header("User-agent") == sites.USER_AGENT
    assert "br" in request.get_header("Accept-encoding")


@pytest.mark.parametrize(
    "encoding, compress",
    [("gzip", gzip.compress), ("br", brotli.compress)],
)
def test_fetch_text_decompresses(monkeypatch, encoding, compress):
    response = _FakeResponse(
        compress(RSS.encode("utf-8")),
        _headers(Content_Encoding=encoding, Content_Type="application/rss+xml; charset=utf-8"),
    )
    monkeypatch.setattr(sites, "build_opener", lambda *handlers: _FakeOpener(response))
    assert sites.fetch_text("https://example.org/rss") == RSS


def test_fetch_text_returns_bytes_when_charset_is_wrong(monkeypatch):
    body = b"<rss><channel><title>caf\xe9</title></channel></rss>"
    response = _FakeResponse(body, _headers(Content_Type="text/xml; charset=utf-8"))
    monkeypatch.setattr(sites, "build_opener", lambda *handlers: _FakeOpener(response))
    assert sites.fetch_text("https://example.org/rss") == body


def test_search_fetches_and_parses(opener):
    feed = sites.search("acg", "frieren")
    assert feed.type == "rss"
    assert feed.title == "ACG.RIP"
    assert [item.torrent for item in feed.items] == ["https://acg.rip/t/1.torrent"]
    request, _ = opener.requests[0]
    assert request.full_url == "https://acg.rip/.xml?term=frieren"


def test_search_empty_body_is_not_a_feed(monkeypatch):
    response = _FakeResponse(b"", _headers())
    monkeypatch.setattr(sites, "build_opener", lambda *handlers: _FakeOpener(response))
    assert sites.search("dmhy", "nothing") is None


def test_search_url_escapes_lone_percent_signs():
    assert sites.search_url("acg", "100% ova") == "https://acg.rip/.xml?term=100%25+ova"
    assert sites.search_url("acg", "%zz%41") == "https://acg.rip/.xml?term=%25zz%41"
