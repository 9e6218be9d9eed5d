from torrentfeed import build_tree, parse_feed


def test_parse_str_with_non_utf8_xml_declaration():
    xml = (
        '<?xml version="1.0" encoding="iso-8859-1"?>'
        '<rss version="2.0">'
        "<channel>"
        "<title>café</title>"
        "<item><title>café</title></item>"
        "</channel>"
        "</rss>"
    )
    feed = parse_feed(xml)
    assert feed.title == "café"
    assert feed.items[0].title == "café"


def test_parse_bytes_with_non_utf8_encoding():
    xml_bytes = (
        b'<?xml version="1.0" encoding="iso-8859-1"?>'
        b'<rss version="2.0">'
        b"<channel>"
        b"<title>caf\xe9</title>"
        b"<item><title>caf\xe9</title></item>"
        b"</channel>"
        b"</rss>"
    )
    feed = parse_feed(xml_bytes)
    assert feed.title == "café"
    assert feed.items[0].title == "café"


def test_parse_bytes_with_utf8_bom_and_leading_whitespace():
    xml_bytes = (
        b"\xef\xbb\xbf\n  <?xml version=\"1.0\" encoding=\"utf-8\"?>"
        b"<rss><channel><title>\xe5\x8a\xa8\xe7\x94\xbb</title></channel></rss>"
    )
    feed = parse_feed(xml_bytes)
    assert feed.title == "动画"


def test_line_separators_do_not_break_parsing():
    xml = "<rss><channel><item><title>one\u2028two</title></item></channel></rss>"
    feed = parse_feed(xml)
    assert feed.items[0].title == "one two"


def test_cdata_description_is_kept_as_text():
    xml = (
        "<rss><channel><item>"
        "<description><![CDATA[<p>Episode <b>01</b></p>]]></description>"
        "</item></channel></rss>"
    )
    feed = parse_feed(xml)
    assert feed.items[0].description == "<p>Episode <b>01</b></p>"


def test_empty_input_builds_no_nodes():
    assert build_tree("") == []
    assert build_tree(b"   \n") == []
    assert build_tree("just some words") == []
