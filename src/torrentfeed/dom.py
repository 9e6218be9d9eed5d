from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.entities import html5 as html5_entities
from typing import Callable, Iterable, Iterator, Optional, Union

from lxml import etree

_RE_XML_DECL_ENCODING = re.compile(
    r'(<\?xml[^>]*encoding=["\'])([^"\']+)(["\'][^>]*\?>)', re.IGNORECASE
)
_RE_WHITESPACE = re.compile(r"\s+")
_RE_CDATA = re.compile(rb"(<!\[CDATA\[.*?\]\]>)", re.DOTALL)
# Group 1 is set for named entities; numeric references are left alone.
_RE_REFERENCE = re.compile(rb"&(?:([A-Za-z][A-Za-z0-9]*);|(?!#\d+;|#x[0-9A-Fa-f]+;))")

_XML_NS = "http://www.w3.org/XML/1998/namespace"
_XML_ENTITIES = frozenset(("amp", "lt", "gt", "quot", "apos"))


class TreeBuildError(ValueError):
    """Raised when markup cannot be turned into a node tree at all."""


@dataclass(frozen=True)
class TreeOptions:
    # Case-sensitive names and no HTML element-closing rules. Feeds need this:
    # `dc:date`, `media:content` and `rdf:RDF` do not survive HTML parsing.
    treat_as_xml: bool = True


DEFAULT_OPTIONS = TreeOptions()


@dataclass(eq=False)
class Text:
    data: str
    parent: Optional[Element] = field(default=None, repr=False)


@dataclass(eq=False)
class Element:
    name: str
    attribs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    parent: Optional[Element] = field(default=None, repr=False)


Node = Union[Element, Text]
TagMatcher = Union[str, Callable[[str], bool]]


def _ensure_utf8_xml_declaration(content: str) -> str:
    """Ensure the XML declaration's encoding matches the UTF-8 bytes we emit."""
    if not content.lstrip().startswith("<?xml"):
        return content
    return _RE_XML_DECL_ENCODING.sub(r"\1utf-8\3", content, count=1)


def _prepare_markup_bytes(markup: str | bytes) -> bytes:
    if isinstance(markup, str):
        markup = _ensure_utf8_xml_declaration(markup).encode("utf-8", errors="replace")
    elif not isinstance(markup, bytes):
        raise TypeError(f"Expected str or bytes, got {type(markup).__name__}")

    cleaned = markup.lstrip()
    if cleaned.startswith(b"\xef\xbb\xbf"):
        cleaned = cleaned[3:].lstrip()

    # U+2028 / U+2029 are invalid in XML 1.0 and make lxml bail out.
    if b"\xe2\x80\xa8" in cleaned or b"\xe2\x80\xa9" in cleaned:
        cleaned = cleaned.replace(b"\xe2\x80\xa8", b"\n").replace(b"\xe2\x80\xa9", b"\n")
    return cleaned


def _replace_reference(match: re.Match[bytes]) -> bytes:
    name = match.group(1)
    if name is None:
        # "&" that starts no reference at all
        return b"&amp;"
    decoded = name.decode("ascii")
    if decoded in _XML_ENTITIES:
        return match.group(0)
    chars = html5_entities.get(decoded + ";")
    if chars is None:
        # Unknown entity: keep it as literal text
        return b"&amp;" + name + b";"
    return b"".join(b"&#%d;" % ord(char) for char in chars)


def _escape_stray_references(content: bytes) -> bytes:
    """Make bare ampersands and HTML named entities parseable, outside CDATA."""
    if b"&" not in content:
        return content
    parts = _RE_CDATA.split(content)
    for index in range(0, len(parts), 2):
        parts[index] = _RE_REFERENCE.sub(_replace_reference, parts[index])
    return b"".join(parts)


def _xml_parser(recover: bool) -> etree.XMLParser:
    # lxml parsers carry per-parse state; never share one across threads.
    return etree.XMLParser(
        recover=recover,
        collect_ids=False,
        resolve_entities=False,
        no_network=True,
    )


def _parse_lxml_root(content: bytes, options: TreeOptions) -> Optional[etree._Element]:
    if not options.treat_as_xml:
        parser = etree.HTMLParser(recover=True, collect_ids=False, no_network=True)
        try:
            return etree.fromstring(content, parser=parser)
        except etree.XMLSyntaxError as e:
            raise TreeBuildError(f"Failed to parse markup: {e}") from e

    try:
        return etree.fromstring(content, parser=_xml_parser(recover=False))
    except etree.XMLSyntaxError:
        try:
            return etree.fromstring(
                _escape_stray_references(content), parser=_xml_parser(recover=True)
            )
        except etree.XMLSyntaxError as e:
            raise TreeBuildError(f"Failed to parse XML content: {e}") from e


def _element_name(el: etree._Element) -> str:
    # Undeclared prefixes survive recovery as a plain "prefix:local" tag,
    # which etree.QName would reject.
    tag = el.tag
    if not tag.startswith("{"):
        return tag
    local = tag.split("}", 1)[1]
    return f"{el.prefix}:{local}" if el.prefix else local


def _attribute_name(key: str, el: etree._Element) -> str:
    if not key.startswith("{"):
        return key
    uri, local = key[1:].split("}", 1)
    if uri == _XML_NS:
        return f"xml:{local}"
    # Unprefixed attributes are never namespaced, so only prefixed bindings count.
    for prefix, bound in el.nsmap.items():
        if prefix and bound == uri:
            return f"{prefix}:{local}"
    return local


def _convert(el: etree._Element, parent: Optional[Element]) -> Element:
    node = Element(
        name=_element_name(el),
        attribs={_attribute_name(key, el): value for key, value in el.attrib.items()},
        parent=parent,
    )
    if el.text:
        node.children.append(Text(el.text, parent=node))
    for child in el:
        # Comments, processing instructions and entity references carry no feed data.
        if isinstance(child.tag, str):
            node.children.append(_convert(child, node))
        if child.tail:
            node.children.append(Text(child.tail, parent=node))
    return node


def build_tree(markup: str | bytes, options: Optional[TreeOptions] = None) -> list[Node]:
    """Parse markup into a list of root-level nodes.

    Unclosed tags and stray ampersands are recovered from. Input without any
    markup produces an empty list.

    Raises:
        TreeBuildError: If lxml cannot recover a document from the input
        TypeError: If markup is neither str nor bytes
    """
    options = options or DEFAULT_OPTIONS
    content = _prepare_markup_bytes(markup)
    if b"<" not in content:
        return []

    root = _parse_lxml_root(content, options)
    if root is None:
        return []
    return [_convert(root, None)]


def _as_nodes(nodes: Node | Iterable[Node]) -> Iterable[Node]:
    if isinstance(nodes, (Element, Text)):
        return (nodes,)
    return nodes


def find_by_tag(
    matcher: TagMatcher,
    nodes: Node | Iterable[Node],
    recurse: bool = True,
    limit: Optional[int] = None,
) -> list[Element]:
    """Collect elements whose name matches, in document (pre-)order.

    Args:
        matcher: Exact tag name, or a predicate over tag names
        nodes: Node or nodes to inspect; they are tested themselves
        recurse: Descend into children of the given nodes
        limit: Stop after this many matches

    Returns:
        Matching elements, possibly empty
    """
    if limit is not None and limit <= 0:
        return []
    if callable(matcher):
        test = matcher
    else:

        def test(name: str) -> bool:
            return name == matcher

    found: list[Element] = []
    stack: list[Iterator[Node]] = [iter(_as_nodes(nodes))]
    while stack:
        for node in stack[-1]:
            if not isinstance(node, Element):
                continue
            if test(node.name):
                found.append(node)
                if limit is not None and len(found) >= limit:
                    return found
            if recurse and node.children:
                stack.append(iter(node.children))
                break
        else:
            stack.pop()
    return found


def find_one(
    matcher: TagMatcher, nodes: Node | Iterable[Node], recurse: bool = True
) -> Optional[Element]:
    found = find_by_tag(matcher, nodes, recurse, 1)
    return found[0] if found else None


def text_content(nodes: Node | Iterable[Node]) -> str:
    parts: list[str] = []
    stack = list(reversed(list(_as_nodes(nodes))))
    while stack:
        node = stack.pop()
        if isinstance(node, Text):
            parts.append(node.data)
        else:
            stack.extend(reversed(node.children))
    return "".join(parts)


def text_of(tag_name: str, nodes: Node | Iterable[Node], recurse: bool = False) -> str:
    """Return the collapsed text of the first `tag_name` element, or "".

    RSS enclosures carry their payload as a `url` attribute, so that value is
    returned for an `enclosure` element instead of its (empty) text.
    """
    element = find_one(tag_name, nodes, recurse)
    if element is None:
        return ""
    if element.name == "enclosure" and "url" in element.attribs:
        return element.attribs["url"].strip()
    return _RE_WHITESPACE.sub(" ", text_content(element)).strip()
