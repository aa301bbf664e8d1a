"""
RSS 2.0 / RSS 1.0 and Atom feed parsing.

Feeds are parsed with ElementTree; tags are matched on their local name so
namespaced variants (``dc:date``, ``content:encoded``, ``media:content``)
resolve without a namespace map per feed.
"""
import hashlib
import html
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from html.entities import name2codepoint
from typing import Iterable, List, Optional

ATOM_NS = "http://www.w3.org/2005/Atom"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"
MEDIA_NS = "http://search.yahoo.com/mrss/"

SUMMARY_MAX_LENGTH = 500

XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}
ENTITY_PATTERN = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
BARE_AMPERSAND_PATTERN = re.compile(r"&(?!#[0-9]+;|#[xX][0-9A-Fa-f]+;|[A-Za-z][A-Za-z0-9]*;)")
CDATA_PATTERN = re.compile(r"(<!\[CDATA\[.*?\]\]>)", re.DOTALL)
TAG_PATTERN = re.compile(r"<[^<>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")
IMG_SRC_PATTERN = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)


@dataclass
class ParsedFeedItem:
    title: str
    link: str
    guid: str
    summary: Optional[str]
    image_url: Optional[str]
    published_at: datetime


@dataclass
class ParseFeedResult:
    items: List[ParsedFeedItem] = field(default_factory=list)
    error: Optional[str] = None


def hash_guid(guid: str) -> str:
    return hashlib.sha256(guid.encode("utf-8")).hexdigest()


def strip_html(text: str) -> str:
    """HTML fragment to plain text: tags dropped, entities decoded, whitespace collapsed."""
    return WHITESPACE_PATTERN.sub(" ", html.unescape(TAG_PATTERN.sub("", text))).strip()


def truncate_summary(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


def _numeric_entity(match: re.Match) -> str:
    name = match.group(1)
    if name in XML_ENTITIES:
        return match.group(0)
    if name in name2codepoint:
        return f"&#{name2codepoint[name]};"
    return f"&amp;{name};"


def _repair_xml(xml: str) -> str:
    """Makes loose feed markup well-formed outside CDATA sections.

    HTML named entities (``&nbsp;``, ``&mdash;``) become numeric references,
    unknown entities and bare ampersands (``Tom & Jerry``) are escaped.
    """
    parts = CDATA_PATTERN.split(xml)
    for i in range(0, len(parts), 2):
        repaired = ENTITY_PATTERN.sub(_numeric_entity, parts[i])
        parts[i] = BARE_AMPERSAND_PATTERN.sub("&amp;", repaired)
    return "".join(parts)


def _local(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _ns(tag) -> str:
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def _children(elem: ET.Element, name: str, namespace: Optional[str] = None) -> Iterable[ET.Element]:
    for child in elem:
        if _local(child.tag) == name and (namespace is None or _ns(child.tag) == namespace):
            yield child


def _first(elem: ET.Element, name: str, namespace: Optional[str] = None) -> Optional[ET.Element]:
    return next(iter(_children(elem, name, namespace)), None)


def _text(elem: ET.Element, name: str, namespace: Optional[str] = None) -> Optional[str]:
    child = _first(elem, name, namespace)
    if child is None:
        return None
    # Atom text constructs may carry XHTML children
    text = "".join(child.itertext()).strip()
    return text or None


def _media_image(elem: ET.Element) -> Optional[str]:
    for name in ("content", "thumbnail"):
        child = _first(elem, name, MEDIA_NS)
        if child is not None and child.get("url"):
            return child.get("url")
    # media:group wraps media:content in some feeds
    group = _first(elem, "group", MEDIA_NS)
    if group is not None:
        return _media_image(group)
    return None


def _image_from_html(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = IMG_SRC_PATTERN.search(text)
    return html.unescape(match.group(1)) if match else None


def _summary(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    return truncate_summary(strip_html(description))


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date(value: Optional[str]) -> datetime:
    """RFC 822 (RSS) or ISO 8601 (Atom, dc:date); now when missing or unparsable."""
    if not value:
        return datetime.utcnow()
    value = value.strip()
    try:
        return _to_naive_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError, AttributeError):
        pass
    try:
        return _to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return datetime.utcnow()


def _parse_rss_item(item: ET.Element, source_url: str) -> Optional[ParsedFeedItem]:
    title = _text(item, "title")
    link = _text(item, "link")
    if not link:
        link_elem = _first(item, "link")
        link = link_elem.get("href") if link_elem is not None else None
    if not title or not link:
        return None

    guid = _text(item, "guid") or link or f"{source_url}#{title}"
    description = _text(item, "description") or _text(item, "encoded", CONTENT_NS)
    published = _text(item, "pubDate") or _text(item, "date", DC_NS)

    image_url = _media_image(item)
    if not image_url:
        enclosure = _first(item, "enclosure")
        if enclosure is not None and enclosure.get("url"):
            image_url = enclosure.get("url")
    if not image_url:
        image_url = _image_from_html(description)

    return ParsedFeedItem(
        title=title,
        link=link.strip(),
        guid=guid.strip(),
        summary=_summary(description),
        image_url=image_url,
        published_at=parse_date(published),
    )


def _atom_link(entry: ET.Element) -> Optional[str]:
    links = list(_children(entry, "link", ATOM_NS))
    for link in links:
        if link.get("rel") == "alternate" and link.get("href"):
            return link.get("href")
    for link in links:
        if link.get("href"):
            return link.get("href")
    return None


def _parse_atom_entry(entry: ET.Element, source_url: str) -> Optional[ParsedFeedItem]:
    title = _text(entry, "title", ATOM_NS)
    link = _atom_link(entry)
    if not title or not link:
        return None

    guid = _text(entry, "id", ATOM_NS) or link or f"{source_url}#{title}"
    description = _text(entry, "summary", ATOM_NS) or _text(entry, "content", ATOM_NS)
    published = _text(entry, "updated", ATOM_NS) or _text(entry, "published", ATOM_NS)

    return ParsedFeedItem(
        title=title,
        link=link.strip(),
        guid=guid.strip(),
        summary=_summary(description),
        image_url=_media_image(entry) or _image_from_html(description),
        published_at=parse_date(published),
    )


def is_atom_feed(xml: str) -> bool:
    return "<feed" in xml and f'xmlns="{ATOM_NS}"' in xml


def parse_feed(xml: str, source_url: str) -> ParseFeedResult:
    """Parses RSS or Atom text. Malformed XML is reported in ``error`` with no items."""
    try:
        root = ET.fromstring(_repair_xml(xml.strip()))
    except ET.ParseError as e:
        return ParseFeedResult(items=[], error=f"Invalid feed XML: {e}")

    items: List[ParsedFeedItem] = []
    if is_atom_feed(xml):
        for entry in root.iter(f"{{{ATOM_NS}}}entry"):
            parsed = _parse_atom_entry(entry, source_url)
            if parsed:
                items.append(parsed)
    else:
        for elem in root.iter():
            if _local(elem.tag) != "item":
                continue
            parsed = _parse_rss_item(elem, source_url)
            if parsed:
                items.append(parsed)

    return ParseFeedResult(items=items, error=None)
