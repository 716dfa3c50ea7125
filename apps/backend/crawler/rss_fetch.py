"""
RSS feed fetching and decoding.

Decoding is a deliberately permissive regex tokenizer rather than an XML
parser: job boards ship loosely-structured feeds and a strict parser would
reject most of them. Everything goes through FeedDecoder so a stricter
tokenizer can replace it without touching callers.
"""
import re
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

import httpx
from dateutil import parser as date_parser

from core.net import HTTPClient, FetchError, FeedHTTPError, FeedTimeoutError

logger = logging.getLogger(__name__)

__all__ = [
    "RssItem", "RssFeed", "FeedDecoder",
    "FetchError", "FeedHTTPError", "FeedTimeoutError",
    "clean_text", "extract_tag", "strip_html",
]

# Item tags mapped onto RssItem fields; anything else lands in RssItem.extra
KNOWN_ITEM_TAGS = {
    'title', 'link', 'description', 'content:encoded', 'content',
    'pubdate', 'guid', 'author', 'dc:creator', 'category',
}

_CHANNEL_OPEN = re.compile(r'<channel(?:\s[^>]*)?>', re.IGNORECASE)
_ITEM_BLOCK = re.compile(r'<item(?:\s[^>]*)?>([\s\S]*?)</item>', re.IGNORECASE)
_CATEGORY = re.compile(
    r'<category(?:\s[^>]*)?(?<!/)>(?:<!\[CDATA\[)?([\s\S]*?)(?:\]\]>)?</category>', re.IGNORECASE
)
_LEAF_TAG = re.compile(
    r'<([A-Za-z_][\w.\-]*(?::[\w.\-]+)?)(?:\s[^>]*)?(?<!/)>(<!\[CDATA\[[\s\S]*?\]\]>|[^<]*)</\1>'
)
_CDATA = re.compile(r'^<!\[CDATA\[([\s\S]*?)\]\]>$')

_NAMED_ENTITIES = [
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&amp;', '&'),
    ('&quot;', '"'),
    ('&apos;', "'"),
]
_CHAR_REF = re.compile(r'&#(?:x([0-9a-f]+)|(\d+));', re.IGNORECASE)


@dataclass
class RssItem:
    title: str
    link: str
    description: Optional[str] = None
    pub_date: Optional[str] = None
    guid: Optional[str] = None
    categories: Optional[List[str]] = None
    author: Optional[str] = None
    content: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def published_at(self) -> Optional[datetime]:
        """pub_date as a datetime, or None if missing or unparseable"""
        if not self.pub_date:
            return None
        try:
            return date_parser.parse(self.pub_date)
        except (ValueError, OverflowError):
            logger.debug(f"[rss_fetch] Unparseable pubDate: {self.pub_date!r}")
            return None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class RssFeed:
    title: str
    description: str
    link: str
    items: List[RssItem] = field(default_factory=list)
    last_build_date: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def _ref_code(match: re.Match) -> Optional[int]:
    hex_digits, decimal_digits = match.groups()
    code = int(hex_digits, 16) if hex_digits is not None else int(decimal_digits)
    return code if code <= 0x10FFFF else None


def _is_high_surrogate(code: Optional[int]) -> bool:
    return code is not None and 0xD800 <= code <= 0xDBFF


def _is_low_surrogate(code: Optional[int]) -> bool:
    return code is not None and 0xDC00 <= code <= 0xDFFF


def _decode_char_refs(text: str) -> str:
    """
    Replace &#NN; and &#xHH; with their characters.

    Adjacent UTF-16 surrogate references (&#55357;&#56832;) are joined into
    one code point. Lone surrogates and out-of-range values stay undecoded.
    """
    matches = list(_CHAR_REF.finditer(text))
    parts = []
    pos = 0
    i = 0
    while i < len(matches):
        match = matches[i]
        parts.append(text[pos:match.start()])
        code = _ref_code(match)

        following = matches[i + 1] if i + 1 < len(matches) else None
        if _is_high_surrogate(code) and following is not None and following.start() == match.end():
            low = _ref_code(following)
            if _is_low_surrogate(low):
                parts.append(chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)))
                pos = following.end()
                i += 2
                continue

        if code is None or 0xD800 <= code <= 0xDFFF:
            parts.append(match.group(0))
        else:
            parts.append(chr(code))
        pos = match.end()
        i += 1

    parts.append(text[pos:])
    return ''.join(parts)


def clean_text(text: str) -> str:
    """Decode the XML entities and numeric character references, then trim"""
    for entity, char in _NAMED_ENTITIES:
        text = text.replace(entity, char)
    return _decode_char_refs(text).strip()


def _tag_pattern(tag_name: str) -> re.Pattern:
    tag = re.escape(tag_name)
    return re.compile(
        rf'<{tag}(?:\s[^>]*)?(?<!/)>(?:<!\[CDATA\[)?([\s\S]*?)(?:\]\]>)?</{tag}>',
        re.IGNORECASE,
    )


def extract_tag(xml: str, tag_name: str) -> Optional[str]:
    """
    Cleaned text of the first <tag_name> element, CDATA unwrapped.

    Returns None when the tag is missing and "" when it is present but empty.
    Namespaced names such as 'content:encoded' are matched literally.
    """
    match = _tag_pattern(tag_name).search(xml)
    if match:
        return clean_text(match.group(1))
    return None


def strip_html(html: str) -> str:
    """Turn an HTML description into readable plain text"""
    text = re.sub(r'<script[^>]*>[\s\S]*?</script>', '', html, flags=re.IGNORECASE)
    text = re.sub(r'<style[^>]*>[\s\S]*?</style>', '', text, flags=re.IGNORECASE)
    text = re.sub(r'<br\s*/?>', '\n', text, flags=re.IGNORECASE)
    text = re.sub(r'</p>', '\n\n', text, flags=re.IGNORECASE)
    text = re.sub(r'</li>', '\n', text, flags=re.IGNORECASE)
    text = re.sub(r'<li(?:\s[^>]*)?>', '- ', text, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


class FeedDecoder:
    """Fetches RSS 2.0-style feeds and decodes them into RssFeed"""

    def __init__(self, http_client: Optional[HTTPClient] = None, client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client or HTTPClient(client=client)

    async def parse_url(self, url: str, timeout: Optional[int] = None) -> RssFeed:
        """
        Fetch and decode a feed.

        Args:
            url: Feed URL
            timeout: Overall timeout in ms (default 30000 or JOBSOURCE_FEED_TIMEOUT_MS)

        Raises:
            FeedTimeoutError: the fetch was cancelled after `timeout` ms
            FeedHTTPError: non-2xx response
            FetchError: other network failures
        """
        response = await self.http_client.get(url, timeout_ms=timeout)
        feed = self.parse_xml(response.text)
        logger.info(f"[rss_fetch] Parsed {len(feed.items)} items from {url}")
        return feed

    def parse_xml(self, xml: str) -> RssFeed:
        """Decode feed XML. Never raises; missing fields fall back to defaults."""
        title = description = link = ''
        channel = _CHANNEL_OPEN.search(xml)
        if channel:
            # Search from <channel> onward so an item's tags are not picked up first
            channel_xml = xml[channel.start():]
            title = extract_tag(channel_xml, 'title') or ''
            description = extract_tag(channel_xml, 'description') or ''
            link = extract_tag(channel_xml, 'link') or ''

        items = []
        for match in _ITEM_BLOCK.finditer(xml):
            try:
                item = self._parse_item(match.group(1))
            except Exception as e:
                logger.warning(f"[rss_fetch] Skipping unparseable item: {e}")
                continue
            if item:
                items.append(item)

        return RssFeed(
            title=title,
            description=description,
            link=link,
            items=items,
            last_build_date=extract_tag(xml, 'lastBuildDate'),
        )

    def _parse_item(self, item_xml: str) -> Optional[RssItem]:
        """Decode one <item> body; None when it has neither title nor link"""
        title = extract_tag(item_xml, 'title')
        link = extract_tag(item_xml, 'link')

        if not title and not link:
            return None

        categories = []
        for match in _CATEGORY.finditer(item_xml):
            category = clean_text(match.group(1))
            if category:
                categories.append(category)

        return RssItem(
            title=title or '',
            link=link or '',
            description=extract_tag(item_xml, 'description'),
            content=extract_tag(item_xml, 'content:encoded') or extract_tag(item_xml, 'content'),
            pub_date=extract_tag(item_xml, 'pubDate'),
            guid=extract_tag(item_xml, 'guid'),
            author=extract_tag(item_xml, 'author') or extract_tag(item_xml, 'dc:creator'),
            categories=categories or None,
            extra=self._extract_extra(item_xml),
        )

    def _extract_extra(self, item_xml: str) -> Dict[str, str]:
        """Leaf tags with no dedicated RssItem field, first occurrence wins"""
        extra = {}
        for match in _LEAF_TAG.finditer(item_xml):
            name = match.group(1)
            if name.lower() in KNOWN_ITEM_TAGS or name in extra:
                continue
            raw = match.group(2)
            cdata = _CDATA.match(raw)
            extra[name] = clean_text(cdata.group(1) if cdata else raw)
        return extra

    def strip_html(self, html: str) -> str:
        return strip_html(html)
