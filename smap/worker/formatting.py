"""
Content shaping for platforms that only accept plain text.

The scheduler UI stores messages as light HTML (paragraphs, line breaks,
lists). Facebook renders markup literally, so messages are flattened before
they leave the building.
"""
import html
import re
from typing import Iterable, List

BULLET = "• "

_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_BLOCK_END = re.compile(r"</(p|li)\s*>", re.IGNORECASE)
_LIST_ITEM = re.compile(r"<li\b[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]*>")
_NBSP = re.compile(r"&nbsp;", re.IGNORECASE)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def html_to_plain_text(markup: str) -> str:
    """
    Convert simple HTML to plain text.

    Line breaks and closing paragraph/list-item tags become newlines, list
    items get a bullet prefix, remaining tags are dropped, entities are
    decoded and runs of three or more newlines collapse to two.

    >>> html_to_plain_text("<p>Hello</p><br><li>World</li>")
    'Hello\\n\\n• World'
    """
    if not markup:
        return ""

    text = _BREAK.sub("\n", markup)
    text = _BLOCK_END.sub("\n", text)
    text = _LIST_ITEM.sub(BULLET, text)
    text = _ANY_TAG.sub("", text)

    text = _NBSP.sub(" ", text)
    text = html.unescape(text)

    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def is_remote_url(url: str) -> bool:
    """True for absolute http(s) URLs; data: URIs and relative paths are not transmittable."""
    return bool(url) and url.lower().startswith(("http://", "https://"))


def transmittable_media(urls: Iterable[str]) -> List[str]:
    return [url for url in urls or [] if is_remote_url(url)]
