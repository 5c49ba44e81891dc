from __future__ import annotations

import re
from functools import partial

from bleach.linkifier import LinkifyFilter
from bleach.sanitizer import Cleaner

ALLOWED_TAGS = frozenset(
    {
        "a",
        "abbr",
        "b",
        "blockquote",
        "br",
        "caption",
        "code",
        "div",
        "em",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "hr",
        "i",
        "img",
        "li",
        "ol",
        "p",
        "pre",
        "span",
        "strong",
        "table",
        "tbody",
        "td",
        "th",
        "thead",
        "tr",
        "u",
        "ul",
    }
)

LINK_PREFIXES = ("http://", "https://", "mailto:")
# Only self-contained raster images render. cid: parts are never served by this API.
INLINE_IMAGE_PREFIXES = (
    "data:image/png;",
    "data:image/jpeg;",
    "data:image/gif;",
    "data:image/webp;",
)
LINK_REL = "noopener noreferrer nofollow"

# Elements whose text must not survive as visible body content.
_DROPPED_ELEMENTS = re.compile(
    r"<(script|style|title|head)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)


def _allow_link_attr(tag: str, name: str, value: str) -> bool:
    if name == "href":
        return value.strip().lower().startswith(LINK_PREFIXES)
    return name == "title"


def _allow_img_attr(tag: str, name: str, value: str) -> bool:
    if name == "src":
        return value.strip().lower().startswith(INLINE_IMAGE_PREFIXES)
    return name in {"alt", "title", "width", "height"}


def harden_link(attrs: dict, new: bool = False) -> dict:
    """Open web links in a new browsing context that cannot reach back to the client."""
    href = attrs.get((None, "href"), "")
    if not href or href.startswith("mailto:"):
        return attrs
    attrs[(None, "target")] = "_blank"
    attrs[(None, "rel")] = LINK_REL
    return attrs


_cleaner = Cleaner(
    tags=ALLOWED_TAGS,
    attributes={
        "a": _allow_link_attr,
        "img": _allow_img_attr,
        "td": ["colspan", "rowspan"],
        "th": ["colspan", "rowspan"],
        "abbr": ["title"],
    },
    # "data" is admitted for inline images; links are held to LINK_PREFIXES above.
    protocols={"http", "https", "mailto", "data"},
    strip=True,
    filters=[partial(LinkifyFilter, callbacks=[harden_link], skip_tags={"pre", "code"})],
)


def sanitize_html(html: str | None) -> str | None:
    """Reduce a message's HTML part to markup safe to inject into the browser client.

    Scripts, styles and event handlers go, remote and ``cid:`` images go, and every
    web link (existing or linkified from bare text) opens with ``rel`` set to
    ``LINK_REL`` in a new tab.
    """
    if html is None:
        return None
    cleaned = _cleaner.clean(_DROPPED_ELEMENTS.sub("", html))
    return cleaned.strip() or None
