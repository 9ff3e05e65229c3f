"""
Allow-list HTML sanitiser for rendered note output.

Only structural and text-formatting tags survive; every attribute outside the
allow-list is dropped, as are ``javascript:``-style URLs. Content of
script-like elements is removed entirely, text is re-escaped.
"""
from __future__ import annotations

import html
import re
from html.parser import HTMLParser
from typing import List, Optional, Tuple

ALLOWED_TAGS = frozenset({
    "h1", "h2", "h3", "h4", "h5", "h6", "p", "br", "hr", "strong", "em", "u", "i", "b",
    "ul", "ol", "li", "a", "img", "div", "span", "code", "pre", "blockquote", "table",
    "thead", "tbody", "tr", "th", "td", "sup", "sub", "small", "font", "center", "strike",
})

ALLOWED_ATTRS = frozenset({
    "href", "src", "alt", "title", "style", "class", "id", "target", "rel", "border",
    "color", "size", "align", "colspan", "rowspan",
})

VOID_TAGS = frozenset({"br", "hr", "img"})

# dropped together with everything inside them
DROP_CONTENT_TAGS = frozenset({"script", "style", "iframe", "object", "embed", "template", "noscript", "textarea"})

_URL_ATTRS = frozenset({"href", "src"})
_SAFE_URL_RE = re.compile(r"^(?:https?:|mailto:|#|/|\.|[^:]*$)", re.IGNORECASE)
_STYLE_BLOCK_RE = re.compile(r"expression\s*\(|url\s*\(|javascript:", re.IGNORECASE)


class _Sanitizer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.out: List[str] = []
        self._drop_depth = 0
        self._open: List[str] = []

    def _attrs(self, attrs: List[Tuple[str, Optional[str]]]) -> str:
        parts: List[str] = []
        for name, value in attrs:
            name = (name or "").lower()
            if name not in ALLOWED_ATTRS:
                continue
            value = value or ""
            if name in _URL_ATTRS and not _SAFE_URL_RE.match(value.strip()):
                continue
            if name == "style" and _STYLE_BLOCK_RE.search(value):
                continue
            parts.append(f' {name}="{html.escape(value, quote=True)}"')
        return "".join(parts)

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._drop_depth += 1
            return
        if self._drop_depth or tag not in ALLOWED_TAGS:
            return
        if tag in VOID_TAGS:
            self.out.append(f"<{tag}{self._attrs(attrs)}>")
            return
        self._open.append(tag)
        self.out.append(f"<{tag}{self._attrs(attrs)}>")

    def handle_startendtag(self, tag: str, attrs) -> None:
        if self._drop_depth or tag not in ALLOWED_TAGS:
            return
        if tag in VOID_TAGS:
            self.out.append(f"<{tag}{self._attrs(attrs)}>")
        else:
            self.out.append(f"<{tag}{self._attrs(attrs)}></{tag}>")

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._drop_depth = max(0, self._drop_depth - 1)
            return
        if self._drop_depth or tag not in ALLOWED_TAGS or tag in VOID_TAGS:
            return
        if tag not in self._open:
            return
        # close anything left open inside this element
        while self._open:
            top = self._open.pop()
            self.out.append(f"</{top}>")
            if top == tag:
                break

    def handle_data(self, data: str) -> None:
        if self._drop_depth:
            return
        self.out.append(html.escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self._open:
            self.out.append(f"</{self._open.pop()}>")
        return "".join(self.out)


def sanitize_html(raw: str) -> str:
    if not raw:
        return ""
    parser = _Sanitizer()
    parser.feed(raw)
    return parser.result()


def newlines_to_breaks(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\n", "<br>")


def strip_html(raw: str) -> str:
    """Plain text content of an HTML fragment (entities decoded)."""
    if not raw:
        return ""

    chunks: List[str] = []

    class _Text(HTMLParser):
        def __init__(self) -> None:
            super().__init__(convert_charrefs=True)
            self._skip = 0

        def handle_starttag(self, tag, attrs):
            if tag in DROP_CONTENT_TAGS:
                self._skip += 1
            elif tag == "br":
                chunks.append("\n")

        def handle_endtag(self, tag):
            if tag in DROP_CONTENT_TAGS:
                self._skip = max(0, self._skip - 1)

        def handle_data(self, data):
            if not self._skip:
                chunks.append(data)

    p = _Text()
    p.feed(raw)
    p.close()
    return "".join(chunks)
