from __future__ import annotations

import re
from html import escape
from html.parser import HTMLParser
from typing import List, Optional, Protocol, Tuple


class Sanitizer(Protocol):
    def sanitize(self, html: str) -> str: ...


ALLOWED_TAGS = {
    "a", "abbr", "b", "blockquote", "br", "code", "del", "div", "em",
    "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i",
    "img", "li", "ol", "p", "pre", "s", "source", "span", "strong", "sub",
    "sup", "u", "ul", "video",
}

VOID_TAGS = {"br", "hr", "img", "source"}

# Dropped together with everything inside them.
DROP_CONTENT_TAGS = {
    "script", "style", "iframe", "noscript", "object", "embed", "template",
    "frame", "frameset", "svg", "math",
}

ALLOWED_ATTRS = {
    "alt", "class", "controls", "dir", "height", "href", "lang", "poster",
    "rel", "src", "title", "type", "width",
}

URL_ATTRS = {"href", "src", "poster"}

SAFE_SCHEMES = {"http", "https", "ipns", "hyper", "mailto"}

# Browsers ignore these inside a scheme, so "java\tscript:" still runs.
_IGNORED_URL_CHARS = re.compile(r"[\x00-\x20\x7f]")
_SCHEME = re.compile(r"^([a-z][a-z0-9+.\-]*):")


class HtmlSanitizer:
    """Allow-list sanitizer built on ``html.parser``.

    Unknown tags are unwrapped (their text is kept), executable tags are
    dropped with their content, event handler attributes are removed, and
    URL attributes survive only with an allowed scheme or no scheme at all.
    """

    def sanitize(self, html: str) -> str:
        if not html:
            return ""
        parser = _SanitizingParser()
        parser.feed(html)
        parser.close()
        return "".join(parser.out)


class _SanitizingParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.out: List[str] = []
        self._dropping = 0

    def handle_starttag(self, tag, attrs):
        self._start(tag, attrs, self_closing=False)

    def handle_startendtag(self, tag, attrs):
        self._start(tag, attrs, self_closing=True)

    def handle_endtag(self, tag):
        if tag in DROP_CONTENT_TAGS:
            self._dropping = max(0, self._dropping - 1)
            return
        if self._dropping or tag not in ALLOWED_TAGS or tag in VOID_TAGS:
            return
        self.out.append(f"</{tag}>")

    def handle_data(self, data):
        if not self._dropping:
            self.out.append(data)

    def handle_entityref(self, name):
        if not self._dropping:
            self.out.append(f"&{name};")

    def handle_charref(self, name):
        if not self._dropping:
            self.out.append(f"&#{name};")

    def _start(self, tag: str, attrs, self_closing: bool) -> None:
        if tag in DROP_CONTENT_TAGS:
            if not self_closing:
                self._dropping += 1
            return
        if self._dropping or tag not in ALLOWED_TAGS:
            return

        kept = "".join(
            f' {name}="{escape(value, quote=True)}"' if value is not None else f" {name}"
            for name, value in _clean_attrs(attrs)
        )
        closing = " />" if self_closing else ">"
        self.out.append(f"<{tag}{kept}{closing}")


def _clean_attrs(attrs) -> List[Tuple[str, Optional[str]]]:
    cleaned: List[Tuple[str, Optional[str]]] = []
    for name, value in attrs:
        if not name:
            continue
        lname = name.lower()
        if lname.startswith("on") or lname not in ALLOWED_ATTRS:
            continue
        if lname in URL_ATTRS and value is not None:
            value = value.strip()
            if not _safe_url(value):
                continue
        cleaned.append((lname, value))
    return cleaned


def _safe_url(value: str) -> bool:
    compact = _IGNORED_URL_CHARS.sub("", value).lower()
    match = _SCHEME.match(compact)
    if match is None:
        return True
    scheme = match.group(1)
    if scheme == "data":
        return compact.startswith("data:image/")
    return scheme in SAFE_SCHEMES
