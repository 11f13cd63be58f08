"""
Post content normalisation.

Turns a stored Note (or, for nested content, an Activity wrapping one) into
a render-agnostic structure:

- sanitized content split into ordered text, media and link segments,
- a disclosure state for sensitive or summarised posts,
- an attachment gallery for plain posts,
- permalink and date labels.

Text outside media and links is kept byte for byte, so a post without any
of them normalises to a single text segment equal to the sanitized input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from html.parser import HTMLParser
from typing import Any, Callable, List, Optional, Tuple, Union

from .config import Settings
from .errors import DiscriminationError, MalformedRecord, NotFound
from .links import LinkDecision, LinkKind, LinkResolver, ResolutionBatch, post_href, profile_href
from .records import Activity, Actor, Attachment, Record
from .sanitize import HtmlSanitizer, Sanitizer
from .store import ContentStore


logger = logging.getLogger(__name__)

SENSITIVE_LABEL = "Sensitive Content (click to view)"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class DisclosureMode(str, Enum):
    NONE = "none"
    SENSITIVE = "sensitive"
    SUMMARY = "summary"


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class MediaSegment:
    kind: MediaKind
    src: str
    alt: Optional[str] = None


@dataclass(frozen=True)
class LinkSegment:
    kind: LinkKind
    original_href: str
    rewritten_href: str
    children: Tuple["Segment", ...] = ()


Segment = Union[TextSegment, MediaSegment, LinkSegment]


@dataclass(frozen=True)
class DisclosureState:
    mode: DisclosureMode = DisclosureMode.NONE
    label: str = ""
    collapsed_by_default: bool = False


@dataclass(frozen=True)
class NormalizedNote:
    id: str
    attributed_to: Optional[str]
    published: Optional[str]
    content: Tuple[Segment, ...]
    disclosure: DisclosureState
    attachments: Tuple[MediaSegment, ...] = ()
    permalink: str = ""
    full_date_href: str = ""
    time_ago: str = ""
    full_date: str = ""
    show_replies: bool = False
    author: Union["ActorCard", "ErrorPlaceholder", None] = None
    resolutions: ResolutionBatch = field(
        default_factory=ResolutionBatch, compare=False, repr=False
    )


@dataclass(frozen=True)
class ActorCard:
    url: str
    icon: str
    profile_href: str
    name: Optional[str] = None
    username: Optional[str] = None



@dataclass(frozen=True)
class ErrorPlaceholder:
    url: str
    message: str


# ---------------------------------------------------------------------------
# Normaliser
# ---------------------------------------------------------------------------

class ContentNormalizer:
    def __init__(
        self,
        store: ContentStore,
        resolver: LinkResolver,
        settings: Settings,
        sanitizer: Optional[Sanitizer] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._settings = settings
        self._sanitizer = sanitizer or HtmlSanitizer()

    async def normalize(self, record: Record, *, show_replies: bool = False) -> NormalizedNote:
        """Single-post entry point: only Notes are accepted here."""

        if isinstance(record, Activity):
            raise DiscriminationError()
        return await self.normalize_nested(record, show_replies=show_replies)

    async def normalize_nested(
        self, record: Record, *, show_replies: bool = False
    ) -> NormalizedNote:
        """Normalise content already known to carry a Note, unwrapping Activities."""

        content = _field(record, "content")
        if content is None:
            raise MalformedRecord("content", record.id)

        sanitized = self._sanitizer.sanitize(content)
        batch = ResolutionBatch()
        segments = split_segments(
            sanitized, lambda href: self._resolver.resolve(href, batch)
        )

        disclosure = disclosure_for(
            sensitive=bool(_field(record, "sensitive")),
            summary=_field(record, "summary"),
        )

        attachments: Tuple[MediaSegment, ...] = ()
        if disclosure.mode is DisclosureMode.NONE:
            attachments = gallery(_field(record, "attachment") or ())

        published = _field(record, "published")
        return NormalizedNote(
            id=record.id,
            attributed_to=_field(record, "attributed_to"),
            published=published,
            content=tuple(segments),
            disclosure=disclosure,
            attachments=attachments,
            permalink=post_href(self._store.get_object_page(record), self._settings),
            full_date_href=post_href(record.id, self._settings),
            time_ago=time_since(published),
            full_date=format_date(published),
            show_replies=show_replies,
            resolutions=batch,
        )

    async def load_author(
        self, url: Optional[str]
    ) -> Union[ActorCard, ErrorPlaceholder, None]:
        """Fetch the actor card for ``url``; a failure is confined to the card."""

        if not url:
            return None
        try:
            actor = await self._store.get_actor(url)
            if actor is None:
                raise NotFound(url, kind="Actor")
            return normalize_actor(actor, self._settings)
        except Exception as exc:
            logger.warning("Failed to load actor %s: %s", url, exc)
            return ErrorPlaceholder(url=url, message=str(exc))


def _field(record: Record, name: str) -> Any:
    """Read a field from the record root, falling back to the wrapped object."""

    value = getattr(record, name)
    if isinstance(record, Activity) and not value:
        return getattr(record.object, name)
    return value


def disclosure_for(sensitive: bool, summary: Optional[str]) -> DisclosureState:
    if sensitive:
        return DisclosureState(
            mode=DisclosureMode.SENSITIVE,
            label=SENSITIVE_LABEL,
            collapsed_by_default=True,
        )
    if summary:
        return DisclosureState(
            mode=DisclosureMode.SUMMARY,
            label=summary,
            collapsed_by_default=True,
        )
    return DisclosureState()


def gallery(attachments: Tuple[Attachment, ...]) -> Tuple[MediaSegment, ...]:
    items: List[MediaSegment] = []
    for attachment in attachments:
        if attachment.media_type.startswith("image/"):
            items.append(
                MediaSegment(MediaKind.IMAGE, attachment.url, attachment.name or "Attached image")
            )
        elif attachment.media_type.startswith("video/"):
            items.append(
                MediaSegment(MediaKind.VIDEO, attachment.url, attachment.name or "Attached video")
            )
    return tuple(items)


# ---------------------------------------------------------------------------
# Segment splitting
# ---------------------------------------------------------------------------

def split_segments(
    html: str, resolve_link: Callable[[str], LinkDecision]
) -> List[Segment]:
    """Split sanitized HTML into ordered segments.

    ``resolve_link`` is called once per anchor carrying an href, in document
    order.
    """

    parser = _SegmentParser(html, resolve_link)
    parser.feed(html)
    parser.close()
    return parser.segments


class _OpenAnchor:
    def __init__(self, href: str) -> None:
        self.href = href
        self.children: List[Segment] = []


class _SegmentParser(HTMLParser):
    def __init__(self, source: str, resolve_link: Callable[[str], LinkDecision]) -> None:
        super().__init__(convert_charrefs=False)
        self.segments: List[Segment] = []
        self._source = source
        self._resolve_link = resolve_link
        self._line_starts = [0]
        for i, char in enumerate(source):
            if char == "\n":
                self._line_starts.append(i + 1)
        self._cursor = 0
        self._anchor: Optional[_OpenAnchor] = None
        self._nested_anchors = 0
        self._video_src: Optional[str] = None
        self._video_depth = 0
        self._video_body_start = 0

    # -- positions ---------------------------------------------------------

    def _offset(self) -> int:
        line, col = self.getpos()
        return self._line_starts[line - 1] + col

    def _target(self) -> List[Segment]:
        return self._anchor.children if self._anchor is not None else self.segments

    def _flush(self, upto: int) -> None:
        if upto > self._cursor:
            self._target().append(TextSegment(self._source[self._cursor:upto]))
        self._cursor = max(self._cursor, upto)

    # -- handlers ----------------------------------------------------------

    def handle_starttag(self, tag, attrs):
        self._open(tag, dict(attrs), self_closing=False)

    def handle_startendtag(self, tag, attrs):
        self._open(tag, dict(attrs), self_closing=True)

    def handle_endtag(self, tag):
        start = self._offset()
        end = self._source.find(">", start) + 1 or len(self._source)

        if self._video_depth:
            if tag == "video":
                self._video_depth -= 1
                if not self._video_depth:
                    self._emit_video(end)
            return

        if tag == "a" and self._anchor is not None:
            if self._nested_anchors:
                # Closes an anchor nested in the open link; stays in its text.
                self._nested_anchors -= 1
                return
            self._flush(start)
            self._close_anchor()
            self._cursor = end

    def close(self):
        super().close()
        if self._video_depth:
            # Unterminated video: keep whatever followed its start tag as text.
            self._video_depth = 0
            self._emit_video(self._video_body_start)
        self._flush(len(self._source))
        if self._anchor is not None:
            self._close_anchor()

    # -- element handling --------------------------------------------------

    def _open(self, tag: str, attrs: dict, self_closing: bool) -> None:
        if self._video_depth:
            if tag == "video" and not self_closing:
                self._video_depth += 1
            elif tag == "source" and not self._video_src:
                self._video_src = attrs.get("src")
            return

        start = self._offset()
        end = start + len(self.get_starttag_text() or "")

        if tag == "img":
            self._flush(start)
            self._target().append(MediaSegment(MediaKind.IMAGE, attrs.get("src") or "", attrs.get("alt")))
            self._cursor = end
        elif tag == "video":
            self._flush(start)
            self._video_src = attrs.get("src")
            self._cursor = end
            if self_closing:
                self._emit_video(end)
            else:
                self._video_depth = 1
                self._video_body_start = end
        elif tag == "a" and not self_closing and self._anchor is not None:
            self._nested_anchors += 1
        elif tag == "a" and not self_closing and attrs.get("href"):
            self._flush(start)
            self._anchor = _OpenAnchor(attrs["href"])
            self._cursor = end

    def _emit_video(self, resume_at: int) -> None:
        self._target().append(MediaSegment(MediaKind.VIDEO, self._video_src or ""))
        self._video_src = None
        self._cursor = resume_at

    def _close_anchor(self) -> None:
        anchor, self._anchor = self._anchor, None
        self._nested_anchors = 0
        decision = self._resolve_link(anchor.href)
        self.segments.append(
            LinkSegment(
                kind=decision.kind,
                original_href=decision.original_href,
                rewritten_href=decision.rewritten_href,
                children=tuple(anchor.children),
            )
        )


def plain_text(segments) -> str:
    """Concatenate the text of ``segments``, descending into links."""

    parts: List[str] = []
    for segment in segments:
        if isinstance(segment, TextSegment):
            parts.append(segment.text)
        elif isinstance(segment, LinkSegment):
            parts.append(plain_text(segment.children))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Actors and dates
# ---------------------------------------------------------------------------

def normalize_actor(actor: Actor, settings: Settings) -> ActorCard:
    icon_url = settings.fallback_icon
    icon = actor.icon
    if isinstance(icon, list) and icon:
        first = icon[0]
        icon_url = (first.get("url") if isinstance(first, dict) else None) or actor.id
    elif isinstance(icon, dict) and icon.get("url"):
        icon_url = icon["url"]

    return ActorCard(
        url=actor.id,
        icon=icon_url,
        profile_href=profile_href(actor.id, settings),
        name=actor.name,
        username=f"@{actor.preferred_username}" if actor.preferred_username else None,
    )


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable published date: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(value: Optional[str]) -> str:
    parsed = _parse_date(value)
    if parsed is None:
        return ""
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def time_since(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Compact elapsed time (``45s``, ``3h``, ``2w``...), full date past a year."""

    parsed = _parse_date(value)
    if parsed is None:
        return ""
    now = now or datetime.now(timezone.utc)
    seconds = int((now - parsed).total_seconds())

    if seconds / 31536000 > 1:
        return format_date(value)
    for unit_seconds, suffix in ((2592000, "mo"), (604800, "w"), (86400, "d"), (3600, "h"), (60, "m")):
        interval = seconds / unit_seconds
        if interval > 1:
            return f"{int(interval)}{suffix}"
    return f"{seconds}s"
