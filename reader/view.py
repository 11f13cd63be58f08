"""
View-layer adapter.

Hands normalised notes, disclosure states and pagination snapshots to a
renderer and maps the renderer's intents (more, toggle, sort) back onto the
controller. A post, or the author card of a post, that fails to load becomes an
``ErrorPlaceholder`` for that item only; a failed page becomes one feed-level
error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Set, Tuple, Union
from urllib.parse import parse_qs, urlencode

from .config import Settings
from .errors import NotFound
from .ingestion import IngestionCoordinator
from .normalize import ContentNormalizer, DisclosureMode, ErrorPlaceholder, NormalizedNote
from .records import Note
from .store import ContentStore
from .timeline import PaginationController, PaginationState, coerce_sort


logger = logging.getLogger(__name__)


FeedItem = Union[NormalizedNote, ErrorPlaceholder]


@dataclass(frozen=True)
class ViewOptions:
    sort: str = "latest"
    show_replies: bool = False


def parse_query(query: str, settings: Settings) -> ViewOptions:
    """Read ``sort`` and ``view`` from a query string such as ``?sort=oldest``."""

    params = parse_qs(query.lstrip("?"))
    sort = (params.get("sort") or [None])[0]
    view = (params.get("view") or [None])[0]
    return ViewOptions(
        sort=coerce_sort(sort, settings.default_sort),
        show_replies=view == "replies",
    )


class PostLoader:
    """Single-post entry point: fetch by URL and normalise, never raising."""

    def __init__(self, store: ContentStore, normalizer: ContentNormalizer) -> None:
        self._store = store
        self._normalizer = normalizer

    async def load(self, url: str, show_replies: bool = False) -> FeedItem:
        if not url:
            return ErrorPlaceholder(url="", message="No post URL provided")

        try:
            record = await self._store.get_note(url)
            if record is None:
                raise NotFound(url)
            note = await self._normalizer.normalize(record, show_replies=show_replies)
        except Exception as exc:
            logger.error("Failed to render post %s: %s", url, exc)
            return ErrorPlaceholder(url=url, message=str(exc))
        return await self._with_author(note)

    async def render(self, note: Note) -> FeedItem:
        """Normalise a note already fetched by the timeline."""

        try:
            normalized = await self._normalizer.normalize(note)
        except Exception as exc:
            logger.error("Failed to render post %s: %s", note.id, exc)
            return ErrorPlaceholder(url=note.id, message=str(exc))
        return await self._with_author(normalized)

    async def _with_author(self, note: NormalizedNote) -> NormalizedNote:
        author = await self._normalizer.load_author(note.attributed_to)
        return replace(note, author=author)


@dataclass(frozen=True)
class FeedSnapshot:
    items: Tuple[FeedItem, ...]
    state: PaginationState
    error: Optional[str] = None
    expanded: frozenset = field(default_factory=frozenset)


class TimelineFeed:
    """The timeline as seen by a renderer."""

    def __init__(
        self,
        controller: PaginationController,
        coordinator: IngestionCoordinator,
        loader: PostLoader,
    ) -> None:
        self._controller = controller
        self._coordinator = coordinator
        self._loader = loader
        self._items: List[FeedItem] = []
        self._expanded: Set[str] = set()
        self.error: Optional[str] = None

    @property
    def items(self) -> Tuple[FeedItem, ...]:
        return tuple(self._items)

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(
            items=tuple(self._items),
            state=self._controller.state,
            error=self.error,
            expanded=frozenset(self._expanded),
        )

    async def start(self) -> bool:
        await self._coordinator.ensure_ready()
        return await self._run(reset=True)

    async def request_more(self) -> bool:
        return await self._run(reset=False)

    async def change_sort(self, value: str) -> str:
        """Reset the feed for ``value`` and return the query string to persist."""

        sort = coerce_sort(value, self._controller.state.sort)
        await self._run(reset=True, sort=sort)
        return urlencode({"sort": sort})

    def toggle_disclosure(self, note_id: str) -> bool:
        """Flip a collapsed post open or closed; returns the new open state."""

        if note_id in self._expanded:
            self._expanded.discard(note_id)
            return False
        self._expanded.add(note_id)
        return True

    def is_expanded(self, note_id: str) -> bool:
        return note_id in self._expanded

    def toggle_label(self, note: NormalizedNote) -> str:
        if note.disclosure.mode is not DisclosureMode.SUMMARY:
            return ""
        return "Show less" if self.is_expanded(note.id) else "Show more"

    def teardown(self) -> None:
        """Cancel outstanding link verifications of every rendered note."""

        for item in self._items:
            if isinstance(item, NormalizedNote):
                item.resolutions.cancel()
        self._items.clear()
        self._expanded.clear()

    async def _run(self, reset: bool, sort: Optional[str] = None) -> bool:
        try:
            if reset:
                page = await self._controller.reset(sort)
            else:
                page = await self._controller.load_more()
        except Exception as exc:
            logger.error("Failed to load timeline page: %s", exc)
            self.error = str(exc)
            return False

        self.error = None
        if reset:
            self.teardown()
        for note in page.notes:
            self._items.append(await self._loader.render(note))
        return True

