from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from .config import SORTS, Settings
from .records import Note
from .store import ContentStore


logger = logging.getLogger(__name__)

FOLLOWING = {"timeline": "following"}


@dataclass
class PaginationState:
    skip: int = 0
    limit: int = 32
    sort: str = "latest"
    has_more_items: bool = True
    loaded_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class Page:
    """Outcome of one ``load_more`` call."""

    notes: Tuple[Note, ...]
    returned_count: int
    emitted_count: int


# ---------------------------------------------------------------------------
# Skip policies
#
# A policy picks which count drives the bookkeeping of a page: how far skip
# advances, how much loaded_count grows and what has_more_items is computed
# from.
# ---------------------------------------------------------------------------

SkipPolicy = Callable[[int, int], int]


def advance_by_emitted(returned_count: int, emitted_count: int) -> int:
    """Count only non-reply notes. Reply-heavy pages therefore advance slowly."""
    return emitted_count


def advance_by_returned(returned_count: int, emitted_count: int) -> int:
    """Count every note the store yielded, replies included."""
    return returned_count


SKIP_POLICIES: Dict[str, SkipPolicy] = {
    "emitted": advance_by_emitted,
    "returned": advance_by_returned,
}


def coerce_sort(value: Optional[str], default: str = "latest") -> str:
    if not value:
        return default
    if value not in SORTS:
        logger.warning("Unknown sort %r, falling back to %r", value, default)
        return default
    return value


def has_more_items(state: PaginationState, counted: int) -> bool:
    if state.sort == "random":
        return state.loaded_count < state.total_count
    if state.sort == "latest":
        # A short page means the end was reached.
        return counted == state.limit
    # oldest: keep going as long as pages are non-empty
    return counted > 0


class PaginationController:
    """Owns the feed position and loads the timeline one page at a time.

    ``reset`` and ``load_more`` never overlap on one instance: they are
    serialized by a lock, so a second call waits for the first to finish.
    """

    def __init__(
        self,
        store: ContentStore,
        settings: Settings,
        sort: Optional[str] = None,
        skip_policy: Optional[SkipPolicy] = None,
    ) -> None:
        self._store = store
        self._state = PaginationState(
            limit=settings.page_limit,
            sort=coerce_sort(sort, settings.default_sort),
        )
        self._skip_policy = skip_policy or SKIP_POLICIES[settings.skip_policy]
        self._lock = asyncio.Lock()

    @property
    def state(self) -> PaginationState:
        """A copy of the current state; mutating it has no effect."""
        return replace(self._state)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def reset(self, sort: Optional[str] = None) -> Page:
        async with self._lock:
            total = await self._store.get_total_notes_count()

            if sort is not None:
                self._state.sort = coerce_sort(sort, self._state.sort)
            self._state.skip = 0
            self._state.total_count = total
            self._state.loaded_count = 0
            self._state.has_more_items = True

            return await self._load_page()

    async def load_more(self) -> Page:
        async with self._lock:
            return await self._load_page()

    async def change_sort(self, sort: str) -> Page:
        return await self.reset(sort)

    async def _load_page(self) -> Page:
        state = self._state
        notes: List[Note] = []
        returned = 0

        async for note in self._store.search_notes(
            FOLLOWING, skip=state.skip, limit=state.limit, sort=state.sort
        ):
            returned += 1
            logger.debug("Loading note: %s", note.id)
            # Replies only show up in the thread view.
            if note.in_reply_to:
                continue
            notes.append(note)

        # Nothing above touched the state, so a store failure leaves it intact.
        counted = self._skip_policy(returned, len(notes))
        state.skip += counted
        if state.sort == "random":
            state.loaded_count += counted
        state.has_more_items = has_more_items(state, counted)

        return Page(notes=tuple(notes), returned_count=returned, emitted_count=len(notes))
