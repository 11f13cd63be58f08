"""
Shared fakes for the reader tests.

``FakeStore`` implements the content store contract in memory and lets a
test block, fail or count each call.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from reader.records import Actor, Note
from reader.store import FollowedActor


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_note(i: int, reply: bool = False, **overrides) -> Note:
    fields = dict(
        id=f"https://example.org/notes/{i}",
        content=f"<p>note {i}</p>",
        attributed_to="https://example.org/@alice",
        published=(BASE_TIME + timedelta(minutes=i)).isoformat(),
        in_reply_to="https://example.org/notes/0" if reply else None,
    )
    fields.update(overrides)
    return Note(**fields)


class FakeStore:
    def __init__(
        self,
        notes: Optional[List[Note]] = None,
        total: Optional[int] = None,
        records: Optional[Dict] = None,
        actors: Optional[Dict[str, Actor]] = None,
        followed: Optional[List[str]] = None,
    ) -> None:
        self.notes = list(notes or [])
        self.total = total if total is not None else len(self.notes)
        self.records = dict(records or {})
        self.actors = dict(actors or {})
        self.followed = list(followed or [])

        self.search_calls: List[dict] = []
        self.search_gate: Optional[asyncio.Event] = None
        self.search_error: Optional[Exception] = None
        self.fail_after: Optional[int] = None

        self.lookup_gate: Optional[asyncio.Event] = None
        # When set, only these URLs wait on lookup_gate.
        self.gate_urls: Optional[Set[str]] = None
        self.lookup_errors: Dict[str, Exception] = {}
        self.lookups: List[str] = []
        self.in_flight = 0

        self.ingested: List[str] = []
        self.ingest_errors: Dict[str, Exception] = {}
        self.followed_error: Optional[Exception] = None

    async def _lookup(self, url, table):
        self.lookups.append(url)
        self.in_flight += 1
        try:
            if self.lookup_gate is not None and (self.gate_urls is None or url in self.gate_urls):
                await self.lookup_gate.wait()
            if url in self.lookup_errors:
                raise self.lookup_errors[url]
            return table.get(url)
        finally:
            self.in_flight -= 1

    async def get_note(self, url):
        return await self._lookup(url, self.records)

    async def get_actor(self, url):
        return await self._lookup(url, self.actors)

    async def search_notes(self, filter, *, skip, limit, sort):
        self.search_calls.append({"filter": filter, "skip": skip, "limit": limit, "sort": sort})
        if self.search_gate is not None:
            await self.search_gate.wait()
        if self.search_error is not None and self.fail_after is None:
            raise self.search_error
        for i, note in enumerate(self.notes[skip : skip + limit]):
            if self.fail_after is not None and i == self.fail_after:
                raise self.search_error
            yield note

    async def get_followed_actors(self):
        if self.followed_error is not None:
            raise self.followed_error
        return [FollowedActor(url=url) for url in self.followed]

    async def ingest_actor(self, url):
        await asyncio.sleep(0)
        self.ingested.append(url)
        if url in self.ingest_errors:
            raise self.ingest_errors[url]

    async def get_total_notes_count(self):
        return self.total

    def get_object_page(self, note):
        return note.id

