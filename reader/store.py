from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Protocol

import httpx

from .config import Settings
from .errors import MalformedRecord, NotFound, TransportError
from .records import Activity, Actor, Note, Record, parse_actor, parse_record


logger = logging.getLogger(__name__)

ACTIVITY_ACCEPT = (
    'application/ld+json; profile="https://www.w3.org/ns/activitystreams", '
    "application/activity+json"
)


@dataclass(frozen=True)
class FollowedActor:
    url: str


class ContentStore(Protocol):
    """Call contract of the local content store."""

    async def get_note(self, url: str) -> Optional[Record]: ...

    async def get_actor(self, url: str) -> Optional[Actor]: ...

    def search_notes(
        self, filter: Mapping[str, Any], *, skip: int, limit: int, sort: str
    ) -> AsyncIterator[Note]: ...

    async def get_followed_actors(self) -> List[FollowedActor]: ...

    async def ingest_actor(self, url: str) -> None: ...

    async def get_total_notes_count(self) -> int: ...

    def get_object_page(self, note: Record) -> str: ...


class MemoryContentStore:
    """In-memory ``ContentStore`` that fetches missing records over HTTP."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._random = rng or random.Random()
        self._notes: Dict[str, Record] = {}
        self._actors: Dict[str, Actor] = {}
        self._followed: List[str] = list(settings.followed_actors)

    async def __aenter__(self) -> "MemoryContentStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Local writes
    # ------------------------------------------------------------------

    def put_record(self, record: Record) -> None:
        self._notes[record.id] = record

    def put_actor(self, actor: Actor) -> None:
        self._actors[actor.id] = actor

    def follow(self, url: str) -> None:
        if url not in self._followed:
            self._followed.append(url)

    def unfollow(self, url: str) -> None:
        if url in self._followed:
            self._followed.remove(url)

    # ------------------------------------------------------------------
    # ContentStore contract
    # ------------------------------------------------------------------

    async def get_note(self, url: str) -> Optional[Record]:
        if url in self._notes:
            return self._notes[url]

        data = await self._fetch_json(url)
        if data is None:
            return None
        record = parse_record(data)
        self.put_record(record)
        return record

    async def get_actor(self, url: str) -> Optional[Actor]:
        if url in self._actors:
            return self._actors[url]

        data = await self._fetch_json(url)
        if data is None:
            return None
        actor = parse_actor(data)
        self._actors[url] = actor
        self._actors.setdefault(actor.id, actor)
        return actor

    async def search_notes(
        self, filter: Mapping[str, Any], *, skip: int, limit: int, sort: str
    ) -> AsyncIterator[Note]:
        notes = [r for r in self._notes.values() if isinstance(r, Note)]
        if filter.get("timeline") == "following":
            followed = set(self._followed)
            for url in self._followed:
                actor = self._actors.get(url)
                if actor is not None:
                    followed.add(actor.id)
            notes = [n for n in notes if n.attributed_to in followed]

        if sort == "random":
            self._random.shuffle(notes)
        else:
            notes.sort(key=lambda n: n.published or "", reverse=(sort == "latest"))

        for note in notes[skip : skip + limit]:
            yield note

    async def get_followed_actors(self) -> List[FollowedActor]:
        return [FollowedActor(url=url) for url in self._followed]

    async def ingest_actor(self, url: str) -> None:
        actor = await self.get_actor(url)
        if actor is None:
            raise NotFound(url, kind="Actor")
        if not actor.outbox:
            logger.info("Actor %s has no outbox, nothing to ingest", url)
            return

        page: Optional[Mapping[str, Any]] = await self._fetch_json(actor.outbox)
        page = await self._first_page(page)

        stored = 0
        pages = 0
        while page is not None:
            pages += 1
            for item in page.get("orderedItems") or page.get("items") or []:
                stored += self._ingest_item(item)

            if pages >= self._settings.outbox_page_limit:
                break
            next_page = page.get("next")
            if isinstance(next_page, str):
                page = await self._fetch_json(next_page)
            elif isinstance(next_page, Mapping):
                page = next_page
            else:
                page = None

        logger.info("Ingested %d notes from %s", stored, url)

    async def get_total_notes_count(self) -> int:
        return sum(1 for r in self._notes.values() if isinstance(r, Note))

    def get_object_page(self, note: Record) -> str:
        if isinstance(note, Note) and note.url:
            return note.url
        return note.id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _first_page(
        self, collection: Optional[Mapping[str, Any]]
    ) -> Optional[Mapping[str, Any]]:
        if collection is None:
            return None
        if collection.get("orderedItems") or collection.get("items"):
            return collection

        first = collection.get("first")
        if isinstance(first, str):
            return await self._fetch_json(first)
        if isinstance(first, Mapping):
            return first
        return collection

    def _ingest_item(self, item: Any) -> int:
        if not isinstance(item, Mapping):
            return 0
        try:
            record = parse_record(item)
        except MalformedRecord as exc:
            logger.warning("Skipping malformed outbox item: %s", exc)
            return 0

        if isinstance(record, Activity):
            if record.type != "Create" or record.object.content is None:
                return 0
            record = record.object

        self.put_record(record)
        return 1

    async def _fetch_json(self, url: str) -> Optional[Dict[str, Any]]:
        if not url.startswith(("http://", "https://")):
            raise TransportError(f"Unsupported URL scheme for {url!r}")

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.http_timeout, follow_redirects=True
            )

        try:
            resp = await self._client.get(url, headers={"Accept": ACTIVITY_ACCEPT})
            if resp.status_code in (404, 410):
                return None
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to fetch {url}: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Invalid JSON returned by {url}") from exc

        if not isinstance(data, dict):
            raise TransportError(f"Expected a JSON object from {url}")
        return data
