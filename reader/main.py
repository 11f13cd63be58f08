from __future__ import annotations

import asyncio
import logging
import sys
from typing import Iterable, List

from .config import Settings
from .ingestion import IngestionCoordinator
from .links import LinkResolver
from .normalize import (
    ActorCard,
    ContentNormalizer,
    DisclosureMode,
    LinkSegment,
    MediaSegment,
    NormalizedNote,
    TextSegment,
)
from .store import MemoryContentStore
from .timeline import PaginationController
from .view import ErrorPlaceholder, FeedItem, PostLoader, TimelineFeed, parse_query


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _segments_to_text(segments: Iterable) -> str:
    parts: List[str] = []
    for segment in segments:
        if isinstance(segment, TextSegment):
            parts.append(segment.text)
        elif isinstance(segment, MediaSegment):
            parts.append(f"[{segment.kind.value}: {segment.src}]")
        elif isinstance(segment, LinkSegment):
            parts.append(f"{_segments_to_text(segment.children)} <{segment.rewritten_href}>")
    return "".join(parts)


def _author_line(item: NormalizedNote) -> str:
    author = item.author
    if isinstance(author, ActorCard):
        return " ".join(part for part in (author.name, author.username) if part) or author.url
    if isinstance(author, ErrorPlaceholder):
        return f"{author.url} ({author.message})"
    return item.attributed_to or "unknown"


def _print_item(item: FeedItem) -> None:
    if isinstance(item, ErrorPlaceholder):
        print(f"! {item.url or '<no url>'}: {item.message}\n")
        return

    print(f"{_author_line(item)} · {item.time_ago}  {item.permalink}")
    if item.disclosure.mode is DisclosureMode.NONE:
        print(_segments_to_text(item.content))
    else:
        print(f"[{item.disclosure.label}]")

    for media in item.attachments:
        print(f"  + {media.kind.value}: {media.src}")
    print(f"{item.full_date} · reader web\n")


async def _settle(items: Iterable[FeedItem]) -> None:
    """Let link verifications finish before the HTTP client goes away."""

    for item in items:
        if isinstance(item, NormalizedNote):
            for verification in await item.resolutions.wait():
                print(
                    f"  link {verification.decision.original_href}: {verification.status.value}",
                    file=sys.stderr,
                )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def show_timeline(query: str, settings: Settings) -> None:
    options = parse_query(query, settings)

    async with MemoryContentStore(settings) as store:
        resolver = LinkResolver(store, settings)
        normalizer = ContentNormalizer(store, resolver, settings)
        feed = TimelineFeed(
            PaginationController(store, settings, sort=options.sort),
            IngestionCoordinator(store),
            PostLoader(store, normalizer),
        )

        print(f"[ingesting {len(settings.followed_actors)} actor(s)]", file=sys.stderr)
        await feed.start()

        snapshot = feed.snapshot()
        if snapshot.error:
            print(f"Error loading timeline: {snapshot.error}")
            raise SystemExit(1)

        for item in snapshot.items:
            _print_item(item)
        if snapshot.state.has_more_items:
            print(f"More notes available (skip={snapshot.state.skip}).")

        await _settle(snapshot.items)


async def show_post(url: str, query: str, settings: Settings) -> None:
    options = parse_query(query, settings)

    async with MemoryContentStore(settings) as store:
        normalizer = ContentNormalizer(store, LinkResolver(store, settings), settings)
        item = await PostLoader(store, normalizer).load(url, show_replies=options.show_replies)
        _print_item(item)
        if isinstance(item, NormalizedNote) and item.show_replies:
            print("(reply thread requested)")
        await _settle([item])


def main(argv: List[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    settings = Settings.from_env()

    if argv and argv[0] == "post":
        if len(argv) < 2:
            print("Usage: python -m reader.main post <note_url> [view=replies]")
            raise SystemExit(1)
        asyncio.run(show_post(argv[1], argv[2] if len(argv) > 2 else "", settings))
        return

    asyncio.run(show_timeline(argv[0] if argv else "", settings))


if __name__ == "__main__":
    main()
