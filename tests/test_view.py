"""
Tests for the view-layer adapter: single-post loading with isolated error
placeholders, the timeline feed and the user intents it exposes.
"""

import asyncio

import pytest

from reader.config import Settings
from reader.errors import TransportError
from reader.ingestion import IngestionCoordinator
from reader.links import LinkResolver, VerificationStatus
from reader.normalize import ActorCard, ContentNormalizer, DisclosureMode, NormalizedNote, plain_text
from reader.records import Activity, Actor, Note
from reader.timeline import PaginationController
from reader.view import ErrorPlaceholder, PostLoader, TimelineFeed, parse_query

from tests.conftest import FakeStore, make_note


def _loader(store, settings=None):
    settings = settings or Settings()
    return PostLoader(store, ContentNormalizer(store, LinkResolver(store, settings), settings))


def _feed(store, settings=None, sort=None):
    settings = settings or Settings()
    return TimelineFeed(
        PaginationController(store, settings, sort=sort),
        IngestionCoordinator(store),
        _loader(store, settings),
    )


@pytest.mark.asyncio
class TestPostLoader:
    async def test_transport_error_becomes_placeholder(self):
        url = "https://example.org/notes/1"
        store = FakeStore()
        store.lookup_errors[url] = TransportError("network unreachable")

        item = await _loader(store).load(url)

        assert item == ErrorPlaceholder(url=url, message="network unreachable")

    async def test_missing_note(self):
        item = await _loader(FakeStore()).load("https://example.org/notes/404")
        assert item == ErrorPlaceholder(
            url="https://example.org/notes/404",
            message="Note not found: https://example.org/notes/404",
        )

    async def test_no_url(self):
        item = await _loader(FakeStore()).load("")
        assert item.message == "No post URL provided"

    async def test_activity_is_rejected(self):
        url = "https://example.org/acts/1"
        store = FakeStore(records={url: Activity(id=url, object=make_note(1))})

        item = await _loader(store).load(url)

        assert isinstance(item, ErrorPlaceholder)
        assert item.message == "Expected a Note but received an Activity"

    async def test_replies_view(self):
        note = make_note(1)
        store = FakeStore(records={note.id: note})

        item = await _loader(store).load(note.id, show_replies=True)

        assert isinstance(item, NormalizedNote)
        assert item.show_replies is True

    async def test_author_card_attached(self):
        note = make_note(1)
        alice = Actor(id=note.attributed_to, name="Alice", preferred_username="alice")
        store = FakeStore(records={note.id: note}, actors={alice.id: alice})

        item = await _loader(store).load(note.id)

        assert isinstance(item.author, ActorCard)
        assert item.author.name == "Alice"
        assert item.author.username == "@alice"

    async def test_missing_author_becomes_card_placeholder(self):
        note = make_note(1)
        store = FakeStore(records={note.id: note})

        item = await _loader(store).load(note.id)

        assert isinstance(item, NormalizedNote)
        assert item.author == ErrorPlaceholder(
            url=note.attributed_to, message=f"Actor not found: {note.attributed_to}"
        )

    async def test_note_without_author(self):
        note = make_note(1, attributed_to=None)
        store = FakeStore(records={note.id: note})

        item = await _loader(store).load(note.id)

        assert item.author is None
        assert store.lookups == [note.id]


@pytest.mark.asyncio
class TestTimelineFeed:
    async def test_start_ingests_then_loads_first_page(self):
        store = FakeStore(notes=[make_note(i) for i in range(3)], followed=["https://example.org/@alice"])
        feed = _feed(store)

        assert await feed.start() is True

        assert store.ingested == ["https://example.org/@alice"]
        snapshot = feed.snapshot()
        assert [item.id for item in snapshot.items] == [make_note(i).id for i in range(3)]
        assert snapshot.state.skip == 3
        assert snapshot.state.has_more_items is False
        assert snapshot.error is None

    async def test_bad_note_does_not_abort_siblings(self):
        notes = [make_note(1), make_note(2, content=None), make_note(3)]
        feed = _feed(FakeStore(notes=notes))

        await feed.start()

        kinds = [type(item) for item in feed.items]
        assert kinds == [NormalizedNote, ErrorPlaceholder, NormalizedNote]
        assert "content" in feed.items[1].message

    async def test_failed_author_does_not_abort_note_or_siblings(self):
        alice = Actor(id="https://example.org/@alice", name="Alice")
        bob = "https://example.org/@bob"
        notes = [make_note(1), make_note(2, attributed_to=bob), make_note(3)]
        store = FakeStore(notes=notes, actors={alice.id: alice})
        store.lookup_errors[bob] = TransportError("actor host unreachable")
        feed = _feed(store)

        await feed.start()

        first, second, third = feed.items
        assert isinstance(second, NormalizedNote)
        assert plain_text(second.content) == "<p>note 2</p>"
        assert second.author == ErrorPlaceholder(url=bob, message="actor host unreachable")
        assert first.author.name == "Alice"
        assert third.author.name == "Alice"

    async def test_page_failure_is_one_feed_error(self):
        store = FakeStore(notes=[make_note(i) for i in range(4)])
        feed = _feed(store, Settings(page_limit=2))
        await feed.start()
        before = feed.snapshot()

        store.search_error = TransportError("store unreachable")
        assert await feed.request_more() is False

        after = feed.snapshot()
        assert after.error == "store unreachable"
        assert after.items == before.items
        assert after.state == before.state

    async def test_request_more_appends(self):
        feed = _feed(FakeStore(notes=[make_note(i) for i in range(4)]), Settings(page_limit=2))
        await feed.start()
        await feed.request_more()

        assert len(feed.items) == 4
        assert feed.snapshot().state.skip == 4

    async def test_change_sort_resets_and_returns_query(self):
        store = FakeStore(notes=[make_note(i) for i in range(4)])
        feed = _feed(store, Settings(page_limit=2))
        await feed.start()
        await feed.request_more()

        query = await feed.change_sort("oldest")

        assert query == "sort=oldest"
        assert len(feed.items) == 2
        assert feed.snapshot().state.sort == "oldest"
        assert await feed.change_sort("bogus") == "sort=oldest"

    async def test_toggle_disclosure(self):
        note = make_note(1, summary="Read me")
        feed = _feed(FakeStore(notes=[note]))
        await feed.start()
        [item] = feed.items

        assert item.disclosure.mode is DisclosureMode.SUMMARY
        assert feed.toggle_label(item) == "Show more"
        assert feed.toggle_disclosure(item.id) is True
        assert feed.toggle_label(item) == "Show less"
        assert feed.toggle_disclosure(item.id) is False
        assert item.id not in feed.snapshot().expanded

    async def test_teardown_cancels_link_checks(self):
        note = make_note(1, content='<a href="https://example.org/@bob">bob</a>')
        store = FakeStore(notes=[note])
        store.lookup_gate = asyncio.Event()
        store.gate_urls = {"https://example.org/@bob"}
        feed = _feed(store)
        await feed.start()
        [item] = feed.items
        await asyncio.sleep(0)

        feed.teardown()
        store.lookup_gate.set()
        [verification] = await item.resolutions.wait()

        assert verification.status is VerificationStatus.CANCELLED
        assert feed.items == ()


def test_parse_query():
    settings = Settings()
    assert parse_query("", settings).sort == "latest"
    assert parse_query("?sort=random", settings).sort == "random"
    assert parse_query("sort=nope", settings).sort == "latest"

    options = parse_query("?sort=oldest&view=replies", settings)
    assert options.sort == "oldest"
    assert options.show_replies is True
    assert parse_query("view=thread", settings).show_replies is False


def test_parse_query_default_sort_from_settings():
    assert parse_query("", Settings(default_sort="oldest")).sort == "oldest"
