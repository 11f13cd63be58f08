"""
Embedded link classification and rewriting.

Links that look like actor profiles or posts are rewritten to local routes
immediately. Whether the target actually exists is checked afterwards in a
background task; the outcome of that check is only recorded for diagnostics
and never changes the rewritten href.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
from urllib.parse import quote

from .config import Settings
from .store import ContentStore


logger = logging.getLogger(__name__)

SCHEMES = r"(https?|ipns|hyper)"
ACTOR_PATTERN = re.compile(rf"{SCHEMES}://([^/]+)/@(\w+)", re.ASCII)
POST_PATTERN = re.compile(rf"{SCHEMES}://([^/]+)/@(\w+)/(\d+)", re.ASCII)
ACTOR_SUFFIX = "about.jsonld"
POST_SUFFIX = ".jsonld"


class LinkKind(str, Enum):
    ACTOR = "actor"
    POST = "post"
    EXTERNAL = "external"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    MISSING = "missing"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LinkDecision:
    kind: LinkKind
    original_href: str
    rewritten_href: str


@dataclass
class Verification:
    """Diagnostic record of one background existence check."""

    decision: LinkDecision
    status: VerificationStatus = VerificationStatus.PENDING
    error: Optional[str] = None


def classify(href: str) -> LinkKind:
    # The actor suffix also ends in the post suffix, so actors are tested first.
    if ACTOR_PATTERN.fullmatch(href) or href.endswith(ACTOR_SUFFIX):
        return LinkKind.ACTOR
    if POST_PATTERN.fullmatch(href) or href.endswith(POST_SUFFIX):
        return LinkKind.POST
    return LinkKind.EXTERNAL


def encode_component(value: str) -> str:
    """Percent-encode like a browser's ``encodeURIComponent``."""
    return quote(value, safe="-_.!~*'()")


def profile_href(url: str, settings: Settings) -> str:
    return f"{settings.profile_route}?actor={encode_component(url)}"


def post_href(url: str, settings: Settings) -> str:
    return f"{settings.post_route}?url={encode_component(url)}"


class ResolutionBatch:
    """Verification tasks spawned for one note, cancellable as a unit."""

    def __init__(self) -> None:
        self.verifications: List[Verification] = []
        self._tasks: List[asyncio.Task] = []
        self.cancelled = False

    def add(self, verification: Verification, task: asyncio.Task) -> None:
        self.verifications.append(verification)
        self._tasks.append(task)

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def cancel(self) -> None:
        self.cancelled = True
        for task in self._tasks:
            task.cancel()
        for verification in self.verifications:
            if verification.status is VerificationStatus.PENDING:
                verification.status = VerificationStatus.CANCELLED

    async def wait(self) -> List[Verification]:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        return self.verifications


class LinkResolver:
    def __init__(self, store: ContentStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    def rewrite(self, href: str) -> LinkDecision:
        kind = classify(href)
        if kind is LinkKind.ACTOR:
            rewritten = profile_href(href, self._settings)
        elif kind is LinkKind.POST:
            rewritten = post_href(href, self._settings)
        else:
            rewritten = href
        return LinkDecision(kind=kind, original_href=href, rewritten_href=rewritten)

    def resolve(self, href: str, batch: ResolutionBatch) -> LinkDecision:
        """Rewrite ``href`` now and schedule its verification on ``batch``.

        Must be called from a running event loop. Fan-out is unbounded: one
        task per matching link.
        """

        decision = self.rewrite(href)
        if decision.kind is LinkKind.EXTERNAL or batch.cancelled:
            return decision

        verification = Verification(decision)
        task = asyncio.create_task(self._verify(verification, batch))
        batch.add(verification, task)
        return decision

    async def _verify(self, verification: Verification, batch: ResolutionBatch) -> None:
        decision = verification.decision
        try:
            if decision.kind is LinkKind.ACTOR:
                found = await self._store.get_actor(decision.original_href)
            else:
                found = await self._store.get_note(decision.original_href)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if batch.cancelled:
                return
            verification.status = VerificationStatus.FAILED
            verification.error = str(exc)
            logger.error(
                "Error fetching %s data for %s: %s",
                decision.kind.value, decision.original_href, exc,
            )
            return

        if batch.cancelled:
            return
        if found is None:
            verification.status = VerificationStatus.MISSING
            logger.info(
                "%s not found in store, default redirection applied: %s",
                decision.kind.value.capitalize(), decision.original_href,
            )
        else:
            verification.status = VerificationStatus.VERIFIED
