from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from .store import ContentStore


logger = logging.getLogger(__name__)


class IngestionCoordinator:
    """Makes sure followed actors are in the store before the first page loads.

    One instance is owned by the application root. The first successful run
    flips ``ready`` for good; concurrent callers share the run in progress.
    A failing actor is logged and does not hold back the others.
    """

    def __init__(self, store: ContentStore) -> None:
        self._store = store
        self._ready = False
        self._task: Optional[asyncio.Task] = None
        self.failures: Dict[str, BaseException] = {}

    @property
    def ready(self) -> bool:
        return self._ready

    async def ensure_ready(self) -> None:
        if self._ready:
            return
        if self._task is None:
            self._task = asyncio.create_task(self._ingest_followed())
        # Shielded so a cancelled caller does not abort the shared run.
        await asyncio.shield(self._task)

    async def _ingest_followed(self) -> None:
        try:
            followed = await self._store.get_followed_actors()
            results = await asyncio.gather(
                *(self._store.ingest_actor(actor.url) for actor in followed),
                return_exceptions=True,
            )
            for actor, result in zip(followed, results):
                if isinstance(result, BaseException):
                    self.failures[actor.url] = result
                    logger.error("Failed to ingest %s: %s", actor.url, result)

            logger.info("All followed actors have been ingested")
            self._ready = True
        finally:
            # Cleared on failure too, so the next caller starts a fresh run.
            self._task = None
