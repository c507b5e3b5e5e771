"""
One search session per menu page.

    readiness wait → scan → extract (2 requests) → index → panel + input

The portal fills the menu frame asynchronously, so start_session() first
polls for a non-empty menu container. Polling is bounded: after
max_attempts the readiness state turns FAILED and MenuNotReady is raised,
instead of retrying for the lifetime of the page.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from config import READY_MAX_ATTEMPTS, READY_POLL_SECONDS
from overlay.client import ExtractionClient
from overlay.controller import InputController
from overlay.dom import MenuDocument
from overlay.index import SearchIndex
from overlay.renderer import ResultRenderer, mount_search_panel
from overlay.scanner import scan

log = logging.getLogger(__name__)

# Returns the menu frame's document, or None while the frame does not exist.
DocumentLoader = Callable[[], MenuDocument | None]


class MenuNotReady(Exception):
    """The menu container never appeared (or stayed empty)."""


class ReadyState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class MenuReadiness:
    def __init__(
        self,
        load: DocumentLoader,
        interval: float = READY_POLL_SECONDS,
        max_attempts: int = READY_MAX_ATTEMPTS,
    ):
        self.load         = load
        self.interval     = interval
        self.max_attempts = max_attempts
        self.state        = ReadyState.PENDING
        self.attempts     = 0

    async def wait(self) -> MenuDocument:
        while self.attempts < self.max_attempts:
            self.attempts += 1
            document = self.load()
            if document is not None and document.is_ready():
                self.state = ReadyState.READY
                log.info("Menu ready after %d attempt(s).", self.attempts)
                return document

            log.debug("Menu not ready (attempt %d/%d).", self.attempts, self.max_attempts)
            if self.attempts < self.max_attempts:
                await asyncio.sleep(self.interval)

        self.state = ReadyState.FAILED
        log.warning("Menu not ready after %d attempts; search disabled.", self.attempts)
        raise MenuNotReady(f"menu container not ready after {self.attempts} attempts")


@dataclass
class SearchSession:
    document: MenuDocument
    index: SearchIndex
    renderer: ResultRenderer
    controller: InputController


async def start_session(
    load: DocumentLoader,
    client: ExtractionClient | None = None,
    readiness: MenuReadiness | None = None,
) -> SearchSession:
    readiness = readiness or MenuReadiness(load)
    document = await readiness.wait()

    scanned = scan(document)
    if client is not None:
        items = await client.extract(scanned)
    else:
        # Created here, so closed here.
        client = ExtractionClient()
        try:
            items = await client.extract(scanned)
        finally:
            client.close()
    index = SearchIndex.build(items)
    log.info("Search index: %d items (%d scanned).", len(index), len(scanned))

    panel = mount_search_panel(document)
    renderer = ResultRenderer(document, panel)
    controller = InputController(document, panel.input, index, renderer)
    controller.attach()

    return SearchSession(document=document, index=index, renderer=renderer, controller=controller)
