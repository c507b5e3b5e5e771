"""
Extraction client: menu markup → MenuItems via POST /api/parse-html.

Both categories are requested at once. Each request either yields its items
or, on any failure, an empty list; the two outcomes meet at a JoinBarrier
that hands the merged list to the caller exactly once. A category with no
candidate elements arrives at the barrier immediately, without a request.

Records come back index-aligned with the markup that was sent; they are
zipped with the source elements by position, so a short response simply
leaves the trailing elements out.
"""

import asyncio
import logging
from collections.abc import Callable

import requests
from bs4 import Tag

from config import EXTRACT_TIMEOUT, EXTRACT_URL
from extract.parser import CATEGORY, FUNCTION
from overlay.index import MenuItem
from overlay.scanner import ScanResult, markup

log = logging.getLogger(__name__)

Items = list[MenuItem]


class JoinBarrier:
    """
    Fires *callback* once, after every expected key has arrived.

    Arrivals are keyed so each party counts once; anything arriving after
    the barrier has fired is ignored.
    """

    def __init__(self, keys: tuple[str, ...], callback: Callable[[dict[str, Items]], None]):
        self._keys     = keys
        self._callback = callback
        self._arrived: dict[str, Items] = {}
        self.fired = False

    def arrive(self, key: str, items: Items) -> None:
        if self.fired or key in self._arrived:
            log.warning("Ignoring late/duplicate arrival for %r", key)
            return
        if key not in self._keys:
            raise KeyError(key)

        self._arrived[key] = items
        if len(self._arrived) == len(self._keys):
            self.fired = True
            self._callback(self._arrived)


def _to_items(records: list, elements: list[Tag], category: str) -> Items:
    """Pair records with their source elements by position."""
    items = []
    for record, element in zip(records, elements):
        if not isinstance(record, dict):
            continue
        text = str(record.get("text") or "").strip()
        if not text:
            continue
        items.append(MenuItem(
            text=text,
            code=record.get("code") or None,
            category=category,
            source=element,
        ))
    if len(records) < len(elements):
        log.debug("%s: %d records for %d elements", category, len(records), len(elements))
    return items


class ExtractionClient:
    def __init__(
        self,
        url: str = EXTRACT_URL,
        timeout: float = EXTRACT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.url     = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def _post(self, htmls: list[str], category: str) -> list:
        payload = {"htmlElements": [{"html": h} for h in htmls], "type": category}
        resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        records = data.get("items") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise ValueError(f"malformed response: items={records!r}")
        return records

    async def fetch(self, elements: list[Tag], category: str) -> Items:
        """One category; never raises, a failed request yields []."""
        try:
            records = await asyncio.to_thread(self._post, markup(elements), category)
        except (requests.RequestException, ValueError) as exc:
            log.warning("Extraction failed for %s (%d elements): %s", category, len(elements), exc)
            return []

        items = _to_items(records, elements, category)
        log.info("Extracted %d %s items.", len(items), category)
        return items

    async def extract(
        self,
        scanned: ScanResult,
        on_complete: Callable[[Items], None] | None = None,
    ) -> Items:
        """
        Both categories concurrently; returns function items then category
        items, each in document order.
        """
        done: asyncio.Future[Items] = asyncio.get_running_loop().create_future()

        def aggregate(arrived: dict[str, Items]) -> None:
            items = arrived[FUNCTION] + arrived[CATEGORY]
            log.info("Extraction complete: %d items.", len(items))
            done.set_result(items)
            if on_complete is not None:
                on_complete(items)

        barrier = JoinBarrier((FUNCTION, CATEGORY), aggregate)

        async def run(elements: list[Tag], category: str) -> None:
            barrier.arrive(category, await self.fetch(elements, category))

        tasks = []
        for elements, category in ((scanned.functions, FUNCTION), (scanned.categories, CATEGORY)):
            if not elements:
                barrier.arrive(category, [])
            else:
                tasks.append(asyncio.create_task(run(elements, category)))

        # Each task arrives at the barrier before finishing, so `done` is set
        # once gather() returns.
        await asyncio.gather(*tasks)
        return await done
