"""
Menu scanner: the candidate elements the search index is built from.

Two disjoint sets, both in document order:
    functions  — leaf entries that open a portal function (of_display)
    categories — collapsible group headers
"""

import logging
from dataclasses import dataclass, field

from bs4 import Tag

from overlay.dom import MenuDocument

log = logging.getLogger(__name__)


@dataclass
class ScanResult:
    functions: list[Tag] = field(default_factory=list)
    categories: list[Tag] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.functions) + len(self.categories)


def scan(document: MenuDocument) -> ScanResult:
    """Read-only: select both element sets from the menu container."""
    functions = document.select(document.selectors.function)
    function_ids = {id(el) for el in functions}

    # A header that also carries of_display counts as a function only.
    categories = [
        el for el in document.select(document.selectors.category)
        if id(el) not in function_ids
    ]

    log.info("Scanned menu: %d functions, %d categories.", len(functions), len(categories))
    return ScanResult(functions=functions, categories=categories)


def markup(elements: list[Tag]) -> list[str]:
    """Outer HTML of each element, as sent to the extraction endpoint."""
    return [str(el) for el in elements]
