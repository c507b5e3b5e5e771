"""
In-memory search index over the extracted menu items.

Built once per page session and never updated. Matching is a plain
case-insensitive substring test against the item text; only function items
are matchable, category headers are indexed but never returned.

Public API:
    SearchIndex.build(items)  → SearchIndex
    SearchIndex.query(text)   → list[MenuItem] | None
"""

from dataclasses import dataclass, field

from bs4 import Tag

from config import FAVORITES_EDIT_LABEL
from extract.parser import CATEGORY, FUNCTION


@dataclass(frozen=True)
class MenuItem:
    text: str
    code: str | None
    category: str
    # Reference into the portal's menu tree; owned by the page, not the item.
    source: Tag | None = field(default=None, compare=False, repr=False)

    @property
    def is_function(self) -> bool:
        return self.category == FUNCTION


def _keep(item: MenuItem, favorites_label: str) -> bool:
    if not item.text.strip():
        return False
    return not (item.category == CATEGORY and item.text.strip() == favorites_label)


class SearchIndex:
    def __init__(self, items: tuple[MenuItem, ...]):
        self._items = items

    @classmethod
    def build(cls, items: list[MenuItem], favorites_label: str = FAVORITES_EDIT_LABEL) -> "SearchIndex":
        """Drop empty entries and the favourites-editor header, then freeze."""
        return cls(tuple(item for item in items if _keep(item, favorites_label)))

    @property
    def items(self) -> tuple[MenuItem, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def query(self, text: str) -> list[MenuItem] | None:
        """
        Function items whose text contains *text*, case-insensitively, in
        extraction order.

        Returns None for an empty query (no filter active), which callers must
        tell apart from [] (filter active, nothing matched).
        """
        needle = text.strip().lower()
        if not needle:
            return None
        return [item for item in self._items if item.is_function and needle in item.text.lower()]
