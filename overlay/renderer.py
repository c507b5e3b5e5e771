"""
Search panel and result list.

The panel is inserted just above the menu container:

    <div id="bmu-search">
      <input id="bmu-search-input" type="search">
      <div id="bmu-search-results">          (hidden in TreeView)
        <div class="bmu-search-stats">…</div>
        <div class="bmu-search-list">rows | empty placeholder</div>
      </div>
    </div>

TreeView shows the portal's menu and hides the results; ResultsView does the
opposite. Every render clears the previous rows first.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from bs4 import Tag

from overlay.dom import MenuDocument
from overlay.index import MenuItem

log = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "搜尋功能…"
EMPTY_TEXT       = "找不到符合的功能"
STATS_TEMPLATE   = "找到 {count} 個功能"


class View(Enum):
    TREE = "tree"
    RESULTS = "results"


@dataclass
class SearchPanel:
    root: Tag
    input: Tag
    results: Tag
    stats: Tag
    list: Tag


def mount_search_panel(document: MenuDocument) -> SearchPanel:
    """Build the panel and insert it before the menu container."""
    container = document.container()
    if container is None:
        raise ValueError("menu container not found; mount after the menu is ready")

    root = document.new_tag("div", id="bmu-search", class_="bmu-search")
    box = document.new_tag(
        "input", id="bmu-search-input", class_="bmu-search-input",
        type="search", placeholder=PLACEHOLDER_TEXT, autocomplete="off",
    )
    results = document.new_tag("div", id="bmu-search-results", class_="bmu-search-results")
    stats = document.new_tag("div", class_="bmu-search-stats")
    rows = document.new_tag("div", class_="bmu-search-list")

    results.append(stats)
    results.append(rows)
    root.append(box)
    root.append(results)
    container.insert_before(root)

    document.set_visible(results, False)
    return SearchPanel(root=root, input=box, results=results, stats=stats, list=rows)


class ResultRenderer:
    def __init__(self, document: MenuDocument, panel: SearchPanel):
        self.document = document
        self.panel    = panel
        self.view     = View.TREE
        self.rendered: list[MenuItem] = []

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def show_tree(self) -> None:
        self._clear()
        self.panel.stats.string = ""
        self.document.set_visible(self.panel.results, False)
        self.document.set_visible(self.document.container(), True)
        self.view = View.TREE

    def show_results(self, matches: list[MenuItem]) -> None:
        self._clear()

        if matches:
            for item in matches:
                self.panel.list.append(self._row(item))
            self.rendered = list(matches)
        else:
            self.panel.list.append(self.document.new_tag("div", EMPTY_TEXT, class_="bmu-search-empty"))

        self.panel.stats.string = STATS_TEMPLATE.format(count=len(matches))
        self.document.set_visible(self.document.container(), False)
        self.document.set_visible(self.panel.results, True)
        self.view = View.RESULTS
        log.debug("Rendered %d results.", len(matches))

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def _row(self, item: MenuItem) -> Tag:
        row = self.document.new_tag("div", class_="bmu-search-item")
        row.append(self.document.new_tag("span", item.text, class_="bmu-search-text"))
        if item.code:
            row["data-code"] = item.code
            row.append(self.document.new_tag("span", item.code, class_="bmu-search-code"))
        self.document.add_listener(row, "click", lambda: self.activate(item))
        return row

    def _clear(self) -> None:
        for child in list(self.panel.list.children):
            if isinstance(child, Tag):
                self.document.remove_listeners(child)
            child.extract()
        self.rendered = []

    def rows(self) -> list[Tag]:
        return [
            child for child in self.panel.list.children
            if isinstance(child, Tag) and self.document.has_class(child, "bmu-search-item")
        ]

    def activate(self, item: MenuItem) -> None:
        """Hand the click to the original menu element."""
        if item.source is None:
            log.warning("No source element for %r", item.text)
            return
        log.info("Activating %r (%s)", item.text, item.code)
        self.document.click(item.source)

    def activate_first(self) -> bool:
        if not self.rendered:
            return False
        self.activate(self.rendered[0])
        return True
