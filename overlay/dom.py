"""
Adapter over the portal's menu frame document.

The menu markup belongs to the portal, not to us. Everything the overlay
knows about its structure lives in MenuSelectors (the selector contract);
everything it does to the tree goes through MenuDocument. When the portal
changes its markup, the contract tests in tests/test_dom.py fail instead of
the search silently finding nothing.

MenuDocument wraps a BeautifulSoup tree and adds the two things a parsed
tree lacks: visibility (inline display style) and events (listeners plus a
click that falls through to the portal's own onclick handler).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

log = logging.getLogger(__name__)

Handler = Callable[..., None]


@dataclass(frozen=True)
class MenuSelectors:
    """CSS selectors the overlay relies on; all relative to the container."""
    container: str = "#menu"
    function: str = '[onclick*="of_display"]'
    category: str = ".menu-category"


def _parse_style(style: str) -> dict[str, str]:
    decls = {}
    for decl in style.split(";"):
        name, sep, value = decl.partition(":")
        if sep and name.strip():
            decls[name.strip().lower()] = value.strip()
    return decls


def _format_style(decls: dict[str, str]) -> str:
    return "; ".join(f"{k}: {v}" for k, v in decls.items())


def _classes(element: Tag) -> list[str]:
    # Parsed markup gives a list; tags we create carry the raw string.
    value = element.get("class", [])
    return value.split() if isinstance(value, str) else list(value)


class MenuDocument:
    def __init__(
        self,
        soup: BeautifulSoup,
        selectors: MenuSelectors = MenuSelectors(),
        host_click: Handler | None = None,
    ):
        self.soup       = soup
        self.selectors  = selectors
        # Stands in for the portal's own onclick handlers.
        self.host_click = host_click
        self._listeners: dict[int, tuple[Tag, dict[str, list[Handler]]]] = {}

    @classmethod
    def from_html(cls, html: str, **kwargs) -> "MenuDocument":
        return cls(BeautifulSoup(html, "html.parser"), **kwargs)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def container(self) -> Tag | None:
        return self.soup.select_one(self.selectors.container)

    def is_ready(self) -> bool:
        """The container exists and the portal has filled it in."""
        container = self.container()
        if container is None:
            return False
        return bool(container.get_text(strip=True)) or container.find(True) is not None

    def select(self, selector: str) -> list[Tag]:
        container = self.container()
        if container is None:
            return []
        return container.select(selector)

    def new_tag(self, name: str, text: str | None = None, **attrs: str) -> Tag:
        if "class_" in attrs:
            attrs["class"] = attrs.pop("class_")
        tag = self.soup.new_tag(name, attrs=attrs)
        if text is not None:
            tag.string = text
        return tag

    # ------------------------------------------------------------------
    # Visibility / classes
    # ------------------------------------------------------------------

    def set_visible(self, element: Tag, visible: bool) -> None:
        decls = _parse_style(element.get("style", ""))
        if visible:
            decls.pop("display", None)
        else:
            decls["display"] = "none"
        if decls:
            element["style"] = _format_style(decls)
        elif "style" in element.attrs:
            del element["style"]

    def is_visible(self, element: Tag) -> bool:
        return _parse_style(element.get("style", "")).get("display") != "none"

    @staticmethod
    def has_class(element: Tag, name: str) -> bool:
        return name in _classes(element)

    @staticmethod
    def add_class(element: Tag, name: str) -> None:
        classes = _classes(element)
        if name not in classes:
            element["class"] = classes + [name]

    @staticmethod
    def remove_class(element: Tag, name: str) -> None:
        classes = [c for c in _classes(element) if c != name]
        if classes:
            element["class"] = classes
        elif "class" in element.attrs:
            del element["class"]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_listener(self, element: Tag, event: str, handler: Handler) -> None:
        _, handlers = self._listeners.setdefault(id(element), (element, {}))
        handlers.setdefault(event, []).append(handler)

    def remove_listeners(self, element: Tag) -> None:
        self._listeners.pop(id(element), None)

    def dispatch(self, element: Tag, event: str, **detail) -> None:
        entry = self._listeners.get(id(element))
        if entry is None:
            return
        for handler in list(entry[1].get(event, ())):
            handler(**detail)

    def click(self, element: Tag) -> None:
        """
        Synthesised click: our listeners first, then the portal's inline
        onclick handler if the element has one.
        """
        self.dispatch(element, "click")
        if element.get("onclick") and self.host_click is not None:
            log.debug("Host click: %s", element.get("onclick"))
            self.host_click(element)
