"""
Search box input handling.

Keystrokes are debounced: each one restarts a single timer, and only the
timer left standing evaluates the query. Enter opens the first result,
Escape clears the box and returns to the menu tree.
"""

import asyncio
import logging

from bs4 import Tag

from config import DEBOUNCE_SECONDS
from overlay.dom import MenuDocument
from overlay.index import SearchIndex
from overlay.renderer import ResultRenderer

log = logging.getLogger(__name__)

FOCUS_CLASS = "focused"


class InputController:
    def __init__(
        self,
        document: MenuDocument,
        box: Tag,
        index: SearchIndex,
        renderer: ResultRenderer,
        delay: float = DEBOUNCE_SECONDS,
    ):
        self.document = document
        self.box      = box
        self.index    = index
        self.renderer = renderer
        self.delay    = delay
        self.query    = ""
        self._timer: asyncio.TimerHandle | None = None

    def attach(self) -> None:
        self.document.add_listener(self.box, "input", self.on_input)
        self.document.add_listener(self.box, "keydown", self.on_keydown)
        self.document.add_listener(self.box, "focus", self.on_focus)
        self.document.add_listener(self.box, "blur", self.on_blur)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    def on_input(self, value: str) -> None:
        self.query = value
        self.box["value"] = value
        self._cancel()
        self._timer = asyncio.get_running_loop().call_later(self.delay, self.evaluate)

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def evaluate(self) -> None:
        self._timer = None
        matches = self.index.query(self.query)
        if matches is None:
            self.renderer.show_tree()
        else:
            self.renderer.show_results(matches)

    # ------------------------------------------------------------------
    # Keys / focus
    # ------------------------------------------------------------------

    def on_keydown(self, key: str) -> None:
        if key == "Enter":
            if not self.renderer.activate_first():
                log.debug("Enter with no rendered results.")
        elif key == "Escape":
            self.clear()

    def clear(self) -> None:
        self._cancel()
        self.query = ""
        self.box["value"] = ""
        self.renderer.show_tree()

    def on_focus(self) -> None:
        self.document.add_class(self.box, FOCUS_CLASS)

    def on_blur(self) -> None:
        self.document.remove_class(self.box, FOCUS_CLASS)
