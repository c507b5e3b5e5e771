"""
Text/code extraction for raw menu markup.

The search overlay ships the outer HTML of each menu element here and gets
back one record per element, in the same order. The portal's menu markup
looks like this:

    <div class="menu-category" onclick="of_change('A')">
      <img src="folder.gif"> 教務系統
    </div>
    <a href="#" onclick="of_display('UAA002')"><span>選課</span> 系統</a>

  - text  — every text node (comments excluded), stripped, joined with a space
  - code  — first argument of the of_display('...') call; function type only

Records are index-aligned with the input. An element that yields no text
still produces a record (with text == "") so positions never shift; the
caller decides what to drop.

Public API:
    extract_text(html)            → str
    extract_code(html)            → str | None
    parse_elements(htmls, type)   → list[dict]
"""

import logging
import re

from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

FUNCTION = "function"
CATEGORY = "category"
ITEM_TYPES = (FUNCTION, CATEGORY)

_CODE_RE = re.compile(r"""of_display\s*\(\s*['"]([^'"]+)['"]\s*\)""")


def extract_text(html: str) -> str:
    """Visible text of an HTML fragment, whitespace-normalised per text node."""
    soup = BeautifulSoup(html, "html.parser")
    return " ".join(soup.stripped_strings)


def extract_code(html: str) -> str | None:
    """Function code from the of_display('...') handler, or None."""
    match = _CODE_RE.search(html)
    return match.group(1) if match else None


def parse_element(html: str, item_type: str) -> dict:
    """Parse one raw element into {text, code?, type}."""
    record = {"text": extract_text(html), "type": item_type}
    if item_type == FUNCTION:
        code = extract_code(html)
        if code:
            record["code"] = code
    return record


def parse_elements(htmls: list[str], item_type: str) -> list[dict]:
    """Parse a batch; output is aligned with *htmls*."""
    records = []
    for i, html in enumerate(htmls):
        record = parse_element(html, item_type)
        log.debug("  [%d] text=%r code=%r", i, record["text"], record.get("code"))
        records.append(record)

    empty = sum(1 for r in records if not r["text"])
    log.info("Parsed %d %s elements (%d without text).", len(records), item_type, empty)
    return records
