"""
HTML rewriting for proxied portal pages.

Works on the raw string rather than a parsed tree: the portal's markup is
old enough (framesets, unclosed tags, inline handlers) that a parse/serialise
round-trip changes behaviour, so every edit here is a targeted replacement.

Steps applied by optimize_html():
  1. Upstream URLs → proxy URLs (links, forms, frames, JS redirects)
  2. Remove oncontextmenu blockers (the portal disables right-click)
  3. Insert viewport meta if missing
  4. Insert no-cache meta + combined CSS before </head>; frameset pages also
     get the favicon and the injected script
  5. Add data-label attributes to table cells for the mobile table layout
"""

import html as html_lib
import logging
import re
from functools import lru_cache

from config import ASSETS_DIR

log = logging.getLogger(__name__)

UPSTREAM_HOST   = "my.utaipei.edu.tw"
COURSE_HOST     = "shcourse.utaipei.edu.tw"

CSS_FILES = (
    "fonts.css", "base.css", "buttons.css", "forms.css",
    "sidebar.css", "tables.css",
)
SCRIPT_FILE = "injected.js"

VIEWPORT_META = '<meta name="viewport" content="width=device-width,initial-scale=1">'
ICON_LINK     = "<link rel='icon' href='/assets/img/icon.svg' type='image/svg+xml'>"
NO_CACHE_META = """
<meta http-equiv="Cache-Control" content="no-cache, no-store, must-revalidate">
<meta http-equiv="Pragma" content="no-cache">
<meta http-equiv="Expires" content="0">
<meta name="robots" content="noindex, nofollow, noarchive, nosnippet, noimageindex">
"""

_CONTEXT_MENU_RE = re.compile(r"""oncontextmenu\s*=\s*["'][^"']*["']""", re.IGNORECASE)
_HEAD_END_RE     = re.compile(r"</head>", re.IGNORECASE)
_BODY_START_RE   = re.compile(r"<body[^>]*>", re.IGNORECASE)

_TABLE_RE = re.compile(r"<table[^>]*>.*?</table>", re.DOTALL)
_THEAD_RE = re.compile(r"<thead[^>]*>(.*?)</thead>", re.DOTALL)
_TH_RE    = re.compile(r"<th[^>]*>(.*?)</th>", re.DOTALL)
_TBODY_RE = re.compile(r"<tbody[^>]*>.*?</tbody>", re.DOTALL)
_TR_RE    = re.compile(r"<tr[^>]*>.*?</tr>", re.DOTALL)
_TD_RE    = re.compile(r"<td([^>]*)>(.*?)</td>", re.DOTALL)
_TAG_RE   = re.compile(r"<[^>]*>")


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

@lru_cache()
def combined_css() -> str:
    """All stylesheet modules, in cascade order."""
    parts = []
    for name in CSS_FILES:
        path = ASSETS_DIR / "css" / name
        if path.exists():
            parts.append(path.read_text(encoding="utf-8"))
        else:
            log.warning("Missing stylesheet: %s", path)
    return "\n\n".join(parts)


@lru_cache()
def injected_script() -> str:
    return (ASSETS_DIR / "js" / SCRIPT_FILE).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# URL rewriting
# ---------------------------------------------------------------------------

def replace_target_urls(text: str, proxy_url: str) -> str:
    """Point every upstream (and stray localhost) URL back at the proxy."""
    proxy = proxy_url or "http://127.0.0.1:8080"

    for scheme in ("https", "http"):
        text = text.replace(f"{scheme}://{UPSTREAM_HOST}", proxy)
        text = text.replace(f"{scheme}://{COURSE_HOST}", f"{proxy}/shcourse")

    # The portal occasionally emits localhost URLs; without this the browser
    # would hit its own port 80.
    text = text.replace("https://localhost", f"{proxy}/utaipei")
    text = text.replace("http://localhost", f"{proxy}/utaipei")
    text = text.replace("//localhost", f"{proxy}/utaipei")

    return text


def rewrite_text_asset(body: bytes, proxy_url: str) -> bytes:
    """JS/CSS/JSON: URL rewriting only."""
    return replace_target_urls(body.decode("latin-1"), proxy_url).encode("latin-1")


def remove_context_menu_blockers(text: str) -> str:
    return _CONTEXT_MENU_RE.sub("", text)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _label_row(row: str, headers: list[str]) -> str:
    index = 0

    def label(match: re.Match) -> str:
        nonlocal index
        attrs, content = match.group(1), match.group(2)
        if index >= len(headers):
            index += 1
            return match.group(0)
        header = html_lib.escape(headers[index], quote=True)
        index += 1
        return f'<td{attrs} data-label="{header}">{content}</td>'

    return _TD_RE.sub(label, row)


def _label_table(match: re.Match) -> str:
    table = match.group(0)
    thead = _THEAD_RE.search(table)
    if not thead:
        return table

    headers = [_TAG_RE.sub("", th).strip() for th in _TH_RE.findall(thead.group(1))]
    if not headers:
        return table

    def label_tbody(tbody: re.Match) -> str:
        return _TR_RE.sub(lambda row: _label_row(row.group(0), headers), tbody.group(0))

    return _TBODY_RE.sub(label_tbody, table)


def add_table_data_labels(text: str) -> str:
    """
    Copy each <thead> header onto the matching <tbody> cells as data-label,
    which the mobile stylesheet shows in place of the hidden header row.
    """
    return _TABLE_RE.sub(_label_table, text)


# ---------------------------------------------------------------------------
# Head injection
# ---------------------------------------------------------------------------

def _spliceable(text: str) -> str:
    # Page bodies are handled as latin-1 so any upstream charset survives
    # byte-for-byte; our own assets are UTF-8 and are spliced in as bytes.
    return text.encode("utf-8").decode("latin-1")


def _insert_assets(text: str, is_frameset: bool) -> str:
    css = "\n<style>\n" + _spliceable(combined_css()) + "\n</style>"
    script = ""
    icon = ""
    if is_frameset:
        script = "\n<script>\n" + _spliceable(injected_script()) + "\n</script>"
        icon = ICON_LINK

    if _HEAD_END_RE.search(text):
        block = NO_CACHE_META + icon + css + script + "</head>"
        return _HEAD_END_RE.sub(lambda _: block, text)

    if _BODY_START_RE.search(text):
        block = NO_CACHE_META + css + script
        return _BODY_START_RE.sub(lambda m: m.group(0) + block, text)

    log.debug("No <head> or <body>; prepending assets.")
    return NO_CACHE_META + VIEWPORT_META + css + script + text


def optimize_html(body: bytes, proxy_url: str) -> bytes:
    """Full rewrite pipeline for an HTML response body."""
    text = body.decode("latin-1")

    text = replace_target_urls(text, proxy_url)
    text = remove_context_menu_blockers(text)

    lower = text.lower()
    is_frameset = "<frameset" in lower

    if '<meta name="viewport"' not in lower:
        text = text.replace("<head>", "<head>" + VIEWPORT_META, 1)

    text = _insert_assets(text, is_frameset)
    text = add_table_data_labels(text)

    return text.encode("latin-1")
