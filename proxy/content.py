"""
Response classification: what may be rewritten, what is passed through.

The portal serves fonts and images with wrong or missing content types, so
classification looks at both the Content-Type header and the request path.
"""

import logging

log = logging.getLogger(__name__)

FONT_SUFFIXES = (".ttf", ".otf", ".woff", ".woff2", ".eot")

STATIC_SUFFIXES = FONT_SUFFIXES + (
    ".svg", ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".css", ".js",
)

BINARY_TYPES = (
    "font", "image", "video", "audio",
    "application/octet-stream", "application/pdf",
    "application/font", "application/x-font",
)

TEXT_TYPES = ("javascript", "css", "json")

# Paths the portal uses for JSON/AJAX endpoints; never inject into these.
NO_INJECT_MARKERS = ("_api.jsp", "/api/", "api.jsp")

FONT_TYPES_BY_SUFFIX = {
    ".ttf":   "font/ttf",
    ".woff":  "font/woff",
    ".woff2": "font/woff2",
    ".eot":   "application/vnd.ms-fontobject",
    ".otf":   "font/otf",
}


def is_html(content_type: str) -> bool:
    return "text/html" in content_type.lower()


def is_text_asset(content_type: str) -> bool:
    """JS / CSS / JSON: not binary, but only URL-rewritten, never injected."""
    lower = content_type.lower()
    return any(t in lower for t in TEXT_TYPES)


def sniff_font_type(path: str, content_type: str, body: bytes) -> str | None:
    """
    Return a corrected font content type when a font path came back with a
    non-font Content-Type but the body is recognisably a font.
    """
    lower_path = path.lower()
    if not lower_path.endswith(FONT_SUFFIXES) or "font" in content_type.lower():
        return None

    log.warning("Font content type mismatch: %s (%s)", path, content_type)
    if len(body) <= 4:
        return None
    if body[:4] == b"wOFF":
        return "font/woff2" if lower_path.endswith(".woff2") else "font/woff"
    if len(body) > 8 and body[:4] == b"\x00\x01\x00\x00":
        return "font/ttf"
    return None


def is_binary(path: str, content_type: str) -> bool:
    """Static/binary files are passed through untouched and cached."""
    lower_type = content_type.lower()
    lower_path = path.lower()

    if is_text_asset(lower_type):
        return False
    if any(t in lower_type for t in BINARY_TYPES):
        return True
    if lower_path.endswith(STATIC_SUFFIXES):
        return True
    return "/font" in lower_path


def should_inject(path: str, content_type: str, binary: bool) -> bool:
    lower_path = path.lower()
    if not is_html(content_type) or binary:
        return False
    if lower_path.endswith("/favorite.jsp"):
        return False
    return not any(marker in lower_path for marker in NO_INJECT_MARKERS)


def font_type_for(path: str) -> str | None:
    lower_path = path.lower()
    for suffix, font_type in FONT_TYPES_BY_SUFFIX.items():
        if lower_path.endswith(suffix):
            return font_type
    return None
