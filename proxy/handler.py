"""
Turns an upstream response into the response the browser gets.

    - HTML (outside the API/favourites exclusions) → optimize_html()
    - JS/CSS/JSON → URL rewriting only
    - fonts/images/other static files → untouched, long-cached, font types fixed
    - Set-Cookie → re-scoped for the proxy (plus a shared-domain copy)
    - upstream 3xx → 200 without Location (redirects were already followed)
"""

import logging
from dataclasses import dataclass, field

from config import ENTRY_PATH
from proxy import content
from proxy.cookies import shared_domain_cookie, transform_set_cookie
from proxy.rewrite import optimize_html, rewrite_text_asset
from proxy.upstream import UpstreamResponse

log = logging.getLogger(__name__)

# Recomputed by the server or already undone by requests.
DROP_HEADERS  = {"content-length", "content-encoding", "transfer-encoding", "connection", "keep-alive"}
CACHE_HEADERS = {"cache-control", "pragma", "expires", "etag", "last-modified"}

NO_CACHE_HEADERS = (
    ("Cache-Control", "no-cache, no-store, must-revalidate, private, max-age=0"),
    ("Pragma", "no-cache"),
    ("Expires", "Thu, 01 Jan 1970 00:00:00 GMT"),
)
STATIC_CACHE = "public, max-age=31536000"

# Responses worth logging when chasing lost logins.
AUTH_CHECK_MARKERS = ("api", "perchk.jsp", "check")
LOGIN_MARKERS      = ("login", "登入", "unauthorized", "權限不足", "please logon from homepage")
REDIRECT_MARKERS   = ("location.href", "window.location")

CORS_HEADERS = (
    ("Access-Control-Allow-Credentials", "true"),
    ("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS, PATCH"),
    ("Access-Control-Allow-Headers",
     "Content-Type, Authorization, X-Requested-With, Accept, Origin, Cache-Control, Pragma, Cookie, Referer"),
    ("Access-Control-Expose-Headers", "Content-Length, Content-Type, Set-Cookie, Location"),
    ("Access-Control-Max-Age", "86400"),
)


@dataclass
class ProxyResult:
    status_code: int
    body: bytes
    headers: list[tuple[str, str]] = field(default_factory=list)

    def header(self, name: str) -> str | None:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None

    def header_values(self, name: str) -> list[str]:
        return [v for k, v in self.headers if k.lower() == name.lower()]

    def set_header(self, name: str, value: str) -> None:
        self.remove_header(name)
        self.headers.append((name, value))

    def remove_header(self, name: str) -> None:
        self.headers = [(k, v) for k, v in self.headers if k.lower() != name.lower()]


def _snippet(body: bytes, limit: int) -> str:
    return body[:limit].decode("utf-8", errors="replace")


def log_auth_diagnostics(path: str, status_code: int, body: bytes) -> None:
    """Log what the portal answered on session-check and login pages."""
    lower_path = path.lower()
    if any(marker in lower_path for marker in AUTH_CHECK_MARKERS):
        log.info("Auth-related response %s: %d  %s", path, status_code, _snippet(body, 500))

    if "uaa002" not in lower_path:
        return

    log.info("UAA002 auth check %s: %d", path, status_code)
    text = body.decode("utf-8", errors="replace").lower()
    if any(marker in text for marker in LOGIN_MARKERS):
        log.warning("UAA002 page mentions login: %s", _snippet(body, 200))
        if "please logon from homepage" in text:
            log.warning("Portal wants a login from the home page; open %s first.", ENTRY_PATH)
    if any(marker in text for marker in REDIRECT_MARKERS):
        log.warning("UAA002 page redirects via JavaScript: %s", _snippet(body, 300))

def shape_response(
    path: str,
    upstream: UpstreamResponse,
    proxy_url: str,
    origin: str | None = None,
) -> ProxyResult:
    content_type = upstream.content_type
    body = upstream.body

    fixed_type = content.sniff_font_type(path, content_type, body)
    binary = fixed_type is not None or content.is_binary(path, content_type)

    if not binary and content.is_text_asset(content_type):
        body = rewrite_text_asset(body, proxy_url)
        log.info("URL-rewrote text asset %s (%s)", path, content_type)

    inject = content.should_inject(path, content_type, binary)
    if inject:
        body = optimize_html(body, proxy_url)
        log.info("Optimised HTML %s", path)
    elif binary:
        log.debug("Static file, passed through: %s (%s)", path, content_type)

    if not binary:
        log_auth_diagnostics(path, upstream.status_code, body)

    result = ProxyResult(status_code=upstream.status_code, body=body)

    for key, value in upstream.headers.items():
        lower = key.lower()
        if lower in DROP_HEADERS or lower == "set-cookie":
            continue
        if (inject or binary) and lower in CACHE_HEADERS:
            continue
        result.headers.append((key, value))

    for cookie in upstream.set_cookies:
        result.headers.append(("Set-Cookie", transform_set_cookie(cookie, proxy_url)))
        shared = shared_domain_cookie(cookie, proxy_url)
        if shared:
            result.headers.append(("Set-Cookie", shared))

    if inject:
        result.headers.extend(NO_CACHE_HEADERS)

    if binary:
        font_type = fixed_type or content.font_type_for(path)
        if font_type:
            result.set_header("Content-Type", font_type)
        result.set_header("Cache-Control", STATIC_CACHE)

    if origin and not binary:
        result.set_header("Access-Control-Allow-Origin", origin)
        for name, value in CORS_HEADERS:
            result.set_header(name, value)

    if 300 <= result.status_code < 400:
        log.warning("Upstream answered %d; rewriting to 200.", result.status_code)
        result.status_code = 200
        result.remove_header("Location")

    return result
