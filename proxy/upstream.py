"""
Upstream client: forwards one incoming request to the portal.

Redirects are followed here rather than by the browser, so the user's
address bar never leaves the proxy. All requests share one requests.Session,
i.e. one cookie jar for the portal session.

Public API:
    Upstream(target_url, public_url, timeout, max_redirects)
    Upstream.fetch(method, path, query, headers, body) → UpstreamResponse
"""

import logging
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urljoin, urlsplit, urlunsplit

import requests
from requests.structures import CaseInsensitiveDict

from config import ENTRY_PATH

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
ACCEPT_XHR  = "application/json, text/javascript, */*; q=0.01"

# Headers never forwarded as-is (requests sets them from the target URL/body).
HOP_HEADERS = {"host", "content-length", "connection"}

AUTH_MARKERS = ("uaa", "auth", "login")


class UpstreamError(Exception):
    """The portal could not be reached or the redirect chain never ended."""


@dataclass
class UpstreamResponse:
    status_code: int
    headers: CaseInsensitiveDict
    set_cookies: list[str]
    body: bytes
    url: str

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")


def _is_auth_url(url: str) -> bool:
    lower = url.lower()
    return any(marker in lower for marker in AUTH_MARKERS)


def _set_cookie_values(resp: requests.Response) -> list[str]:
    # requests folds repeated Set-Cookie headers into one; the raw urllib3
    # headers keep them apart.
    raw = getattr(resp.raw, "headers", None)
    if raw is not None and hasattr(raw, "getlist"):
        return list(raw.getlist("Set-Cookie"))
    value = resp.headers.get("Set-Cookie")
    return [value] if value else []


class Upstream:
    def __init__(
        self,
        target_url: str,
        public_url: str,
        timeout: float = 30,
        max_redirects: int = 100,
        session: requests.Session | None = None,
    ):
        self.target_url    = target_url.rstrip("/")
        self.public_url    = public_url.rstrip("/")
        self.timeout       = timeout
        self.max_redirects = max_redirects
        self.session       = session or requests.Session()
        log.info("Upstream: target=%s  public=%s", self.target_url, self.public_url)

    # ------------------------------------------------------------------
    # Header shaping
    # ------------------------------------------------------------------

    def build_headers(self, method: str, url: str, incoming: Mapping[str, str]) -> dict[str, str]:
        """
        Headers for one upstream hop: the browser's own headers, with every
        trace of the proxy swapped for the portal's origin and the usual
        browser defaults filled in.
        """
        headers = {k: v for k, v in incoming.items() if k.lower() not in HOP_HEADERS}
        lower_keys = {k.lower(): k for k in headers}

        def pop(name: str) -> str | None:
            key = lower_keys.pop(name, None)
            return headers.pop(key) if key else None

        if cookie := pop("cookie"):
            headers["Cookie"] = cookie.strip()

        referer = pop("referer")
        origin = pop("origin")
        entry = self.target_url + ENTRY_PATH

        if _is_auth_url(url):
            headers["Referer"] = entry
            headers["Origin"] = self.target_url
        else:
            headers["Referer"] = referer.replace(self.public_url, self.target_url) if referer else entry
            headers["Origin"] = origin.replace(self.public_url, self.target_url) if origin else self.target_url

        xhr = any(
            k.lower() == "x-requested-with" and v == "XMLHttpRequest" for k, v in incoming.items()
        )
        defaults = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": ACCEPT_XHR if xhr else ACCEPT_HTML,
            "Accept-Language": "zh-TW,zh;q=0.9,en;q=0.8",
        }
        for name, value in defaults.items():
            if name.lower() not in lower_keys:
                headers[name] = value

        for name in ("cache-control", "pragma"):
            if key := lower_keys.pop(name, None):
                headers.pop(key)
        # requests only decodes gzip/deflate, so never let the browser ask for br.
        if key := lower_keys.pop("accept-encoding", None):
            headers.pop(key)
        headers["Accept-Encoding"] = "gzip, deflate"
        headers["Cache-Control"] = "no-cache"
        headers["Pragma"] = "no-cache"

        if method == "GET" and "upgrade-insecure-requests" not in lower_keys:
            headers["Upgrade-Insecure-Requests"] = "1"

        return headers

    # ------------------------------------------------------------------
    # Redirects
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_redirect(current_url: str, location: str) -> str:
        """Absolute next hop; redirects to localhost are pinned to the upstream host."""
        next_url = urljoin(current_url, location)
        parts = urlsplit(next_url)
        if parts.hostname == "localhost":
            current = urlsplit(current_url)
            next_url = urlunsplit((parts.scheme, current.netloc, parts.path, parts.query, parts.fragment))
            log.info("Rewrote localhost redirect -> %s", next_url)
        return next_url

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(
        self,
        method: str,
        path: str,
        query: str = "",
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> UpstreamResponse:
        """Forward a request, following redirects up to max_redirects."""
        url = self.target_url + path
        if query:
            url += "?" + query
        incoming = dict(headers or {})

        for hop in range(self.max_redirects):
            log.info("Proxy -> (hop %d) %s %s", hop + 1, method, url)
            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=self.build_headers(method, url, incoming),
                    data=body or None,
                    allow_redirects=False,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise UpstreamError(f"upstream request failed: {exc}") from exc

            log.info("  <- %d  %d bytes", resp.status_code, len(resp.content))

            if 300 <= resp.status_code < 400:
                location = resp.headers.get("Location")
                if not location:
                    log.info("  Redirect without Location; returning it as-is.")
                    return self._wrap(resp, url)

                url = self.resolve_redirect(url, location)
                if resp.status_code not in (307, 308):
                    method, body = "GET", b""
                    incoming = {k: v for k, v in incoming.items() if k.lower() != "content-type"}
                log.info("  Redirect %d -> %s", resp.status_code, url)
                continue

            return self._wrap(resp, url)

        log.error("Too many redirects (%d)", self.max_redirects)
        raise UpstreamError(f"too many redirects ({self.max_redirects})")

    @staticmethod
    def _wrap(resp: requests.Response, url: str) -> UpstreamResponse:
        return UpstreamResponse(
            status_code=resp.status_code,
            headers=resp.headers,
            set_cookies=_set_cookie_values(resp),
            body=resp.content,
            url=url,
        )
