"""
Set-Cookie shaping so the portal session survives behind the proxy.

The portal scopes its cookies to *.utaipei.edu.tw and to per-application
paths (/utaipei, /shcourse). Behind the proxy they have to live on the
proxy's host and on "/" so one session is shared by every proxied path.
"""

import logging
import re
from urllib.parse import urlparse

log = logging.getLogger(__name__)

SHARED_DOMAIN = ".utaipei.edu.tw"
LOCAL_HOSTS   = ("127.0.0.1", "localhost")
AUTH_MARKERS  = ("jsessionid", "auth", "login", "session", "user")

_UPSTREAM_DOMAIN_RE = re.compile(r";\s*domain=([^;]*\.)?utaipei\.edu\.tw", re.IGNORECASE)
_DOMAIN_RE = re.compile(r";\s*domain=[^;]*", re.IGNORECASE)
_SECURE_RE = re.compile(r";\s*secure\s*", re.IGNORECASE)
_PATH_RE   = re.compile(r";\s*path=[^;]*", re.IGNORECASE)


def _force_root_path(cookie: str) -> str:
    if "path=" in cookie.lower():
        return _PATH_RE.sub("; Path=/", cookie)
    return cookie + "; Path=/"


def _is_auth_cookie(cookie: str) -> bool:
    lower = cookie.lower()
    return any(marker in lower for marker in AUTH_MARKERS)


def transform_set_cookie(cookie: str, proxy_url: str) -> str:
    """Rewrite one upstream Set-Cookie value for the proxy's own domain."""
    host = urlparse(proxy_url).hostname
    if not host:
        log.warning("Cannot parse proxy URL %r; passing cookie through.", proxy_url)
        return cookie

    https = proxy_url.startswith("https://")
    modified = cookie

    if host in LOCAL_HOSTS:
        modified = _UPSTREAM_DOMAIN_RE.sub("", modified)
        if not https:
            modified = _SECURE_RE.sub("", modified)
        modified = _force_root_path(modified)

        if "samesite" not in modified.lower():
            if https:
                modified += "; SameSite=None"
                if _is_auth_cookie(modified) and "secure" not in modified.lower():
                    modified += "; Secure"
            else:
                modified += "; SameSite=Lax"

        log.debug("Cookie (local): %s -> %s", cookie, modified)
        return modified

    modified = _DOMAIN_RE.sub(f"; Domain={host}", modified)
    if not https:
        modified = _SECURE_RE.sub("", modified)
    modified = _force_root_path(modified)

    log.debug("Cookie (production): %s -> %s", cookie, modified)
    return modified


def shared_domain_cookie(cookie: str, proxy_url: str) -> str | None:
    """
    Copy of the cookie scoped to .utaipei.edu.tw so the real portal can read
    it too. Not produced for a local proxy, which cannot reach that domain.
    """
    host = urlparse(proxy_url).hostname
    if not host or host in LOCAL_HOSTS:
        return None

    if _DOMAIN_RE.search(cookie):
        modified = _DOMAIN_RE.sub(f"; Domain={SHARED_DOMAIN}", cookie)
    else:
        modified = cookie + f"; Domain={SHARED_DOMAIN}"

    if "secure" not in modified.lower():
        modified += "; Secure"
    modified = _force_root_path(modified)

    # SameSite=None is required for the cross-site login round-trip.
    if "samesite" not in modified.lower():
        modified += "; SameSite=None"

    log.debug("Cookie (shared domain): %s -> %s", cookie, modified)
    return modified
