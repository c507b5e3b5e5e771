"""
FastAPI application — the myUT proxy.

Run as a script:
    python app/app.py

Or as a module:
    uvicorn app.app:app --reload --port 8080

Routes:
    GET  /                     → 302 to the portal entry page
    ANY  /utaipei/{path}       → proxied to TARGET_URL, HTML rewritten
    POST /api/parse-html       → menu markup text/code extraction
        body:    {"htmlElements": [{"html": "..."}], "type": "function"|"category"}
        returns: {"items": [{"text": str, "code"?: str, "type": str}, ...]}
    GET  /assets/img/{name}    → local images
    GET  /font/{name}          → local fonts
    GET  /health

Logs every request to stdout and logs/app.log (rotating, 5 MB max,
3 backups).
"""

import asyncio
import logging
import logging.handlers
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

# Ensure project root is on sys.path when running as a script (python app/app.py)
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from extract.parser import parse_elements
from proxy.handler import shape_response
from proxy.upstream import Upstream, UpstreamError

LOG_FILE = config.LOG_DIR / "app.log"


def _setup_logging() -> None:
    config.LOG_DIR.mkdir(exist_ok=True)
    fmt = logging.Formatter("%(asctime)s  %(levelname)s  %(message)s")

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(fmt)

    # Rotate at 5 MB, keep 3 backups
    rotating = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    rotating.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(stream)
    root.addHandler(rotating)

_setup_logging()
log = logging.getLogger("api")

IMAGE_TYPES = {
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif":  "image/gif",
    ".svg":  "image/svg+xml",
}
FONT_TYPES = {
    ".ttf":   "font/ttf",
    ".otf":   "font/otf",
    ".woff":  "font/woff",
    ".woff2": "font/woff2",
}
STATIC_CACHE = "public, max-age=31536000"

# Paths where the portal checks the login session.
SESSION_CHECK_MARKERS = ("perchk.jsp", "uaa002")


# ---------------------------------------------------------------------------
# App + lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.upstream = Upstream(
        config.TARGET_URL,
        config.PROXY_URL,
        timeout=config.UPSTREAM_TIMEOUT,
        max_redirects=config.MAX_REDIRECTS,
    )
    log.info("Proxy ready: %s → %s", config.PROXY_URL, config.TARGET_URL)

    yield  # server runs here

    app.state.upstream.session.close()


app = FastAPI(title="Better myUT", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    cookies = request.headers.get("cookie", "")
    agent = request.headers.get("user-agent", "")
    log.info(
        "%s %s | cookie: %s | UA: %s",
        request.method,
        request.url.path,
        f"{len(cookies)} chars" if cookies else "none",
        agent[:50] if agent else "none",
    )

    if any(marker in request.url.path for marker in SESSION_CHECK_MARKERS):
        if "jsessionid" in cookies.lower():
            log.info("  Session check %s: JSESSIONID present", request.url.path)
        else:
            log.warning("  Session check %s: no JSESSIONID, login state may be lost", request.url.path)

    t0 = time.perf_counter()
    response = await call_next(request)
    log.info("  → %d  %.2fs", response.status_code, time.perf_counter() - t0)
    return response


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class HTMLElement(BaseModel):
    html: str


class ParseHTMLRequest(BaseModel):
    htmlElements: list[HTMLElement]
    type: Literal["function", "category"]


class ParsedItem(BaseModel):
    text: str
    code: str | None = None
    type: str


class ParseHTMLResponse(BaseModel):
    items: list[ParsedItem]


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.warning("Invalid request body for %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "invalid request format"})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/")
def root() -> RedirectResponse:
    return RedirectResponse(config.ENTRY_PATH, status_code=302)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "target": config.TARGET_URL}


@app.post("/api/parse-html", response_model=ParseHTMLResponse, response_model_exclude_none=True)
def parse_html(req: ParseHTMLRequest) -> ParseHTMLResponse:
    log.info("parse-html: type=%s  elements=%d", req.type, len(req.htmlElements))
    records = parse_elements([el.html for el in req.htmlElements], req.type)
    return ParseHTMLResponse(items=[ParsedItem(**r) for r in records])


def _local_file(folder: str, name: str, types: dict[str, str]) -> Response:
    path = config.ASSETS_DIR / folder / Path(name).name
    if not path.is_file():
        return Response(status_code=404)
    media_type = types.get(path.suffix.lower(), "application/octet-stream")
    return Response(
        content=path.read_bytes(),
        media_type=media_type,
        headers={"Cache-Control": STATIC_CACHE},
    )


@app.get("/assets/img/{filename}")
def image(filename: str) -> Response:
    return _local_file("img", filename, IMAGE_TYPES)


@app.get("/font/{filename}")
def font(filename: str) -> Response:
    return _local_file("font", filename, FONT_TYPES)


@app.api_route(
    "/utaipei/{proxy_path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def forward(request: Request, proxy_path: str) -> Response:
    upstream: Upstream = request.app.state.upstream
    path = request.url.path
    body = await request.body()

    try:
        resp = await asyncio.to_thread(
            upstream.fetch,
            request.method,
            path,
            request.url.query,
            dict(request.headers),
            body,
        )
    except UpstreamError as exc:
        log.error("Proxy request failed: %s", exc)
        return Response("proxy request failed", status_code=502, media_type="text/plain")

    result = shape_response(path, resp, upstream.public_url, request.headers.get("origin"))

    if request.method == "OPTIONS":
        response = Response(status_code=200)
    else:
        response = Response(content=result.body, status_code=result.status_code)
    for key, value in result.headers:
        response.headers.append(key, value)
    return response


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _launch_server() -> None:
    config_ = uvicorn.Config(app, host="0.0.0.0", port=config.PORT, reload=False)
    server = uvicorn.Server(config_)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        uvicorn.run(app, host="0.0.0.0", port=config.PORT, reload=False)
        return

    log.warning(
        "Detected an existing asyncio event loop; serving with create_task() instead of asyncio.run()."
    )
    asyncio.create_task(server.serve())


if __name__ == "__main__":
    log.info("=== Better myUT — proxy on http://0.0.0.0:%d ===", config.PORT)
    _launch_server()
