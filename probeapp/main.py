"""
Kubernetes Probe Test Service
=============================
A small FastAPI service for exercising Kubernetes probes and Prometheus
scraping during cluster testing.

  /healthz      liveness, always 200 while the process serves requests
  /readyz       readiness, 503 until the warm-up delay has elapsed, then 200
  /metrics      Prometheus scrape endpoint
  /checkrest    randomly fails, counting failures per vendor
  /             echo: hostname, request count, time
  /uuid, /printJSONReq, /getAlbums   assorted handlers for poking at the pod

Run with ``probeapp --port 8081`` or ``uvicorn --factory probeapp.main:create_app``.
"""

import asyncio
import datetime
import logging
import random
import uuid
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import APIRouter, BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from probeapp.albums import AlbumStore, AlbumStoreError
from probeapp.config import Settings, load_settings
from probeapp.counter import RequestCounter
from probeapp.metrics import FailureMetrics
from probeapp.readiness import ReadinessController
from probeapp.shutdown import build_server

logger = logging.getLogger("uvicorn.error")

TEXT_HEADERS = {"X-Content-Type-Options": "nosniff"}
ALBUM_ERROR = "Error while retrieving albums"

router = APIRouter()


def _text(body: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers=TEXT_HEADERS)


# ---------------------------------------------------------------------------
# App state: one instance per app, handlers reach it through request.app.state
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    readiness = getattr(app.state, "readiness", None)
    if readiness is not None:
        readiness.start()
    yield
    if readiness is not None:
        readiness.cancel()
    app.state.albums.dispose()


def create_app(
    settings: Optional[Settings] = None,
    rng: Optional[random.Random] = None,
    metrics: Optional[FailureMetrics] = None,
    albums: Optional[AlbumStore] = None,
) -> FastAPI:
    # Without explicit settings, resolve them from the environment
    settings = settings or load_settings(argv=[])

    app = FastAPI(
        title="Kubernetes Probe Test Service",
        description="Liveness/readiness probes, Prometheus metrics and a failure simulator",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.readiness = ReadinessController(settings.startup_delay)
    app.state.metrics = metrics or FailureMetrics()
    app.state.counter = RequestCounter()
    app.state.rng = rng or random.Random()
    app.state.albums = albums or AlbumStore(settings.database_url)

    # Registered first so it sits inside the timeout middleware
    app.middleware("http")(recover_errors)
    app.middleware("http")(enforce_write_timeout)
    app.add_exception_handler(StarletteHTTPException, plain_http_error)
    app.add_exception_handler(AlbumStoreError, album_store_error)

    app.include_router(router)
    return app


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------
async def plain_http_error(request: Request, exc: StarletteHTTPException):
    # 404/405 and friends as a bare reason phrase, not FastAPI's JSON detail
    detail = exc.detail if isinstance(exc.detail, str) else "Error"
    return PlainTextResponse(detail, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def album_store_error(request: Request, exc: AlbumStoreError):
    logger.error(f"Album listing failed: {exc}")
    return _text(ALBUM_ERROR, status_code=500)


async def recover_errors(request: Request, call_next):
    """Turn any fault escaping a handler into a 500 instead of a dropped connection."""
    try:
        return await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error serving {request.method} {request.url.path}")
        return _text("Internal Server Error", status_code=500)


async def enforce_write_timeout(request: Request, call_next):
    timeout = request.app.state.settings.write_timeout
    try:
        return await asyncio.wait_for(call_next(request), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{request.method} {request.url.path} exceeded {timeout}s write timeout")
        return _text("Request timed out", status_code=503)


# ---------------------------------------------------------------------------
# PROBE ENDPOINTS: what Kubernetes and Prometheus call
# ---------------------------------------------------------------------------
@router.get("/healthz", tags=["probes"])
async def healthz():
    """
    LIVENESS PROBE
    Answers 200 whenever the process can serve a request. Never looks at
    readiness: a live-but-warming pod must not be restarted.
    """
    return _text("OK\n")


@router.get("/readyz", tags=["probes"])
async def readyz(request: Request):
    """
    READINESS PROBE
    503 until the warm-up delay has elapsed, 200 from then on. While it
    fails the pod is taken out of the Service endpoints but not restarted.
    """
    readiness = getattr(request.app.state, "readiness", None)
    if readiness is None or not readiness.is_ready():
        return _text("Service Unavailable", status_code=503)
    return _text("OK\n")


@router.get("/metrics", tags=["probes"])
async def metrics_endpoint(request: Request):
    metrics = request.app.state.metrics
    return Response(content=metrics.render(), media_type=metrics.content_type)


# ---------------------------------------------------------------------------
# CHAOS: hit this several times with ?vendor=something, then scrape /metrics
# ---------------------------------------------------------------------------
@router.api_route("/checkrest", methods=["GET", "POST"], tags=["chaos"])
async def check_rest(request: Request, background_tasks: BackgroundTasks, vendor: str = ""):
    """Coin flip per call; failures bump error_curl_total{vendor} after the response goes out."""
    if not vendor and request.method == "POST":
        # Form-encoded POST bodies carry the vendor too
        form = await request.form()
        vendor = str(form.get("vendor") or "")
    if request.app.state.rng.random() < 0.5:
        background_tasks.add_task(request.app.state.metrics.record_failure, vendor)
        return _text("Failed to fetch")
    return _text("Vendor status: ok")


# ---------------------------------------------------------------------------
# INFO ENDPOINTS
# ---------------------------------------------------------------------------
@router.get("/", tags=["info"])
def echo(request: Request):
    """Who answered, how many times, and when."""
    settings = request.app.state.settings
    count = request.app.state.counter.increment()
    now = datetime.datetime.now().astimezone().strftime("%a, %d %b %Y %H:%M:%S %Z")
    return _text(f"I am: {settings.hostname}\nRequests: {count}\nTime: {now}\n")


@router.get("/uuid", tags=["info"])
async def new_uuid():
    value = str(uuid.uuid4())
    logger.info(f"Generated uuid: {value}")
    return JSONResponse({"uuid": value}, headers=TEXT_HEADERS)


@router.get("/printJSONReq", tags=["info"])
async def print_request(request: Request):
    """Log the raw request (request line, headers, body)."""
    body = await request.body()
    target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    lines = [f"{request.method} {target} HTTP/{request.scope.get('http_version', '1.1')}"]
    lines += [f"{name}: {value}" for name, value in request.headers.items()]
    lines += ["", body.decode("utf-8", errors="replace")]
    logger.info("\n".join(lines))
    return Response(status_code=200)


@router.get("/getAlbums", tags=["info"])
def list_albums(request: Request):
    albums = request.app.state.albums.list_albums()
    for album in albums:
        logger.info(f"Album: {album}")
    return [album.to_dict() for album in albums]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = load_settings(argv, prog="probeapp")
    server = build_server(create_app(settings), settings)
    logger.info(f"Starting the service listening on port :{settings.port} ...")
    # Bind failures exit from inside uvicorn with status 1
    server.run()


if __name__ == "__main__":
    main()
