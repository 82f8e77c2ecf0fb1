"""FastAPI server that renders caption overlays onto remote images.

- JSON request `{imageUrl, text, styleConfig}` in, PNG out
- Optional bearer-token auth (API_KEY)
- CORS for browser callers
- Request timeouts
- Structured JSON logging with request IDs
- Health/metrics endpoints
"""

import asyncio
import contextvars
import os
import platform
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

import psutil
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from errors import (
    DecodeFailed,
    FetchFailed,
    FontFileUnavailable,
    OverlayError,
    RenderFailed,
    UnknownFontFamily,
)
from fetch import fetch_bytes
from fonts import get_registry
from logger import get_logger, set_request_id
from models import StyleConfig
from overlay_config import get_preset
from renderer import OverlayRenderer

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "60"))  # seconds
API_KEY = os.getenv("API_KEY", "")
VERSION = "1.0.0"

log = get_logger("server")

ERROR_STATUS = {
    UnknownFontFamily: 400,
    DecodeFailed: 422,
    FetchFailed: 502,
    FontFileUnavailable: 500,
    RenderFailed: 500,
}


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
@dataclass
class Metrics:
    total_requests: int = 0
    total_success: int = 0
    total_errors: int = 0
    total_timeouts: int = 0
    total_truncated: int = 0
    errors_by_kind: dict = field(default_factory=dict)
    processing_times: deque = field(default_factory=lambda: deque(maxlen=1000))
    stage_times: dict = field(default_factory=lambda: {
        "fetch": deque(maxlen=1000),
        "render": deque(maxlen=1000),
    })

    def avg_time(self) -> float:
        return sum(self.processing_times) / len(self.processing_times) if self.processing_times else 0

    def error_rate(self) -> float:
        return self.total_errors / self.total_requests if self.total_requests else 0

    def avg_stage(self, stage: str) -> float:
        d = self.stage_times.get(stage, [])
        return sum(d) / len(d) if d else 0

    def record_error(self, kind: str):
        self.total_errors += 1
        self.errors_by_kind[kind] = self.errors_by_kind.get(kind, 0) + 1

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "total_success": self.total_success,
            "total_errors": self.total_errors,
            "total_timeouts": self.total_timeouts,
            "total_truncated": self.total_truncated,
            "errors_by_kind": dict(self.errors_by_kind),
            "avg_processing_time_s": round(self.avg_time(), 3),
            "error_rate": round(self.error_rate(), 4),
            "avg_stage_times_s": {
                k: round(self.avg_stage(k), 3) for k in self.stage_times
            },
        }


metrics = Metrics()
_start_time = time.time()
renderer: Optional[OverlayRenderer] = None


def get_renderer() -> OverlayRenderer:
    global renderer
    if renderer is None:
        renderer = OverlayRenderer(get_preset(), get_registry())
    return renderer


# ---------------------------------------------------------------------------
# Request schema
# ---------------------------------------------------------------------------
class StyleConfigIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    font_family: str = Field(alias="fontFamily")
    backdrop_color: str = Field(alias="backdropColor", pattern=r"^#?[0-9a-fA-F]{6}$")
    backdrop_opacity: float = Field(alias="backdropOpacity", ge=0, le=1)
    text_color: str = Field(alias="textColor", pattern=r"^#?[0-9a-fA-F]{6}$")

    def to_style(self) -> StyleConfig:
        return StyleConfig(
            font_family=self.font_family,
            backdrop_color=self.backdrop_color,
            backdrop_opacity=self.backdrop_opacity,
            text_color=self.text_color,
        )


class OverlayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(alias="imageUrl", min_length=1)
    text: str = Field(min_length=1)
    style_config: StyleConfigIn = Field(alias="styleConfig")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    options = get_renderer().options
    log.info("server_start", preset=options.name, timeout=REQUEST_TIMEOUT,
             auth=bool(API_KEY), version=VERSION)
    yield
    log.info("server_stop", uptime=round(time.time() - _start_time, 1), **metrics.to_dict())


app = FastAPI(title="Text Overlay Service", version=VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ---------------------------------------------------------------------------
# Middleware: request ID + logging
# ---------------------------------------------------------------------------
@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
    set_request_id(request_id)
    request.state.request_id = request_id
    request.state.start_time = time.time()

    log.info("request_start", method=request.method, path=request.url.path)

    try:
        response = await call_next(request)
        elapsed = round(time.time() - request.state.start_time, 3)
        log.info("request_end", method=request.method, path=request.url.path,
                 status=response.status_code, elapsed_s=elapsed)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time"] = str(elapsed)
        return response
    except Exception as e:
        elapsed = round(time.time() - request.state.start_time, 3)
        log.error("request_error", method=request.method, path=request.url.path,
                  error=str(e), elapsed_s=elapsed)
        raise


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
def _error(status: int, error: str, message: str, request: Request) -> JSONResponse:
    return JSONResponse(status_code=status, content={
        "error": error,
        "message": message,
        "request_id": getattr(request.state, "request_id", "unknown"),
    })


@app.exception_handler(OverlayError)
async def overlay_error_handler(request: Request, exc: OverlayError):
    status = ERROR_STATUS.get(type(exc), 500)
    log.error("overlay_error", kind=exc.code, error=str(exc), status=status)
    return JSONResponse(status_code=status, content={
        **exc.to_dict(),
        "request_id": getattr(request.state, "request_id", "unknown"),
    })


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    missing = first.get("type") in ("missing", "string_too_short")
    if missing and len(loc) == 2 and loc[0] == "styleConfig":
        message = f"Missing required styleConfig field: {loc[1]}"
    elif missing and len(loc) == 1:
        message = f"Missing required field: {loc[0]}"
    elif loc:
        message = f"Invalid field {'.'.join(loc)}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request body"
    log.warning("request_invalid", error=message)
    return _error(400, "InvalidRequest", message, request)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, "HTTPError", str(exc.detail), request)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    log.error("unhandled_error", error=str(exc), type=type(exc).__name__)
    return _error(500, "Internal server error",
                  str(exc) if os.getenv("DEBUG") else "An unexpected error occurred", request)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def require_api_key(authorization: Optional[str] = Header(default=None)):
    if not API_KEY:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing or invalid authorization header")
    if authorization[len("Bearer "):] != API_KEY:
        raise HTTPException(403, "Invalid API key")


# ---------------------------------------------------------------------------
# Helper: run with timeout
# ---------------------------------------------------------------------------
async def _run_blocking(func, *args, **kwargs):
    """Run a sync function in the default executor under REQUEST_TIMEOUT."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await asyncio.wait_for(
        loop.run_in_executor(None, lambda: ctx.run(func, *args, **kwargs)),
        timeout=REQUEST_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    proc = psutil.Process()
    mem = proc.memory_info()
    active = get_renderer()
    return {
        "status": "ok",
        "uptime_s": round(time.time() - _start_time, 1),
        "service": "text-overlay",
        "version": VERSION,
        "preset": active.options.name,
        "fonts_registered": active.registry.families(),
        "system": {
            "cpu_percent": psutil.cpu_percent(interval=0),
            "memory_rss_mb": round(mem.rss / 1024 / 1024, 1),
            "pid": proc.pid,
            "platform": platform.system(),
        },
    }


@app.get("/metrics")
async def metrics_endpoint():
    return metrics.to_dict()


@app.post("/api/overlay", dependencies=[Depends(require_api_key)])
async def overlay_endpoint(body: OverlayRequest):
    """Fetch the background image and return it with the caption drawn on."""
    style = body.style_config.to_style()
    metrics.total_requests += 1
    log.info("overlay_request", image_url=body.image_url, text=body.text,
             font_family=style.font_family)

    active = get_renderer()
    t0 = time.time()
    try:
        data = await _run_blocking(fetch_bytes, body.image_url)
        t1 = time.time()
        metrics.stage_times["fetch"].append(t1 - t0)

        result = await _run_blocking(active.render, data, body.text, style)
        t2 = time.time()
        metrics.stage_times["render"].append(t2 - t1)
        metrics.processing_times.append(t2 - t0)
    except asyncio.TimeoutError:
        metrics.total_timeouts += 1
        metrics.record_error("Timeout")
        log.error("processing_timeout", timeout=REQUEST_TIMEOUT)
        raise HTTPException(504, f"Processing timed out after {REQUEST_TIMEOUT}s")
    except OverlayError as e:
        metrics.record_error(e.code)
        raise

    metrics.total_success += 1
    headers = {"X-Font-Size": str(result.layout.font_size)}
    if result.layout.truncated:
        metrics.total_truncated += 1
        headers["X-Text-Truncated"] = "true"
        headers["X-Dropped-Words"] = str(len(result.layout.dropped_words))
    return Response(content=result.png, media_type="image/png", headers=headers)
