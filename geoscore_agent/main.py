from __future__ import annotations

import asyncio
import logging
import os
import re
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote

from fastapi import Depends, FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from dotenv import load_dotenv

# Load .env before importing modules that read their settings at import time.
_HERE = Path(__file__).resolve()
_AGENT_ROOT = _HERE.parents[1]
load_dotenv(_AGENT_ROOT / ".env", override=False)

from .models import CalculateRequest, CalculateResponse, WidgetStateResponse  # noqa: E402
from .page import WIDGET_HTML  # noqa: E402
from .report import ExportError, export_report_pdf, render_report_html  # noqa: E402
from .widget import GeoScoreWidget  # noqa: E402


logging.basicConfig(
    level=os.getenv("GEOSCORE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="GEO Score Agent", version="0.1.0")

_PLAYWRIGHT_CONCURRENCY = max(1, int(os.getenv("PLAYWRIGHT_CONCURRENCY", "1")))
_PLAYWRIGHT_ACQUIRE_TIMEOUT_S = float(os.getenv("PLAYWRIGHT_ACQUIRE_TIMEOUT_S", "0.25"))
_playwright_semaphore = asyncio.Semaphore(_PLAYWRIGHT_CONCURRENCY)

_widget = GeoScoreWidget(parallel_checks=os.getenv("GEOSCORE_PARALLEL_CHECKS", "0") == "1")


def get_widget() -> GeoScoreWidget:
    return _widget


@asynccontextmanager
async def _playwright_slot():
    try:
        await asyncio.wait_for(_playwright_semaphore.acquire(), timeout=_PLAYWRIGHT_ACQUIRE_TIMEOUT_S)
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=503,
            detail="Agent busy (a report is already being exported). Please retry.",
            headers={"Retry-After": "2"},
        )
    try:
        yield
    finally:
        _playwright_semaphore.release()


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("GEOSCORE_CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:8000"]
    return [o.strip() for o in raw.split(",") if o.strip()]


# The widget page is served by this app; extra origins only matter for a separately hosted frontend.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", response_class=HTMLResponse)
def index():
    return WIDGET_HTML


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/state", response_model=WidgetStateResponse)
async def state_endpoint(widget: GeoScoreWidget = Depends(get_widget)):
    return widget.state.to_response()


@app.post("/calculate", response_model=CalculateResponse)
async def calculate_endpoint(req: CalculateRequest, widget: GeoScoreWidget = Depends(get_widget)):
    calculated = await widget.calculate_score(req.url)
    return {"calculated": calculated, "state": widget.state.to_response()}


@app.post("/reset", response_model=WidgetStateResponse)
async def reset_endpoint(widget: GeoScoreWidget = Depends(get_widget)):
    return widget.reset().to_response()


def _content_disposition(filename: str) -> str:
    fallback = re.sub(r'[^\x20-\x7e]|["\\]', "_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _require_result(widget: GeoScoreWidget):
    state = widget.state
    if state.breakdown is None:
        raise HTTPException(status_code=404, detail="No GEO score calculated yet.")
    return state


@app.get("/report", response_class=HTMLResponse)
async def report_endpoint(widget: GeoScoreWidget = Depends(get_widget)):
    state = _require_result(widget)
    return render_report_html(state.breakdown, state.logo_url)


@app.get("/report.pdf")
async def report_pdf_endpoint(widget: GeoScoreWidget = Depends(get_widget)):
    state = _require_result(widget)
    report_html = render_report_html(state.breakdown, state.logo_url)
    try:
        async with _playwright_slot():
            report = await export_report_pdf(report_html, state.breakdown.brand)
    except ExportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return Response(
        content=report.data,
        media_type=report.mime,
        headers={
            "content-disposition": _content_disposition(report.filename),
            "cache-control": "no-store",
        },
    )
