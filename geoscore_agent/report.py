from __future__ import annotations

import base64
import html
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from playwright.async_api import async_playwright

from .models import ScoreBreakdown

logger = logging.getLogger(__name__)

REPORT_CONTACT = os.getenv("GEOSCORE_REPORT_CONTACT", "").strip()
REPORT_REGION_ID = "geo-report"
LOGO_TAG = '<img class="logo"'

SUGGESTIONS = (
    "Create Wikidata/Wikipedia with credible sources.",
    "Publish GEO-powered articles (at least 20/month) on Medium, blogs, etc.",
    "Perform Data Injections.",
    "Add structured data (schema.org) to your website.",
)

_UNSAFE_FILENAME_RE = re.compile(r"[\\/\x00-\x1f]")


class ExportError(RuntimeError):
    pass


@dataclass(frozen=True)
class ExportConfig:
    margin_mm: int = 10
    image_type: str = "jpeg"
    image_quality: float = 0.98
    scale: int = 2
    use_cors: bool = True
    page_format: str = "A4"
    orientation: str = "portrait"
    pagebreak_mode: str = "avoid-all"
    timeout_ms: int = 20000


@dataclass(frozen=True)
class ReportFile:
    filename: str
    data: bytes
    mime: str = "application/pdf"


def report_filename(brand: str) -> str:
    # Path separators and control characters would escape the output directory.
    return f"{_UNSAFE_FILENAME_RE.sub('_', brand)}_GEO_Score_Report.pdf"


def render_report_html(breakdown: ScoreBreakdown, logo_url: str = "", *, contact: str = REPORT_CONTACT) -> str:
    """Render the report region shown under the form and captured for the PDF."""
    brand = html.escape(breakdown.brand)
    logo = ""
    if logo_url:
        logo = f'{LOGO_TAG} src="{html.escape(logo_url)}" alt="Brand Logo">'

    items = "".join(
        f"<li>{html.escape(label)}: {value}/{out_of}</li>"
        for label, value, out_of in (
            ("LLM Recall", breakdown.recall, 40),
            ("Wikipedia/Wikidata Presence", breakdown.wiki, 20),
            ("Web & SEO Presence", breakdown.seo, 25),
            ("Platform Visibility (incl. schema.org)", breakdown.platforms, 15),
        )
    )
    suggestions = "".join(f"<li>{html.escape(s)}</li>" for s in SUGGESTIONS)
    footer = f'<div class="contact">{html.escape(contact)}</div>' if contact else ""

    return (
        f'<div id="{REPORT_REGION_ID}" class="report">'
        f'<div class="report-head"><h2>GEO Score for <span class="brand">{brand}</span>: '
        f"{breakdown.total}/100</h2>{logo}</div>"
        f'<ul class="breakdown">{items}</ul>'
        f'<div class="suggestions"><h3>Suggestions to Improve:</h3><ul>{suggestions}</ul></div>'
        f"{footer}"
        "</div>"
    )


REPORT_CSS = """
.report { background: #f3f4f6; padding: 24px; border-radius: 6px; max-width: 720px; }
.report-head { display: flex; align-items: center; justify-content: space-between; }
.report-head h2 { font-size: 20px; margin: 0 0 12px; }
.brand { color: #2563eb; }
.logo { height: 48px; width: 48px; border-radius: 4px; }
.suggestions { margin-top: 20px; font-size: 14px; }
.contact { margin-top: 24px; border-top: 1px solid #d1d5db; padding-top: 12px; text-align: center; font-size: 14px; }
"""


def _capture_document(report_html: str, config: ExportConfig) -> str:
    if config.use_cors:
        # Favicon is requested in CORS mode.
        report_html = report_html.replace(LOGO_TAG, f'{LOGO_TAG} crossorigin="anonymous"')
    return (
        "<!doctype html><html><head><meta charset=\"utf-8\"><style>"
        "body { font-family: Helvetica, Arial, sans-serif; margin: 0; padding: 24px; background: #fff; }"
        f"{REPORT_CSS}</style></head><body>{report_html}</body></html>"
    )


def _pdf_document(image: bytes, config: ExportConfig) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    avoid = "break-inside: avoid; page-break-inside: avoid;" if config.pagebreak_mode == "avoid-all" else ""
    return (
        "<!doctype html><html><head><meta charset=\"utf-8\"><style>"
        "html, body { margin: 0; padding: 0; }"
        f".page {{ {avoid} }}"
        ".page img { display: block; width: 100%; height: auto; }"
        "</style></head><body>"
        f'<div class="page"><img src="data:image/{config.image_type};base64,{encoded}"></div>'
        "</body></html>"
    )


async def export_report_pdf(report_html: str, brand: str, config: ExportConfig | None = None) -> ReportFile:
    """Rasterise the report region and lay it out on a PDF page.

    Mirrors an html2pdf-style pipeline: the region is captured as a JPEG at
    ``config.scale`` device pixels, then printed onto an A4 page with the
    configured margins.
    """
    config = config or ExportConfig()
    margin = f"{config.margin_mm}mm"

    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=True,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                ],
            )
            context = await browser.new_context(
                viewport={"width": 800, "height": 1100},
                device_scale_factor=config.scale,
            )
            page = await context.new_page()

            try:
                await page.set_content(_capture_document(report_html, config), wait_until="networkidle", timeout=config.timeout_ms)
                image = await page.locator(f"#{REPORT_REGION_ID}").screenshot(
                    type=config.image_type,
                    quality=round(config.image_quality * 100),
                    timeout=config.timeout_ms,
                )
                await page.set_content(_pdf_document(image, config), wait_until="load", timeout=config.timeout_ms)
                data = await page.pdf(
                    format=config.page_format,
                    landscape=config.orientation == "landscape",
                    margin={"top": margin, "right": margin, "bottom": margin, "left": margin},
                    print_background=True,
                )
            finally:
                await context.close()
                await browser.close()
    except Exception as e:
        logger.warning("PDF export failed for %r", brand, exc_info=True)
        raise ExportError(f"PDF export failed: {e}") from e

    return ReportFile(filename=report_filename(brand), data=data)


async def save_report_pdf(
    report_html: str,
    brand: str,
    output_dir: str | Path,
    config: ExportConfig | None = None,
) -> Path:
    report = await export_report_pdf(report_html, brand, config)
    path = Path(output_dir) / report.filename
    path.write_bytes(report.data)
    logger.info("saved report to %s", path)
    return path
