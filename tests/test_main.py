import asyncio

import pytest
from fastapi.testclient import TestClient

from geoscore_agent import main
from geoscore_agent.report import ExportError, ReportFile
from geoscore_agent.widget import GeoScoreWidget


async def _schema(url):
    return 5


async def _wiki(brand):
    return 20


@pytest.fixture
def widget():
    w = GeoScoreWidget(schema_checker=_schema, wiki_checker=_wiki)
    main.app.dependency_overrides[main.get_widget] = lambda: w
    yield w
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(widget):
    return TestClient(main.app)


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_index_serves_widget_page(client):
    res = client.get("/")
    assert res.status_code == 200
    assert "text/html" in res.headers["content-type"]
    assert 'id="calculate"' in res.text
    assert 'id="reset"' in res.text
    assert 'id="export"' in res.text


def test_initial_state(client):
    body = client.get("/state").json()
    assert body["phase"] == "idle"
    assert body["breakdown"] is None
    assert body["calculating"] is False


def test_calculate_then_repeat_is_noop(client):
    res = client.post("/calculate", json={"url": "https://www.example.com"})
    assert res.status_code == 200
    body = res.json()
    assert body["calculated"] is True
    state = body["state"]
    assert state["phase"] == "result"
    assert state["breakdown"]["brand"] == "example"
    assert state["breakdown"]["wiki"] == 20
    assert state["logo_url"].endswith("domain=www.example.com")

    again = client.post("/calculate", json={"url": "https://www.example.com"}).json()
    assert again["calculated"] is False
    assert again["state"]["breakdown"] == state["breakdown"]


def test_calculate_rejects_oversized_url(client):
    res = client.post("/calculate", json={"url": "https://example.com/" + "a" * 3000})
    assert res.status_code == 422


def test_reset(client):
    client.post("/calculate", json={"url": "https://www.example.com"})
    body = client.post("/reset").json()
    assert body == {
        "phase": "idle",
        "url": "",
        "breakdown": None,
        "logo_url": "",
        "calculating": False,
        "last_calculated_url": "",
    }
    assert client.post("/reset").json() == body


def test_report_requires_result(client):
    assert client.get("/report").status_code == 404
    assert client.get("/report.pdf").status_code == 404


def test_report_html(client):
    client.post("/calculate", json={"url": "https://www.example.com"})
    res = client.get("/report")
    assert res.status_code == 200
    assert 'id="geo-report"' in res.text
    assert "GEO Score for" in res.text


def test_report_pdf_download(client, monkeypatch):
    seen = {}

    async def fake_export(report_html, brand, config=None):
        seen["brand"] = brand
        seen["html"] = report_html
        return ReportFile(filename=f"{brand}_GEO_Score_Report.pdf", data=b"%PDF-fake")

    monkeypatch.setattr(main, "export_report_pdf", fake_export)
    client.post("/calculate", json={"url": "https://www.example.com"})

    res = client.get("/report.pdf")
    assert res.status_code == 200
    assert res.content == b"%PDF-fake"
    assert res.headers["content-type"] == "application/pdf"
    assert res.headers["content-disposition"] == (
        "attachment; filename=\"example_GEO_Score_Report.pdf\"; "
        "filename*=UTF-8''example_GEO_Score_Report.pdf"
    )
    assert seen["brand"] == "example"
    assert 'id="geo-report"' in seen["html"]


def test_report_pdf_export_failure_is_surfaced(client, monkeypatch):
    async def broken_export(report_html, brand, config=None):
        raise ExportError("PDF export failed: chromium missing")

    monkeypatch.setattr(main, "export_report_pdf", broken_export)
    client.post("/calculate", json={"url": "https://www.example.com"})

    res = client.get("/report.pdf")
    assert res.status_code == 502
    assert "chromium missing" in res.json()["detail"]


def test_content_disposition_keeps_an_ascii_filename():
    header = main._content_disposition("bücher_GEO_Score_Report.pdf")
    assert header == (
        "attachment; filename=\"b_cher_GEO_Score_Report.pdf\"; "
        "filename*=UTF-8''b%C3%BCcher_GEO_Score_Report.pdf"
    )


def test_report_pdf_busy_returns_503(client, monkeypatch):
    async def fake_export(report_html, brand, config=None):
        raise AssertionError("export must not start while the slot is taken")

    monkeypatch.setattr(main, "export_report_pdf", fake_export)
    # No free slots: the acquire times out straight away.
    monkeypatch.setattr(main, "_playwright_semaphore", asyncio.Semaphore(0))
    monkeypatch.setattr(main, "_PLAYWRIGHT_ACQUIRE_TIMEOUT_S", 0.01)
    client.post("/calculate", json={"url": "https://www.example.com"})

    res = client.get("/report.pdf")
    assert res.status_code == 503
    assert res.headers["retry-after"] == "2"


def test_widget_page_recovers_from_failed_calculation(client):
    page = client.get("/").text
    assert "if (!res.ok)" in page
