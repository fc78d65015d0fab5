from __future__ import annotations

from .report import REPORT_CSS

# Single-page widget. All state is held server-side; the page only mirrors /state.
WIDGET_HTML = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>GEO Score Tool</title>
<style>
body { font-family: Helvetica, Arial, sans-serif; max-width: 768px; margin: 0 auto; padding: 24px; }
label { display: block; font-size: 14px; margin-bottom: 4px; }
input { width: 100%; box-sizing: border-box; padding: 8px; border: 1px solid #d1d5db; border-radius: 4px; }
.actions { display: flex; gap: 12px; margin-top: 16px; }
button { padding: 8px 16px; border: 0; border-radius: 4px; color: #fff; cursor: pointer; }
#calculate { background: #2563eb; }
#calculate:disabled { background: #9ca3af; cursor: not-allowed; }
#reset { background: #ef4444; }
#export { background: #059669; margin-top: 16px; }
#results { margin-top: 24px; }
/* report */
</style>
</head>
<body>
<h1>Generative Engine Optimization (GEO) Score Tool</h1>
<label for="url">Website URL</label>
<input id="url" type="text" placeholder="e.g., https://website.in">
<div class="actions">
  <button id="calculate">Calculate GEO Score</button>
  <button id="reset">Reset</button>
</div>
<div id="results"></div>
<button id="export" hidden>Export PDF</button>
<script>
const $ = (id) => document.getElementById(id);

async function render(state) {
  $("calculate").disabled = state.calculating;
  $("calculate").textContent = state.calculating ? "Calculating..." : "Calculate GEO Score";
  if (state.breakdown) {
    const res = await fetch("/report");
    $("results").innerHTML = res.ok ? await res.text() : "";
    $("export").hidden = !res.ok;
  } else {
    $("results").innerHTML = "";
    $("export").hidden = true;
  }
}

$("calculate").addEventListener("click", async () => {
  $("calculate").disabled = true;
  $("calculate").textContent = "Calculating...";
  const res = await fetch("/calculate", {
    method: "POST",
    headers: {"content-type": "application/json"},
    body: JSON.stringify({url: $("url").value}),
  });
  if (!res.ok) {
    $("calculate").disabled = false;
    $("calculate").textContent = "Calculate GEO Score";
    return;
  }
  const body = await res.json();
  await render(body.state);
});

$("reset").addEventListener("click", async () => {
  const res = await fetch("/reset", {method: "POST"});
  $("url").value = "";
  await render(await res.json());
});

$("export").addEventListener("click", () => { window.location.href = "/report.pdf"; });

fetch("/state").then((r) => r.json()).then((state) => { $("url").value = state.url; render(state); });
</script>
</body>
</html>
""".replace("/* report */", REPORT_CSS)
