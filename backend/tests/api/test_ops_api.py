import pytest


@pytest.mark.asyncio
async def test_health_reports_dependencies(api_client):
	resp = await api_client.get("/health")

	assert resp.status_code == 200
	body = resp.json()
	assert body["status"] == "ok"
	assert body["redis"] == {"ok": True}
	assert body["postgres"]["ok"] is False


@pytest.mark.asyncio
async def test_metrics_exposes_prometheus_text(api_client):
	await api_client.get("/health")

	resp = await api_client.get("/metrics")

	assert resp.status_code == 200
	assert resp.headers["content-type"].startswith("text/plain")
	assert "tribelife_http_requests_total" in resp.text
