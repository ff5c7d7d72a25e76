"""HTTP surface tests against the ASGI app with an in-memory generation service."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from articleflow.main import app
from articleflow.services.generation import build_generation_service
from articleflow.storage.memory_repo import InMemoryBatchesRepository, InMemoryJobsRepository
from tests.fakes import KeywordTextGenerator, StubEvaluator

HEADERS = {"X-Owner-Id": "owner-1"}


@pytest.fixture
async def service(settings):
  service = build_generation_service(settings, jobs_repo=InMemoryJobsRepository(), batches_repo=InMemoryBatchesRepository(), text_generator=KeywordTextGenerator(failing={"broken"}), evaluator=StubEvaluator())
  await service.start(recover=False)
  app.state.generation_service = service
  try:
    yield service
  finally:
    await service.shutdown()
    app.state.generation_service = None


@pytest.fixture
async def client(service):
  transport = ASGITransport(app=app, raise_app_exceptions=False)
  async with AsyncClient(transport=transport, base_url="http://test") as client:
    yield client


@pytest.mark.anyio
async def test_health(client) -> None:
  response = await client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers.get("x-request-id")


@pytest.mark.anyio
async def test_create_and_poll_job(client, service) -> None:
  response = await client.post("/v1/jobs", json={"keyword": "remote onboarding", "word_count": 800}, headers=HEADERS)
  assert response.status_code == 202
  body = response.json()
  assert body["status"] == "pending"
  assert body["keyword"] == "remote onboarding"

  await service.wait_idle()
  polled = await client.get(f"/v1/jobs/{body['job_id']}", headers=HEADERS)
  assert polled.status_code == 200
  job = polled.json()
  assert job["status"] == "completed"
  assert job["progress"] == 100
  assert job["result"]["attempts"] == 1
  assert job["result"]["quality_score"] == 90.0


@pytest.mark.anyio
async def test_failed_job_reports_error_kind(client, service) -> None:
  response = await client.post("/v1/jobs", json={"keyword": "broken"}, headers=HEADERS)
  await service.wait_idle()

  job = (await client.get(f"/v1/jobs/{response.json()['job_id']}", headers=HEADERS)).json()
  assert job["status"] == "failed"
  assert job["error"]["kind"] == "GenerationProviderError"
  assert job["result"] is None


@pytest.mark.anyio
@pytest.mark.parametrize(
  "payload",
  [
    {"keyword": ""},
    {"keyword": "   "},
    {"keyword": "ok", "word_count": 100},
    {"keyword": "ok", "word_count": 6000},
    {"keyword": "ok", "unexpected": True},
  ],
)
async def test_invalid_job_payloads_are_rejected(client, payload) -> None:
  response = await client.post("/v1/jobs", json=payload, headers=HEADERS)
  assert response.status_code == 422
  assert "detail" in response.json()


@pytest.mark.anyio
async def test_missing_owner_header_is_unauthorized(client) -> None:
  response = await client.post("/v1/jobs", json={"keyword": "remote onboarding"})
  assert response.status_code == 401


@pytest.mark.anyio
async def test_unknown_or_foreign_job_is_not_found(client, service) -> None:
  assert (await client.get("/v1/jobs/missing", headers=HEADERS)).status_code == 404

  created = (await client.post("/v1/jobs", json={"keyword": "remote onboarding"}, headers=HEADERS)).json()
  await service.wait_idle()
  foreign = await client.get(f"/v1/jobs/{created['job_id']}", headers={"X-Owner-Id": "owner-2"})
  assert foreign.status_code == 404
  assert foreign.json()["detail"] == "Not Found"


@pytest.mark.anyio
async def test_cancel_finished_job_is_a_no_op(client, service) -> None:
  created = (await client.post("/v1/jobs", json={"keyword": "remote onboarding"}, headers=HEADERS)).json()
  await service.wait_idle()

  response = await client.post(f"/v1/jobs/{created['job_id']}/cancel", headers=HEADERS)
  assert response.status_code == 200
  assert response.json()["status"] == "completed"


@pytest.mark.anyio
async def test_batch_lifecycle(client, service) -> None:
  payload = {"name": "spring", "items": [{"keyword": "alpha"}, {"keyword": "broken"}, {"keyword": "gamma"}]}
  response = await client.post("/v1/batches", json=payload, headers=HEADERS)
  assert response.status_code == 202
  batch = response.json()
  assert batch["total_items"] == 3
  assert batch["status"] == "pending"

  await service.wait_idle()
  final = (await client.get(f"/v1/batches/{batch['batch_id']}", headers=HEADERS)).json()
  assert final["status"] == "failed"
  assert final["completed_count"] == 2
  assert final["failed_count"] == 1
  assert final["progress"] == 100.0

  listed = (await client.get("/v1/batches", headers=HEADERS)).json()
  assert [item["batch_id"] for item in listed["batches"]] == [batch["batch_id"]]


@pytest.mark.anyio
async def test_empty_batch_is_rejected_with_kind(client) -> None:
  response = await client.post("/v1/batches", json={"items": []}, headers=HEADERS)
  assert response.status_code == 422
  assert response.json()["error"] == "EmptyBatch"


@pytest.mark.anyio
async def test_oversized_batch_is_rejected_with_kind(client) -> None:
  items = [{"keyword": f"topic {index}"} for index in range(51)]
  response = await client.post("/v1/batches", json={"items": items}, headers=HEADERS)
  assert response.status_code == 422
  assert response.json()["error"] == "BatchTooLarge"


@pytest.mark.anyio
async def test_event_stream_for_finished_batch_sends_snapshot(client, service) -> None:
  batch = (await client.post("/v1/batches", json={"items": [{"keyword": "alpha"}]}, headers=HEADERS)).json()
  await service.wait_idle()

  response = await client.get(f"/v1/batches/{batch['batch_id']}/events", headers=HEADERS)
  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  lines = response.text.strip().splitlines()
  assert lines[0] == "event: snapshot"
  snapshot = json.loads(lines[1].removeprefix("data: "))
  assert snapshot["status"] == "completed"
  assert service.events.subscriber_count == 0


@pytest.mark.anyio
async def test_event_stream_for_unknown_batch_is_not_found(client, service) -> None:
  response = await client.get("/v1/batches/missing/events", headers=HEADERS)
  assert response.status_code == 404
  assert service.events.subscriber_count == 0


@pytest.mark.anyio
async def test_inbound_request_id_is_echoed(client) -> None:
  response = await client.get("/health", headers={"X-Request-Id": "trace-123"})
  assert response.headers["x-request-id"] == "trace-123"
  assert "server" not in response.headers
