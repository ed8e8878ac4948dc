"""HTTP surface: status codes, error bodies, rate-limit headers."""

import time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from studio.errors import ProviderError
from studio.main import app
from studio.models import Job, JobStatus, ProviderStatus
from studio.poller import StatusPoller
from studio.provider_factory import ProviderFactory
from studio.rate_limiter import MemoryRateLimitStore, RateLimiter
from studio.services import Services, set_services

VIDEO_URL = "https://cdn.example.com/abc123.mp4"


@pytest.fixture
def luma(make_provider):
    return make_provider(name="luma", job_id="abc123")


@pytest.fixture
def services(ledger, luma, make_provider):
    providers = ProviderFactory({"luma": luma, "replicate": make_provider(name="replicate", job_id="pika-1")})
    services = Services(
        ledger=ledger,
        providers=providers,
        rate_limiter=RateLimiter(MemoryRateLimitStore(), window_ms=60_000),
        poller=StatusPoller(ledger, providers, interval=60),
    )
    services.batches.spacing = 0
    set_services(services)
    yield services
    set_services(None)


@pytest.fixture
def client(services):
    with TestClient(app) as client:
        yield client


class TestCreate:
    def test_create_returns_provider_id(self, client, ledger):
        response = client.post("/api/luma/create", json={"prompt": "A cat playing piano"})

        assert response.status_code == 200
        assert response.json() == {"id": "abc123"}
        assert ledger.get("abc123").status in (JobStatus.QUEUED, JobStatus.PROCESSING)

    def test_invalid_prompt_is_400(self, client, luma):
        response = client.post("/api/luma/create", json={"prompt": "cat"})

        assert response.status_code == 400
        assert "too short" in response.json()["error"]
        luma.create.assert_not_called()

    def test_provider_error_is_502(self, client, luma):
        luma.create.side_effect = ProviderError("luma API error (500): upstream down", provider="luma")

        response = client.post("/api/luma/create", json={"prompt": "A cat playing piano"})

        assert response.status_code == 502
        assert response.json() == {"error": "luma API error (500): upstream down"}

    def test_sixth_create_is_rate_limited(self, client):
        headers = {"X-Forwarded-For": "198.51.100.23"}
        statuses = [
            client.post("/api/luma/create", json={"prompt": "A cat playing piano"}, headers=headers).status_code
            for _ in range(5)
        ]
        limited = client.post("/api/luma/create", json={"prompt": "A cat playing piano"}, headers=headers)

        assert statuses == [200] * 5
        assert limited.status_code == 429
        body = limited.json()
        assert body["error"] == "Rate limit exceeded. Please try again later."
        assert body["resetTime"] > time.time() * 1000
        assert limited.headers["X-RateLimit-Remaining"] == "0"
        assert limited.headers["X-RateLimit-Reset"].endswith("Z")

        other_client = client.post(
            "/api/luma/create", json={"prompt": "A cat playing piano"}, headers={"X-Forwarded-For": "192.0.2.1"}
        )
        assert other_client.status_code == 200


class TestStatus:
    def test_status_reconciles_ledger(self, client, ledger, luma):
        ledger.insert(Job(id="abc123", prompt="A cat playing piano"))
        luma.fetch_status.return_value = ProviderStatus(status=JobStatus.COMPLETED, video_url=VIDEO_URL)

        response = client.get("/api/luma/status", params={"id": "abc123"})

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["video_url"] == VIDEO_URL
        assert ledger.get("abc123").status == JobStatus.COMPLETED

    def test_terminal_job_not_fetched_again(self, client, ledger, luma):
        ledger.insert(Job(id="abc123", prompt="A cat playing piano", status=JobStatus.COMPLETED, result_url=VIDEO_URL))

        response = client.get("/api/luma/status", params={"id": "abc123"})

        assert response.json()["video_url"] == VIDEO_URL
        luma.fetch_status.assert_not_called()

    def test_missing_id_is_400(self, client):
        response = client.get("/api/luma/status")
        assert response.status_code == 400
        assert response.json() == {"error": "Generation ID is required"}

    def test_unknown_id_is_read_from_provider(self, client, luma):
        response = client.get("/api/luma/status", params={"id": "elsewhere-1"})

        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        luma.fetch_status.assert_awaited_once_with("elsewhere-1")

    def test_failed_status_check_returns_last_known_state(self, client, ledger, luma):
        ledger.insert(Job(id="abc123", prompt="A cat playing piano", status=JobStatus.PROCESSING, progress=40))
        luma.fetch_status.side_effect = ProviderError("luma API error (503): unavailable", provider="luma")

        response = client.get("/api/luma/status", params={"id": "abc123"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processing"
        assert body["progress"] == 40
        assert body["poll_error"].startswith("Polling failed")


class TestJobs:
    def test_list_get_delete(self, client, ledger):
        ledger.insert(Job(id="abc123", prompt="A cat playing piano"))

        assert [j["id"] for j in client.get("/jobs").json()] == ["abc123"]
        assert client.get("/jobs/abc123").json()["status"] == "queued"
        assert client.delete("/jobs/abc123").json() == {"id": "abc123", "deleted": True}
        assert client.get("/jobs/abc123").status_code == 404
        assert client.delete("/jobs/abc123").status_code == 404

    def test_cancel_untracked_job(self, client):
        assert client.post("/jobs/abc123/cancel").json() == {"id": "abc123", "cancelled": False}


class TestSpeech:
    def test_returns_mp3(self, client):
        with patch("studio.routes.synthesize_speech", new=AsyncMock(return_value=b"ID3fake-mp3")) as synth:
            response = client.post("/api/speech", json={"text": "Hello there", "voiceStyle": "dramatic"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == b"ID3fake-mp3"
        synth.assert_awaited_once_with("Hello there", "dramatic")

    def test_empty_text_is_400(self, client):
        response = client.post("/api/speech", json={"text": ""})
        assert response.status_code == 400
        assert response.json() == {"error": "Text is required"}


class TestBatch:
    def test_batch_lifecycle(self, client, luma):
        luma.create.side_effect = ["clip-1", "clip-2"]

        created = client.post("/api/batch", json={"theme": "never give up", "count": 2})
        assert created.status_code == 200
        batch = created.json()
        assert batch["submitted"] == 2
        assert batch["target_count"] == 2
        assert [j["id"] for j in batch["jobs"]] == ["clip-1", "clip-2"]

        assert client.get(f"/api/batch/{batch['id']}").status_code == 200
        combine = client.get(f"/api/batch/{batch['id']}/combine")
        assert combine.status_code == 400
        assert combine.json() == {"error": "Batch is still processing"}

    def test_unknown_batch_is_404(self, client):
        assert client.get("/api/batch/batch-missing").status_code == 404


class TestPipelineRoutes:
    def test_kind_specific_fields_required(self, client):
        response = client.post("/api/video/create", json={"mode": "movie_scene", "prompt": "A knight walking through fog"})
        assert response.status_code == 400
        assert "imageUrl" in response.json()["error"]

    def test_pipeline_started_and_visible(self, client):
        created = client.post("/api/video/create", json={"prompt": "A cat playing piano"})
        assert created.status_code == 200
        run_id = created.json()["id"]
        assert run_id.startswith("pipe-")

        status = client.get("/api/video/status", params={"id": run_id})
        assert status.status_code == 200
        assert status.json()["kind"] == "text_to_video"

    def test_unknown_generation_is_404(self, client):
        assert client.get("/api/video/status", params={"id": "nope"}).status_code == 404


class TestOps:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["ledger"] == "MemoryJobLedger"
        assert body["rate_limit_store"] == "MemoryRateLimitStore"

    def test_metrics_count_requests(self, client):
        client.post("/api/luma/create", json={"prompt": "A cat playing piano"})
        snapshot = client.get("/metrics").json()
        assert snapshot["counters"]["requests.create"] == 1
        assert snapshot["counters"]["jobs.submitted"] == 1
