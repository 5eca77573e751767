import base64
import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from static_deployer.core.config import Settings
from static_deployer.core.exceptions import MissingFileError, UploadTooLargeError, WriteFailedError
from static_deployer.deploy.orchestrator import DeployOrchestrator
from static_deployer.main import create_app


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class FakeClock:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1000)


@pytest.fixture
def make_app(settings: Settings, clock: FakeClock):
    def _make(**overrides):
        s = settings.model_copy(update=overrides)
        orchestrator = DeployOrchestrator.from_settings(s)
        orchestrator.clock = clock
        return create_app(s, orchestrator)
    return _make


DEMO = {"name": "demo", "fileData": b64(b"<h1>hi</h1>"), "fileName": "demo.html"}


def test_deploy_success_then_cooldown(make_app, settings: Settings, clock: FakeClock):
    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json=DEMO)
        assert r.status_code == 200, r.text
        assert r.json() == {
            "success": True,
            "url": "https://demo.vercel.app",
            "remainingQuota": 49,
            "message": "Deploy succeeded!",
        }
        assert "X-Request-ID" in r.headers

        persisted = json.loads(Path(settings.quota_file).read_text())
        assert persisted == {"quotaUsed": 1, "lastDeployTimestamp": 1000}

        clock.now = 1050
        r2 = client.post("/api/deploy", json=DEMO)
        assert r2.status_code == 429
        assert r2.json() == {
            "error": "Wait 250 seconds before deploying again",
            "remainingQuota": 49,
            "cooldown": True,
            "remainingSeconds": 250,
        }

    # Pending cleanup is flushed on shutdown
    assert not (Path(settings.staging_dir) / "demo").exists()


def test_quota_exhausted(make_app, settings: Settings, clock: FakeClock):
    Path(settings.quota_file).write_text(json.dumps({"quotaUsed": 50, "lastDeployTimestamp": 500}))
    clock.now = 2000

    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json=DEMO)

    assert r.status_code == 429
    assert r.json() == {"error": "Daily quota exhausted", "remainingQuota": 0, "cooldown": True}


@pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "quota-check"}])
def test_status_probe(make_app, body):
    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json=body)

    assert r.status_code == 200
    assert r.json() == {"remainingQuota": 50, "cooldown": False, "remainingSeconds": 0}


def test_status_probe_during_cooldown(make_app, clock: FakeClock):
    with TestClient(make_app()) as client:
        assert client.post("/api/deploy", json=DEMO).status_code == 200
        clock.now = 1100
        r = client.post("/api/deploy", json={"name": "quota-check"})

    assert r.status_code == 200
    assert r.json() == {"remainingQuota": 49, "cooldown": True, "remainingSeconds": 200}


def test_missing_file(make_app):
    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json={"name": "demo", "fileName": "a.html"})

    assert r.status_code == 400
    assert r.json() == {"error": "File data is required"}


def test_staging_failure(make_app, settings: Settings):
    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json={"name": "demo", "fileData": "***", "fileName": "a.html"})

    assert r.status_code == 500
    body = r.json()
    assert body["error"].startswith("Deploy failed: ")
    assert body["remainingQuota"] == 50
    assert not Path(settings.quota_file).exists()


def test_upload_too_large(make_app):
    with TestClient(make_app(max_upload_size_mb=1)) as client:
        r = client.post(
            "/api/deploy",
            json={"name": "big", "fileData": b64(b"x" * (2 * 1024 * 1024)), "fileName": "a.txt"},
        )

    assert r.status_code == 413
    assert "error" in r.json()


def test_invalid_body_is_validation_error(make_app):
    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json={"name": "demo", "fileData": 123, "fileName": ["a"]})

    assert r.status_code == 422
    assert r.json()["error"] == "Invalid request data"


def test_corrupt_quota_file_falls_back_to_defaults(make_app, settings: Settings):
    Path(settings.quota_file).write_text("{broken")

    with TestClient(make_app()) as client:
        r = client.post("/api/deploy", json={"name": "quota-check"})

    assert r.json()["remainingQuota"] == 50


def test_corrupt_quota_file_fails_startup_when_strict(make_app, settings: Settings):
    from static_deployer.core.exceptions import StateLoadError

    Path(settings.quota_file).write_text("{broken")

    with pytest.raises(StateLoadError):
        with TestClient(make_app(strict_persistence=True)):
            pass


def test_health(make_app):
    with TestClient(make_app()) as client:
        r = client.get("/health")

    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_metrics_endpoint(make_app):
    with TestClient(make_app(metrics_enabled=True)) as client:
        client.get("/health")
        r = client.get("/metrics/")

    assert r.status_code == 200
    assert "static_deployer_http_requests_total" in r.text


def test_metrics_scrape_path_with_public_dir(make_app, tmp_path: Path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html>deployer</html>")

    with TestClient(make_app(metrics_enabled=True, public_dir=str(public))) as client:
        client.get("/health")
        r = client.get("/metrics", follow_redirects=False)

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "static_deployer_http_requests_total" in r.text


def test_public_dir_spa_fallback(make_app, tmp_path: Path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html>deployer</html>")
    (public / "app.js").write_text("console.log('app')")

    with TestClient(make_app(public_dir=str(public))) as client:
        assert client.get("/").text == "<html>deployer</html>"
        assert client.get("/app.js").text == "console.log('app')"
        assert client.get("/some/client/route").text == "<html>deployer</html>"
        assert client.get("/api/unknown").status_code == 404
        assert client.get("/health").json()["status"] == "healthy"


@pytest.mark.parametrize("error, status", [
    (UploadTooLargeError("Upload exceeds 4 bytes"), 413),
    (MissingFileError(), 400),
    (WriteFailedError("disk full"), 500),
])
def test_escaped_deployer_errors_map_to_status(make_app, error, status):
    app = make_app()

    @app.get("/boom")
    async def boom():
        raise error

    with TestClient(app) as client:
        r = client.get("/boom")

    assert r.status_code == status
    assert r.json() == {"error": str(error), "code": error.code}
