import json

import pytest
from fastapi.testclient import TestClient

from conftest import ACTOR_EMAIL, SCENARIO_CSV, count_rows
from gestionale_import.api.dependencies.db import get_session_factory
from gestionale_import.api.dependencies.imports import get_import_runner
from gestionale_import.api.routers import health
from gestionale_import.api.routers import imports as imports_router
from gestionale_import.core.config import Settings, get_settings
from gestionale_import.main import app
from gestionale_import.services import import_runner as import_runner_module
from gestionale_import.services.import_runner import ImportRunner
from gestionale_import.services.import_state import ImportOptions, ImportStage
from gestionale_import.services.job_store import get_job_store


class FakeTask:
    def __init__(self):
        self.calls = []

    def apply_async(self, args=None, queue=None):
        self.calls.append((args, queue))


@pytest.fixture
def settings():
    return Settings(import_actor_email=ACTOR_EMAIL)


@pytest.fixture
def client(session_factory, job_store, settings):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(client, content, options=None, filename="clienti.csv"):
    data = {} if options is None else {"options": options}
    return client.post(
        "/api/import/upload",
        files={"file": (filename, content.encode("utf-8"), "text/csv")},
        data=data,
    )


def test_supported_types(client):
    response = client.get("/api/import/supported-types")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {"types": ["cliente_privato", "cliente_azienda", "contratto_luce", "contratto_gas"]},
    }


def test_upload_runs_the_job_and_exposes_progress_and_result(client, provisioned_engine):
    response = _upload(client, SCENARIO_CSV, json.dumps({"batchSize": 10}))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["message"] == "Import avviato"
    assert body["data"]["totalRows"] == 1
    import_id = body["data"]["importId"]

    progress = client.get(f"/api/import/progress/{import_id}").json()
    assert progress["success"] is True
    assert progress["data"]["stage"] == "completed"
    assert progress["data"]["progress"] == 100
    assert progress["data"]["startedAt"]
    assert progress["data"]["completedAt"]

    result = client.get(f"/api/import/result/{import_id}").json()["data"]
    assert result["success"] is True
    assert result["fileName"] == "clienti.csv"
    assert result["totalRows"] == 1
    assert result["processed"] == 1
    assert result["errors"] == []
    assert result["inserted"] == {"clienti_privati": 1, "contratti_luce": 1, "contratti_gas": 0}
    assert count_rows(provisioned_engine, "contratti_luce") == 1


def test_row_errors_still_answer_success(client, monkeypatch):
    def reject(*args, **kwargs):
        raise ValueError("riga non valida")

    monkeypatch.setattr(import_runner_module, "insert_customer", reject)

    response = _upload(client, "codice_fiscale,nome\nRSSMRA80A01H501U,Mario\n")

    assert response.status_code == 200
    result = client.get(f"/api/import/result/{response.json()['data']['importId']}").json()["data"]
    assert result["success"] is False
    assert result["errors"] == [{"row": 1, "error": "riga non valida"}]


def test_upload_dry_run_option(client, provisioned_engine):
    response = _upload(client, SCENARIO_CSV, json.dumps({"dryRun": True}))

    import_id = response.json()["data"]["importId"]
    result = client.get(f"/api/import/result/{import_id}").json()["data"]
    assert result["inserted"]["clienti_privati"] == 1
    assert count_rows(provisioned_engine, "clienti_privati") == 0


def test_upload_without_file_is_rejected(client):
    response = client.post("/api/import/upload", data={"options": "{}"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "File CSV mancante."}


def test_upload_empty_file_is_rejected(client):
    response = _upload(client, "")

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.parametrize("options", ["{not json", "[1, 2]", '{"batchSize": "many"}'])
def test_upload_with_invalid_options_is_rejected(client, options):
    response = _upload(client, SCENARIO_CSV, options)

    assert response.status_code == 400
    assert response.json()["message"].startswith("Opzioni non valide")


def test_job_failure_answers_500(client, session_factory, job_store):
    class ExplodingRunner(ImportRunner):
        def run(self, job_id, content):
            raise RuntimeError("database unreachable")

    app.dependency_overrides[get_import_runner] = lambda: ExplodingRunner(session_factory, job_store)

    response = _upload(client, SCENARIO_CSV)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "database unreachable"}


def test_unknown_import_is_404(client):
    for path in ("/api/import/progress/nope", "/api/import/result/nope"):
        response = client.get(path)
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Import non trovato"}

    assert client.post("/api/import/cancel/nope").status_code == 404


def test_cancel_running_import(client, job_store, runner):
    job = runner.create_job("clienti.csv", ImportOptions())

    response = client.post(f"/api/import/cancel/{job.id}")

    assert response.status_code == 200
    assert response.json()["data"] == {"importId": job.id, "cancelRequested": True}
    assert job_store.is_cancel_requested(job.id)


def test_cancel_finished_import_conflicts(client):
    import_id = _upload(client, SCENARIO_CSV).json()["data"]["importId"]

    response = client.post(f"/api/import/cancel/{import_id}")

    assert response.status_code == 409


def test_background_mode_stages_and_enqueues(client, job_store, monkeypatch):
    background = Settings(import_actor_email=ACTOR_EMAIL, import_run_mode="background", job_store_backend="redis")
    app.dependency_overrides[get_settings] = lambda: background
    staged = {}
    task = FakeTask()

    def stage(job_id, content):
        staged[job_id] = content
        return True

    monkeypatch.setattr(imports_router, "store_upload", stage)
    monkeypatch.setattr(imports_router, "run_import_task", task)

    response = _upload(client, SCENARIO_CSV)

    body = response.json()["data"]
    assert response.status_code == 200
    assert body["message"] == "Import in coda"
    assert body["totalRows"] == 1
    assert staged == {body["importId"]: SCENARIO_CSV.encode("utf-8")}
    assert task.calls == [((body["importId"],), "imports")]
    assert job_store.get(body["importId"]).progress.stage == ImportStage.QUEUED


def test_background_mode_staging_failure_fails_the_job(client, job_store, monkeypatch):
    background = Settings(import_actor_email=ACTOR_EMAIL, import_run_mode="background", job_store_backend="redis")
    app.dependency_overrides[get_settings] = lambda: background
    monkeypatch.setattr(imports_router, "store_upload", lambda job_id, content: False)

    response = _upload(client, SCENARIO_CSV)

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_health_live(client):
    assert client.get("/health/live").json()["status"] == "ok"


def test_health_ready_checks_database(client, provisioned_engine, monkeypatch):
    monkeypatch.setattr(health, "engine", provisioned_engine)

    body = client.get("/health/ready").json()

    assert body["status"] == "ok"
    assert body["checks"]["database"]["status"] == "healthy"
    assert "redis" not in body["checks"]
