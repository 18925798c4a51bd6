"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from docrefine.api.deps import get_orchestrator, status_for
from docrefine.core.config import get_settings
from docrefine.core.errors import (
    AuthError,
    IngestionError,
    ParseError,
    PreconditionError,
    PreconditionReason,
    ProviderError,
    SettingsImportError,
    SupersededError,
    is_auth_failure,
)
from docrefine.core.schemas import ModelPricing, ProviderKind, ProviderModel
from docrefine.core.session import DocumentSession
from docrefine.main import app
from docrefine.services.workflow_orchestrator import WorkflowOrchestrator
from tests.fakes.fake_provider import ScriptedProvider

QUESTIONS_JSON = '{"questions": [{"question": "Which database?", "suggestions": ["Postgres"]}]}'


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _analyze(client, provider, markdown="# Design Doc\n\nBody") -> dict:
    provider.queue(markdown)
    response = client.post("/v1/analyze")
    assert response.status_code == 200
    return response.json()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestDocument:
    def test_upload_resets_history(self, client, provider):
        _analyze(client, provider)

        response = client.post(
            "/v1/document", files={"file": ("spec.pdf", b"%PDF-1.4 new", "application/pdf")}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["document"] == "spec.pdf"
        assert data["history_length"] == 0
        assert data["state"] == "idle"

    def test_upload_empty_file(self, client):
        response = client.post("/v1/document", files={"file": ("spec.pdf", b"", "application/pdf")})
        assert response.status_code == 400

    def test_upload_unsupported_type(self, client):
        response = client.post(
            "/v1/document",
            files={"file": ("notes.docx", b"PK\x03\x04", "application/octet-stream")},
        )
        assert response.status_code == 400
        assert "Unsupported" in response.json()["detail"]

    def test_clear_document(self, client):
        response = client.delete("/v1/document")

        assert response.status_code == 200
        assert response.json()["document"] is None

    def test_analyze_without_document(self, client):
        client.delete("/v1/document")

        response = client.post("/v1/analyze")

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "precondition"


class TestWorkflow:
    def test_full_refinement_loop(self, client, provider):
        baseline = _analyze(client, provider)
        assert baseline["content"].startswith("# Design Doc")
        assert "Analyzing document" in baseline["progress"]

        provider.queue(QUESTIONS_JSON)
        questions = client.post(f"/v1/nodes/{baseline['id']}/questions").json()["questions"]
        assert questions[0]["question"] == "Which database?"
        assert questions[0]["suggestions"] == ["Postgres"]

        answered = client.patch(
            f"/v1/nodes/{baseline['id']}/questions/{questions[0]['id']}",
            json={"answer": "Postgres 16"},
        )
        assert answered.status_code == 200
        assert answered.json()["answer"] == "Postgres 16"

        provider.queue("# Design Doc\n\nUses Postgres 16.")
        refined = client.post(
            f"/v1/nodes/{baseline['id']}/refine", json={"instructions": "Be concise"}
        ).json()
        assert refined["id"] != baseline["id"]
        assert "Postgres 16" in provider.calls[-1].user_instruction

        provider.queue("Added the database choice.")
        diff = client.post(f"/v1/nodes/{refined['id']}/diff", json={}).json()
        assert diff["diff"] == "Added the database choice."

        history = client.get("/v1/history").json()
        assert [h["id"] for h in history] == [baseline["id"], refined["id"]]
        assert history[0]["has_questions"] is True
        assert history[1]["has_diff"] is True

        artifacts = client.get(f"/v1/nodes/{baseline['id']}/artifacts").json()
        assert artifacts["answered_questions"][0]["answer"] == "Postgres 16"
        assert artifacts["instructions"] == "Be concise"

    def test_export_markdown(self, client, provider):
        node = _analyze(client, provider, "# Payment Service\n\nDetails")

        response = client.get(f"/v1/nodes/{node['id']}/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert response.headers["content-disposition"] == (
            'attachment; filename="Payment_Service.md"'
        )
        assert response.text == "# Payment Service\n\nDetails"

    def test_unknown_node(self, client):
        assert client.get("/v1/nodes/missing").status_code == 404
        assert client.post("/v1/nodes/missing/questions").status_code == 404
        assert client.post("/v1/nodes/missing/refine", json={}).status_code == 404

    def test_auth_failure_flags_credentials(self, client, provider):
        provider.queue(AuthError("API key not valid", status_hint=400, provider="gemini"))

        response = client.post("/v1/analyze")

        assert response.status_code == 401
        assert response.json()["detail"]["kind"] == "auth"
        assert client.get("/v1/status").json()["credentials_invalid"] is True

    def test_unparseable_questions(self, client, provider):
        node = _analyze(client, provider)
        provider.queue("I could not come up with any questions.")

        response = client.post(f"/v1/nodes/{node['id']}/questions")

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "parse"


class TestSettings:
    def test_update_stage(self, client):
        response = client.put("/v1/settings/stages/main", json={"user_prompt": "Keep tables"})

        assert response.status_code == 200
        assert response.json()["user_prompt"] == "Keep tables"
        assert client.get("/v1/settings/stages/main").json()["user_prompt"] == "Keep tables"

    def test_update_stage_rejects_temperature(self, client):
        response = client.put("/v1/settings/stages/main", json={"temperature": 5})
        assert response.status_code == 422

    def test_presets(self, client):
        client.put("/v1/settings/stages/qg", json={"user_prompt": "Ask three"})
        preset = client.post("/v1/settings/stages/qg/presets", json={"name": "Three"}).json()

        client.post("/v1/settings/stages/qg/presets/default/load")
        loaded = client.post(f"/v1/settings/stages/qg/presets/{preset['id']}/load").json()
        assert loaded["user_prompt"] == "Ask three"

        deleted = client.delete(f"/v1/settings/stages/qg/presets/{preset['id']}").json()
        assert deleted["presets"] == []
        assert deleted["selected_preset_id"] == "default"

    def test_blank_preset_name(self, client):
        response = client.post("/v1/settings/stages/qg/presets", json={"name": "  "})
        assert response.status_code == 400

    def test_export_import(self, client):
        client.put("/v1/settings/stages/diff", json={"user_prompt": "List changes"})
        exported = client.get("/v1/settings/export").json()
        client.put("/v1/settings/stages/diff", json={"user_prompt": "something else"})

        response = client.post("/v1/settings/import", json=exported)

        assert response.status_code == 200
        assert response.json()["diff"]["user_prompt"] == "List changes"

    def test_import_rejects_bad_version(self, client):
        response = client.post("/v1/settings/import", json={"version": 3, "settings": {}})

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "settings_import"

    def test_preferences(self, client):
        response = client.put(
            "/v1/settings/preferences",
            json={"analysis_mode": "raw-document", "thinking_enabled": True},
        )

        data = response.json()
        assert data["analysis_mode"] == "raw-document"
        assert data["thinking_enabled"] is True

    def test_switch_provider(self, client):
        response = client.put(
            "/v1/settings/provider", json={"provider": "openrouter", "api_key": "sk-or-new"}
        )

        assert response.status_code == 200
        assert response.json()["provider"] == "openrouter"
        assert response.json()["provider_configured"] is True


class TestModels:
    @pytest.fixture
    def client(self, ingestor, store):
        provider = ScriptedProvider(
            kind=ProviderKind.OPENROUTER,
            models=[
                ProviderModel(
                    id="openai/gpt-4o",
                    name="GPT-4o",
                    modality_types=["text", "image_input"],
                    pricing=ModelPricing(prompt="2.5", completion="10"),
                ),
                ProviderModel(id="meta-llama/llama-3-8b:free", name="Llama 3 (free)", modality_types=["text"]),
            ],
        )
        orchestrator = WorkflowOrchestrator(
            session=DocumentSession(),
            provider=provider,
            ingestor=ingestor,
            store=store,
            settings=get_settings(),
        )
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_catalog(self, client):
        data = client.get("/v1/models").json()

        gpt, llama = data["models"]
        assert gpt["supports_images"] is True
        assert gpt["prompt_price"] == "$2.5000 / 1M tokens"
        assert llama["is_free"] is True
        assert llama["completion_price"] == "Free"
        assert data["selected"] == "openai/gpt-4o"
        assert data["warnings"] == []

    def test_model_warnings(self, client):
        client.get("/v1/models")

        response = client.put(
            "/v1/settings/stages/main/model", json={"model": "meta-llama/llama-3-8b:free"}
        )

        warnings = response.json()["warnings"]
        assert any("does not accept image input" in w for w in warnings)
        assert any("is a free model" in w for w in warnings)


@pytest.mark.parametrize(
    "error,status",
    [
        (PreconditionError("busy", PreconditionReason.BUSY), 409),
        (PreconditionError("missing", PreconditionReason.UNKNOWN_NODE), 404),
        (PreconditionError("no doc", PreconditionReason.NO_DOCUMENT), 400),
        (AuthError("bad key"), 401),
        (ProviderError("upstream"), 502),
        (ParseError("no json"), 422),
        (IngestionError("bad pdf"), 422),
        (SupersededError("stale"), 409),
        (SettingsImportError("bad file"), 400),
    ],
)
def test_error_status_mapping(error, status):
    assert status_for(error) == status


@pytest.mark.parametrize(
    "status,message,expected",
    [
        (401, "Something went wrong", True),
        (400, "API key not valid. Please pass a valid API key.", True),
        (403, "Invalid API key provided", True),
        (403, "Request had invalid authentication credentials.", True),
        (403, "UNAUTHENTICATED: request is missing credentials", True),
        (400, "Missing 'author' field in metadata", False),
        (400, "oauth scope is not configured for this model", False),
        (429, "Rate limit exceeded", False),
        (None, None, False),
    ],
)
def test_auth_failure_detection(status, message, expected):
    assert is_auth_failure(status, message) is expected
