"""Tests for the HTTP surface, using the in-memory backend."""

import asyncio
import importlib
import shutil
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from genet_registry.transport import app
from tests.conftest import FlakyGateway, make_editor, registry_files, signed_in_auth

# The package re-exports the FastAPI instance under the module's own name
app_module = importlib.import_module("genet_registry.transport.app")

PROJECT_ROOT = Path(__file__).parent.parent


def configure(tmp_path, monkeypatch, token):
    bundled = tmp_path / "data"
    shutil.copytree(PROJECT_ROOT / "data", bundled)
    monkeypatch.setenv("GENET_REGISTRY_BACKEND", "memory")
    monkeypatch.setenv("GENET_REGISTRY_BUNDLED_DIR", str(bundled))
    monkeypatch.setenv("GENET_REGISTRY_SCHEMA_DIR", str(PROJECT_ROOT / "schemas"))
    monkeypatch.delenv("GENET_REGISTRY_SCHEMA_URL", raising=False)
    if token:
        monkeypatch.setenv("GENET_REGISTRY_TOKEN", token)
    else:
        monkeypatch.delenv("GENET_REGISTRY_TOKEN", raising=False)


@pytest.fixture
def client(tmp_path, monkeypatch):
    configure(tmp_path, monkeypatch, token="secret")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def anonymous_client(tmp_path, monkeypatch):
    configure(tmp_path, monkeypatch, token=None)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["authenticated"] is True
    assert data["registries"]["genets"] == {"schema": "ready", "data": "ready", "save": "idle"}


def test_registry_view(client):
    data = client.get("/registries/genets").json()
    assert data["id_field"] == "id"
    assert data["schema_version"] == "1.0.0"
    assert data["editable"] is True
    assert [record["id"] for record in data["records"]] == ["CRF-ACER-001"]


def test_unknown_registry(client):
    response = client.get("/registries/reefs")
    assert response.status_code == 404
    assert response.json()["error"] == "UnknownRegistryError"


def test_fields_with_options(client):
    fields = {field["name"]: field for field in client.get("/registries/genets/fields").json()}
    assert "_schemaVersion" not in fields
    assert [option["value"] for option in fields["orgId"]["options"]] == ["crf", "mote"]
    assert fields["speciesCode"]["options"][0]["label"] == "Staghorn coral (ACER)"


def test_create_record(client):
    response = client.post(
        "/registries/genets/records",
        json={"record": {"id": "MOTE-APAL-001", "orgId": "mote", "speciesCode": "APAL"}},
    )
    assert response.status_code == 201
    outcome = response.json()
    assert outcome["state"] == "committed"
    assert outcome["record"]["_schemaVersion"] == "1.0.0"

    records = client.get("/registries/genets").json()["records"]
    assert [record["id"] for record in records] == ["CRF-ACER-001", "MOTE-APAL-001"]


def test_missing_field_is_unprocessable(client):
    response = client.post(
        "/registries/genets/records",
        json={"record": {"id": "MOTE-APAL-002", "orgId": "mote"}},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "SchemaValidationError"
    assert body["field_errors"] == [{"field": "speciesCode", "reason": "missing required field"}]


def test_unknown_reference_is_unprocessable(client):
    response = client.post(
        "/registries/genets/records",
        json={"record": {"id": "X-1", "orgId": "nobody", "speciesCode": "ACER"}},
    )
    assert response.status_code == 422
    assert response.json()["field"] == "orgId"


def test_duplicate_is_a_conflict(client):
    response = client.post(
        "/registries/genets/records",
        json={"record": {"id": "CRF-ACER-001", "orgId": "crf", "speciesCode": "ACER"}},
    )
    assert response.status_code == 409
    assert response.json()["message"] == 'Item with id "CRF-ACER-001" already exists.'


def test_update_record(client):
    response = client.put(
        "/registries/genets/records/CRF-ACER-001",
        json={"record": {"id": "CRF-ACER-001", "orgId": "crf", "speciesCode": "ACER", "notes": "Tavernier nursery"}},
    )
    assert response.status_code == 200
    records = client.get("/registries/genets").json()["records"]
    assert len(records) == 1
    assert records[0]["notes"] == "Tavernier nursery"


def test_propose_record(client):
    response = client.post(
        "/registries/species/proposals",
        json={
            "record": {"code": "OFAV", "genus": "Orbicella", "specificEpithet": "faveolata"},
            "title": "Add Orbicella faveolata",
        },
    )
    assert response.status_code == 201
    outcome = response.json()
    assert outcome["state"] == "proposed"
    assert outcome["pull_request_url"] == "memory://pulls/1"

    codes = [record["code"] for record in client.get("/registries/species").json()["records"]]
    assert "OFAV" not in codes


def test_retry_without_failed_save(client):
    response = client.post("/registries/genets/retry")
    assert response.status_code == 409
    assert response.json()["error"] == "NoPendingSaveError"


def test_anonymous_is_read_only(anonymous_client):
    data = anonymous_client.get("/registries/organizations").json()
    assert data["data_state"] == "local"
    assert data["editable"] is False
    assert len(data["records"]) == 2

    response = anonymous_client.post(
        "/registries/organizations/records",
        json={"record": {"id": "fwc", "name": "Florida Fish and Wildlife"}},
    )
    assert response.status_code == 401
    assert response.json()["message"] == "You must be logged in to save."


def test_sign_in_and_out(anonymous_client):
    response = anonymous_client.post("/auth/token", json={"token": "abc"})
    assert response.status_code == 200
    assert response.json()["login"] == "local"
    assert anonymous_client.get("/auth/user").json()["login"] == "local"

    anonymous_client.delete("/auth/token")
    assert anonymous_client.get("/auth/user").json() is None


def test_fallback_registry_is_not_editable(bundled_dir, monkeypatch):
    async def scenario():
        session = await signed_in_auth()
        gateway = FlakyGateway(registry_files(), failing_reads={"data/genets.json"})
        return session, await make_editor("genets", gateway, bundled_dir, auth=session)

    session, editor = asyncio.run(scenario())
    monkeypatch.setattr(app_module, "auth", session)

    view = app_module._editor_view(editor)
    assert view["data_state"] == "failed"
    assert view["editable"] is False
