"""Shared fixtures for formcraft tests."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from formcraft.app import create_app
from formcraft.config import Settings
from formcraft.registry import FieldTypeRegistry
from formcraft.schema import FormDefinition, validate_form
from formcraft.storage import init_storage

OWNER = "owner-1"
OWNER_HEADERS = {"X-User-Id": OWNER}


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingMailSender:
    """MailSender that keeps every message instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, text: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "text": text})
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("JSON_PATH", str(tmp_path / "jsonstore.json"))
    monkeypatch.setenv("AUTH_MODE", "header")
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)
    monkeypatch.delenv("MAIL_API_URL", raising=False)
    monkeypatch.delenv("FREE_FORM_LIMIT", raising=False)
    monkeypatch.delenv("FREE_SUBMISSION_LIMIT", raising=False)
    return Settings()


@pytest.fixture(params=["sqlite", "json"])
def storage(request, settings):
    settings.storage_backend = request.param
    store = init_storage(settings)
    yield store
    store.close()


@pytest.fixture
def registry() -> FieldTypeRegistry:
    return FieldTypeRegistry()


@pytest.fixture
def mail_sender() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def app(settings, storage, mail_sender):
    return create_app(settings, storage=storage, mail_sender=mail_sender)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_form(
    registry: FieldTypeRegistry,
    fields: list[dict[str, Any]],
    **document: Any,
) -> FormDefinition:
    """Validate an editor document into a published form owned by ``OWNER``."""
    candidate = {"title": "Test form", "isPublished": True, "fields": fields, **document}
    return validate_form(candidate, registry, form_id="form-1", owner_id=OWNER, slug="test-form")


def create_form(client: TestClient, headers: dict[str, str] | None = None, **document: Any) -> dict[str, Any]:
    body = {"title": "Contact us", "fields": [], **document}
    response = client.post("/api/forms", json=body, headers=headers or OWNER_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def publish(client: TestClient, form: dict[str, Any], headers: dict[str, str] | None = None) -> dict[str, Any]:
    response = client.post(f"/api/forms/{form['id']}/publish", headers=headers or OWNER_HEADERS)
    assert response.status_code == 200, response.text
    return response.json()
