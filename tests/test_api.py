"""End-to-end flows through the HTTP API."""

from datetime import datetime, timedelta, timezone

from conftest import OWNER, OWNER_HEADERS, create_form, publish
from fastapi.testclient import TestClient

from formcraft.app import create_app

PRO_HEADERS = {"X-User-Id": "pro-owner", "X-User-Email": "pro@example.com"}


def _submit(client, form, payload):
    return client.post(f"/api/public/forms/{form['slug']}/submit", json=payload)


# ---------------------------------------------------------------------------
# System and auth
# ---------------------------------------------------------------------------


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_owner_routes_require_identity(client):
    response = client.get("/api/forms")
    assert response.status_code == 401
    assert response.json() == {"message": "Authentication required"}


def test_non_object_body_is_rejected(client):
    response = client.post("/api/forms", json=["not", "an", "object"], headers=OWNER_HEADERS)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request body"

    response = client.post("/api/forms", content=b"{broken", headers={**OWNER_HEADERS, "Content-Type": "application/json"})
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Owner form lifecycle
# ---------------------------------------------------------------------------


def test_create_form_defaults(client):
    form = create_form(client, title="Contact Us!", isPublished=True)
    assert form["slug"] == "contact-us"
    assert form["ownerId"] == OWNER
    assert form["isPublished"] is False
    assert form["settings"]["submitButtonText"] == "Submit"
    assert form["settings"]["successMessage"] == "Form submitted successfully!"


def test_colliding_titles_get_distinct_slugs(client):
    first = create_form(client, title="Contact us")
    second = create_form(client, title="Contact us")
    assert first["slug"] == "contact-us"
    assert second["slug"].startswith("contact-us-")
    assert len(second["slug"]) == len("contact-us-") + 6


def test_invalid_definition_returns_field_errors(client):
    body = {"title": "Survey", "fields": [{"id": "pick", "type": "select", "label": "Pick one"}]}
    response = client.post("/api/forms", json=body, headers=OWNER_HEADERS)
    assert response.status_code == 400
    assert response.json() == {
        "message": "Form definition is invalid",
        "errors": [{"fieldId": "pick", "message": "At least one option is required"}],
    }
    assert client.get("/api/forms", headers=OWNER_HEADERS).json() == []


def test_free_owner_cannot_create_a_fourth_form(client):
    for index in range(3):
        create_form(client, title=f"Form {index}")

    response = client.post("/api/forms", json={"title": "One more"}, headers=OWNER_HEADERS)
    assert response.status_code == 403
    assert response.json() == {
        "message": "Free plan users are limited to 3 forms. Please upgrade to continue.",
        "limitReached": True,
    }
    assert len(client.get("/api/forms", headers=OWNER_HEADERS).json()) == 3


def test_quota_is_checked_before_validation(client):
    for index in range(3):
        create_form(client, title=f"Form {index}")
    response = client.post("/api/forms", json={"title": ""}, headers=OWNER_HEADERS)
    assert response.status_code == 403


def test_pro_owner_has_no_form_limit(client, storage):
    storage.users.set_plan("pro-owner", "pro")
    for index in range(5):
        create_form(client, headers=PRO_HEADERS, title=f"Form {index}")
    assert len(client.get("/api/forms", headers=PRO_HEADERS).json()) == 5


def test_forms_are_scoped_to_their_owner(client):
    form = create_form(client)
    other = {"X-User-Id": "intruder"}
    assert client.get(f"/api/forms/{form['id']}", headers=other).status_code == 404
    assert client.delete(f"/api/forms/{form['id']}", headers=other).status_code == 404
    assert client.get("/api/forms", headers=other).json() == []
    assert client.get(f"/api/forms/{form['id']}", headers=OWNER_HEADERS).status_code == 200


def test_update_merges_and_preserves_slug(client):
    form = create_form(
        client,
        title="Feedback",
        fields=[{"id": "name", "type": "text", "label": "Name"}],
        settings={"successMessage": "Cheers"},
    )
    response = client.put(
        f"/api/forms/{form['id']}",
        json={"title": "Product feedback", "settings": {"theme": "dark"}},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["title"] == "Product feedback"
    assert updated["slug"] == form["slug"]
    assert updated["createdAt"] == form["createdAt"]
    assert [item["id"] for item in updated["fields"]] == ["name"]
    assert updated["settings"]["theme"] == "dark"
    assert updated["settings"]["successMessage"] == "Cheers"


def test_update_is_fully_revalidated(client):
    form = create_form(client, fields=[{"id": "qty", "type": "number"}])
    response = client.put(
        f"/api/forms/{form['id']}",
        json={"fields": [{"id": "qty", "type": "number", "min": 5, "max": 1}]},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["errors"] == [{"fieldId": "qty", "message": "min must be less than or equal to max"}]
    stored = client.get(f"/api/forms/{form['id']}", headers=OWNER_HEADERS).json()
    assert "min" not in stored["fields"][0]


def test_delete_cascades_and_hides_form(client, storage):
    form = publish(client, create_form(client, fields=[{"id": "name", "type": "text"}]))
    assert _submit(client, form, {"name": "Ada"}).status_code == 201

    response = client.delete(f"/api/forms/{form['id']}", headers=OWNER_HEADERS)
    assert response.status_code == 204
    assert client.get(f"/api/forms/{form['id']}", headers=OWNER_HEADERS).status_code == 404
    assert client.get(f"/api/public/forms/{form['slug']}").status_code == 404
    assert storage.submissions.count_submissions(form["id"]) == 0
    assert storage.analytics.get_counters(form["id"]) is None


# ---------------------------------------------------------------------------
# Public rendering
# ---------------------------------------------------------------------------


def test_unpublished_form_is_not_public(client):
    form = create_form(client)
    assert client.get(f"/api/public/forms/{form['slug']}").status_code == 404
    publish(client, form)
    assert client.get(f"/api/public/forms/{form['slug']}").status_code == 200
    client.post(f"/api/forms/{form['id']}/unpublish", headers=OWNER_HEADERS)
    response = _submit(client, form, {})
    assert response.status_code == 404
    assert response.json() == {"message": "Form not found"}


def test_public_view_uses_effective_settings_and_counts_views(client, storage):
    form = publish(
        client,
        create_form(client, settings={"theme": "ocean", "enableRedirect": True, "redirectUrl": "https://x.test"}),
    )
    response = client.get(f"/api/public/forms/{form['slug']}")
    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"id", "title", "description", "fields", "settings"}
    assert body["settings"]["theme"] == "light"
    assert body["settings"]["enableRedirect"] is False
    assert "redirectUrl" not in body["settings"]

    client.get(f"/api/public/forms/{form['slug']}")
    assert storage.analytics.get_counters(form["id"])["views"] == 2
    stored = client.get(f"/api/forms/{form['id']}", headers=OWNER_HEADERS).json()
    assert stored["settings"]["theme"] == "ocean"


def test_unknown_slug_is_not_found(client):
    assert client.get("/api/public/forms/nothing-here").status_code == 404
    assert client.post("/api/public/forms/nothing-here/submit", json={}).status_code == 404


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


def test_invalid_email_submission(client):
    form = publish(client, create_form(client, fields=[{"id": "mail", "type": "email", "required": True}]))
    response = _submit(client, form, {"mail": "not-an-email"})
    assert response.status_code == 400
    assert response.json()["errors"] == [{"fieldId": "mail", "message": "Please enter a valid email address"}]


def test_number_bounds_submission(client):
    form = publish(client, create_form(client, fields=[{"id": "qty", "type": "number", "min": 1, "max": 10}]))

    response = _submit(client, form, {"qty": 15})
    assert response.status_code == 400
    assert response.json()["errors"] == [{"fieldId": "qty", "message": "Value must be at most 10"}]

    response = _submit(client, form, {"qty": 5})
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Form submitted successfully!"
    assert "redirectUrl" not in body

    listed = client.get(f"/api/forms/{form['id']}/submissions", headers=OWNER_HEADERS).json()
    assert [item["id"] for item in listed] == [body["submissionId"]]
    assert listed[0]["data"] == {"qty": 5}
    assert listed[0]["ipAddress"] == "testclient"
    assert listed[0]["userAgent"] == "testclient"


def test_submission_cap_blocks_before_field_checks(client, storage):
    form = publish(client, create_form(client, fields=[{"id": "mail", "type": "email", "required": True}]))
    storage.analytics.increment(form["id"], submissions=100)

    response = _submit(client, form, {"mail": "garbage"})
    assert response.status_code == 403
    assert response.json() == {
        "message": "This form has reached the maximum submissions limit for the free plan",
        "limitReached": True,
    }
    assert storage.submissions.count_submissions(form["id"]) == 0


def test_expired_form_rejects_submissions(client):
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
    form = publish(client, create_form(client, expiresAt=past, fields=[{"id": "name", "type": "text"}]))
    response = _submit(client, form, {"name": "Ada"})
    assert response.status_code == 403
    assert response.json() == {"message": "This form has expired"}
    assert client.get(f"/api/public/forms/{form['slug']}").status_code == 403


def test_pro_owner_gets_redirect_and_notification(client, storage, mail_sender):
    storage.users.set_plan("pro-owner", "pro")
    form = create_form(
        client,
        headers=PRO_HEADERS,
        title="Orders",
        fields=[{"id": "mail", "type": "email", "label": "Email"}],
        settings={
            "successMessage": "Order received",
            "enableRedirect": True,
            "redirectUrl": "https://shop.test/thanks",
            "enableEmailNotifications": True,
            "requireEmail": True,
        },
    )
    publish(client, form, headers=PRO_HEADERS)

    rejected = _submit(client, form, {})
    assert rejected.status_code == 400
    assert rejected.json()["errors"] == [{"fieldId": "mail", "message": "This field is required"}]

    response = _submit(client, form, {"mail": "buyer@example.com"})
    assert response.status_code == 201
    assert response.json()["message"] == "Order received"
    assert response.json()["redirectUrl"] == "https://shop.test/thanks"
    assert mail_sender.sent == [
        {
            "to": "pro@example.com",
            "subject": "New submission: Orders",
            "text": 'A new response was submitted to "Orders".\n\nEmail: buyer@example.com',
        }
    ]


def test_free_owner_settings_are_not_honored(client, mail_sender):
    headers = {"X-User-Id": OWNER, "X-User-Email": "owner@example.com"}
    form = create_form(
        client,
        headers=headers,
        fields=[{"id": "mail", "type": "email"}],
        settings={"enableEmailNotifications": True, "requireEmail": True, "enableRedirect": True, "redirectUrl": "https://x.test"},
    )
    publish(client, form, headers=headers)
    response = _submit(client, form, {})
    assert response.status_code == 201
    assert "redirectUrl" not in response.json()
    assert mail_sender.sent == []


def test_analytics_report(client):
    form = publish(
        client,
        create_form(client, fields=[{"id": "name", "type": "text", "required": True}, {"id": "note", "type": "text"}]),
    )
    for _ in range(4):
        client.get(f"/api/public/forms/{form['slug']}")
    _submit(client, form, {"name": "Ada", "note": "hi"})
    _submit(client, form, {"name": "Grace"})
    _submit(client, form, {"name": ""})

    report = client.get(f"/api/forms/{form['id']}/analytics", headers=OWNER_HEADERS).json()
    assert report["analytics"]["views"] == 4
    assert report["analytics"]["submissions"] == 2
    assert report["analytics"]["conversionRate"] == 50.0
    assert len(report["submissions"]) == 2
    assert report["fieldCompletion"] == {"name": 100.0, "note": 50.0}

    limited = client.get(f"/api/forms/{form['id']}/analytics?limit=1", headers=OWNER_HEADERS).json()
    assert len(limited["submissions"]) == 1


def test_analytics_for_untouched_form_is_zero(client):
    form = create_form(client)
    report = client.get(f"/api/forms/{form['id']}/analytics", headers=OWNER_HEADERS).json()
    assert report["analytics"]["views"] == 0
    assert report["analytics"]["conversionRate"] == 0.0
    assert report["submissions"] == []
    assert report["fieldCompletion"] == {}


def test_failed_notification_keeps_submission_accepted(settings, storage):
    class BrokenMailSender:
        async def send(self, to, subject, text):
            raise RuntimeError("relay down")

    storage.users.set_plan("pro-owner", "pro")
    app = create_app(settings, storage=storage, mail_sender=BrokenMailSender())
    with TestClient(app) as client:
        form = create_form(
            client,
            headers=PRO_HEADERS,
            fields=[{"id": "name", "type": "text"}],
            settings={"enableEmailNotifications": True},
        )
        publish(client, form, headers=PRO_HEADERS)
        response = _submit(client, form, {"name": "Ada"})

    assert response.status_code == 201
    assert storage.submissions.count_submissions(form["id"]) == 1
    assert storage.analytics.get_counters(form["id"])["submissions"] == 1


def test_analytics_reports_fields_nobody_filled(client):
    form = publish(
        client,
        create_form(client, fields=[{"id": "name", "type": "text"}, {"id": "phone", "type": "tel"}]),
    )
    _submit(client, form, {"name": "Ada"})
    _submit(client, form, {"name": "Grace", "phone": ""})

    report = client.get(f"/api/forms/{form['id']}/analytics", headers=OWNER_HEADERS).json()
    assert report["fieldCompletion"] == {"name": 100.0, "phone": 0.0}
