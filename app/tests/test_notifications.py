import json

import httpx
import pytest

from app.models import Application, Note
from app.services.notifications import Mailer, MailerError, notify_note


def submit(client, headers, url="https://www.promptly.ai"):
    response = client.post("/api/v1/applications", json={"url": url}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_mailer_posts_message_with_api_key():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "msg_1"})

    mailer = Mailer("https://mail.test/emails", "re_key", "Redverse <hello@redverse.test>", transport=httpx.MockTransport(handler))
    assert mailer.send("maker@example.com", "Hello", "plain", "<p>plain</p>") == "msg_1"

    assert seen[0].headers["Authorization"] == "Bearer re_key"
    assert json.loads(seen[0].content) == {
        "from": "Redverse <hello@redverse.test>",
        "to": ["maker@example.com"],
        "subject": "Hello",
        "text": "plain",
        "html": "<p>plain</p>",
    }


def test_mailer_raises_on_upstream_failure():
    mailer = Mailer("https://mail.test/emails", "re_key", "x", transport=httpx.MockTransport(lambda r: httpx.Response(422, json={})))
    with pytest.raises(MailerError):
        mailer.send("maker@example.com", "Hello", "plain")


def test_submission_notifies_operator(client, user_headers, mail_api):
    sent, _ = mail_api
    submit(client, user_headers)

    assert len(sent) == 1
    assert sent[0]["to"] == ["ops@redverse.test"]
    assert sent[0]["subject"] == "New Application Submitted - promptly"
    assert "maker@example.com" in sent[0]["text"]
    assert sent[0]["headers"]["authorization"] == "Bearer re_test"


def test_submission_succeeds_when_mail_fails(client, user_headers, mail_api):
    _, state = mail_api
    state["status"] = 500

    body = submit(client, user_headers)
    assert body["name"] == "promptly"


def test_submission_without_mail_configuration(client, user_headers):
    assert submit(client, user_headers)["status"] == "pending"


def test_new_note_notifies_application_owner(client, user_headers, admin_headers, mail_api):
    sent, _ = mail_api
    app_id = submit(client, user_headers)["id"]

    response = client.post(
        f"/api/v1/admin/applications/{app_id}/notes",
        json={"url": "https://notes.test/1", "likes_count": 7},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text

    owner_mail = sent[-1]
    assert owner_mail["to"] == ["maker@example.com"]
    assert owner_mail["subject"] == "Your Redverse promotion note is live"
    assert "https://notes.test/1" in owner_mail["text"]
    assert "Likes: 7" in owner_mail["text"]


def test_note_report_endpoint(client, db, user_headers, admin_headers, mail_api):
    sent, state = mail_api
    app_id = submit(client, user_headers)["id"]
    note = client.post(f"/api/v1/admin/applications/{app_id}/notes", json={"url": "https://notes.test/1"}, headers=admin_headers)
    note_id = note.json()["id"]

    report = client.post(f"/api/v1/admin/notes/{note_id}/notify", json={"action": "report"}, headers=admin_headers)
    assert report.status_code == 200
    assert sent[-1]["subject"] == "Your Redverse promotion report"

    invalid = client.post(f"/api/v1/admin/notes/{note_id}/notify", json={"action": "shout"}, headers=admin_headers)
    assert invalid.status_code == 400
    assert invalid.json() == {"error": "invalid_action"}

    state["status"] = 503
    failed = client.post(f"/api/v1/admin/notes/{note_id}/notify", json={"action": "updated"}, headers=admin_headers)
    assert failed.status_code == 500
    assert failed.json() == {"error": "notification_failed"}

    forbidden = client.post(f"/api/v1/admin/notes/{note_id}/notify", json={"action": "report"}, headers=user_headers)
    assert forbidden.status_code == 403


def test_note_report_requires_owner_email(client, db, admin_headers, mail_api):
    application = Application(user_id="user_legacy", url="https://legacy.example", name="legacy")
    db.add(application)
    db.flush()
    note = Note(app_id=application.id, url="https://notes.test/legacy")
    db.add(note)
    db.commit()

    response = client.post(f"/api/v1/admin/notes/{note.id}/notify", json={"action": "report"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "owner_email_missing"}


def test_notify_note_is_skipped_without_mailer():
    application = Application(user_id="u", user_email="maker@example.com", url="https://a.example", name="a")
    assert notify_note(None, application, Note(url="https://notes.test/1")) is False


def test_feedback_reaches_operator_with_own_application(client, db, user_headers, mail_api):
    sent, _ = mail_api
    mine = submit(client, user_headers)["id"]
    theirs = Application(user_id="user_other", url="https://secret.example", name="secret")
    db.add(theirs)
    db.commit()

    response = client.post("/api/v1/feedback", json={"feedbackText": "Love it", "applicationId": mine}, headers=user_headers)
    assert response.status_code == 200, response.text
    assert sent[-1]["to"] == ["ops@redverse.test"]
    assert sent[-1]["subject"] == "New User Feedback - maker@example.com"
    assert "Love it" in sent[-1]["text"]
    assert "promptly" in sent[-1]["text"]

    other = client.post(
        "/api/v1/feedback",
        json={"feedbackText": "Peek", "applicationId": theirs.id},
        headers=user_headers,
    )
    assert other.status_code == 200
    assert "secret" not in sent[-1]["text"]


def test_feedback_validation_and_delivery_failure(client, user_headers):
    empty = client.post("/api/v1/feedback", json={"feedbackText": "   "}, headers=user_headers)
    assert empty.status_code == 400
    assert empty.json() == {"error": "feedback_required"}

    # No mail configuration: the message cannot be delivered.
    undelivered = client.post("/api/v1/feedback", json={"feedbackText": "Hi"}, headers=user_headers)
    assert undelivered.status_code == 500
    assert undelivered.json() == {"error": "feedback_send_failed"}


def test_bug_report_includes_submission_context(client, user_headers, mail_api):
    sent, _ = mail_api
    response = client.post(
        "/api/v1/bug-reports",
        json={"error": "Submit failed", "projectName": "promptly", "websiteUrl": "https://promptly.ai"},
        headers={**user_headers, "User-Agent": "pytest-browser"},
    )
    assert response.status_code == 200, response.text
    assert sent[-1]["subject"] == "Bug Report - Submission Failed (maker@example.com)"
    assert "website_url: https://promptly.ai" in sent[-1]["text"]
    assert "User agent: pytest-browser" in sent[-1]["text"]

    missing = client.post("/api/v1/bug-reports", json={}, headers=user_headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "error_required"}
