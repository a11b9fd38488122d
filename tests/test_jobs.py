from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import auth, login
from training_passport.jobs import deliver, run_monthly_digest, run_new_assignment_sweep
from training_passport.notify import LAST_ASSIGNMENT_CHECK, SettingsCursorStore, SmtpSender
from training_passport.services.digests import DigestMessage

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


class RecordingSender:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for = fail_for or set()

    def send(self, recipient: str, subject: str, html: str) -> None:
        if recipient in self.fail_for:
            raise OSError("smtp down")
        self.sent.append((recipient, subject, html))


def _seed(store):
    trainer_id = store.users.insert({"name": "Ana", "username": "ana", "email": "ana@example.com", "role": "user"})
    user_id = store.users.insert({"name": "Pedro", "username": "pedro", "email": "", "role": "user"})
    training_id = store.trainings.insert(
        {"title": "Fire Safety", "trainerName": "Ana", "scheduledDate": NOW - timedelta(days=3)}
    )
    store.assignments.insert(
        {"userId": user_id, "trainingId": training_id, "status": "pending", "assignedDate": NOW - timedelta(minutes=5)}
    )
    return trainer_id, user_id, training_id


def test_sweep_sends_once_and_persists_cursor(store):
    _seed(store)
    cursors = SettingsCursorStore(store)
    sender = RecordingSender()

    first = run_new_assignment_sweep(store, cursors, sender, now=NOW)

    assert first["notices"] == 1
    assert first["sent"] == 1
    assert sender.sent[0][0] == "ana@example.com"
    assert cursors.get(LAST_ASSIGNMENT_CHECK) == NOW

    second = run_new_assignment_sweep(store, cursors, sender, now=NOW + timedelta(minutes=10))

    assert second["notices"] == 0
    assert len(sender.sent) == 1
    assert cursors.get(LAST_ASSIGNMENT_CHECK) == NOW + timedelta(minutes=10)


def test_sweep_advances_cursor_even_when_delivery_fails(store):
    _seed(store)
    cursors = SettingsCursorStore(store)

    result = run_new_assignment_sweep(store, cursors, RecordingSender({"ana@example.com"}), now=NOW)

    assert result["failed"] == 1
    assert cursors.get(LAST_ASSIGNMENT_CHECK) == NOW


def test_monthly_digest_job(store):
    _seed(store)
    sender = RecordingSender()

    result = run_monthly_digest(store, sender, now=NOW, app_url="https://passport.example.com")

    assert result["trainers"] == {"Ana": {"overdue": ["Fire Safety"], "upcoming": []}}
    assert result["sent"] == 1
    assert "https://passport.example.com" in sender.sent[0][2]


def test_deliver_counts_failures():
    messages = [
        DigestMessage("Ana", "ana@example.com", "s", "<p>x</p>"),
        DigestMessage("Luis", "luis@example.com", "s", "<p>y</p>"),
    ]

    sent, failed = deliver(RecordingSender({"luis@example.com"}), messages)

    assert (sent, failed) == (1, 1)


def test_smtp_message_has_html_alternative():
    sender = SmtpSender("smtp.example.com", 587, "noreply@example.com")

    msg = sender.build_message("ana@example.com", "Hello", "<b>hi</b>")

    assert msg["To"] == "ana@example.com"
    assert msg["From"] == "noreply@example.com"
    assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<b>hi</b>"


def test_job_endpoint_requires_token_or_admin(app_client):
    app, client = app_client
    sender = RecordingSender()
    app.extensions["notification_sender"] = sender

    res = client.post("/api/v1/jobs/new-assignment-digest")
    assert res.status_code == 401

    res = client.post("/api/v1/jobs/new-assignment-digest", headers={"X-Internal-Token": "wrong"})
    assert res.status_code == 401

    res = client.post("/api/v1/jobs/new-assignment-digest", headers={"X-Internal-Token": "test-cron-token"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["success"] is True
    assert body["data"]["since"] is None
    assert body["data"]["cursor"]


def test_job_endpoint_admin_can_trigger_monthly(app_client):
    app, client = app_client
    app.extensions["notification_sender"] = RecordingSender()
    token = login(client, "admin", "password")

    res = client.post("/api/v1/jobs/monthly-digest", headers=auth(token))

    assert res.status_code == 200
    assert res.get_json()["data"]["trainers"] == {}
