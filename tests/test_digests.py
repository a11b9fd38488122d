from __future__ import annotations

from datetime import datetime, timedelta, timezone

from training_passport.models import Assignment, Training, User
from training_passport.services.digests import (
    UNASSIGNED_TRAINER,
    build_monthly_digest,
    build_new_assignment_digest,
)

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

ANA = User(id="u-ana", name="Ana", username="ana", email="ana@example.com")
LUIS = User(id="u-luis", name="Luis", username="luis", email=None)
PEDRO = User(id="u-pedro", name="Pedro", username="pedro", email="pedro@example.com")
USERS = [ANA, LUIS, PEDRO]


def _pending(aid: str, training_id: str, user_id: str = "u-pedro", **extra) -> Assignment:
    return Assignment(id=aid, user_id=user_id, training_id=training_id, **extra)


def test_monthly_digest_overdue_and_upcoming_per_trainer():
    fire = Training(id="t-fire", title="Fire Safety", trainer_name="Ana", scheduled_date=NOW - timedelta(days=10))
    first_aid = Training(id="t-aid", title="First Aid", trainer_name="Ana", scheduled_date=NOW + timedelta(days=5))
    quality = Training(id="t-q", title="Quality", trainer_name="Ana")
    done = Training(id="t-done", title="Done Already", trainer_name="Ana")
    assignments = [
        _pending("a1", "t-fire"),
        _pending("a2", "t-fire", user_id="u-luis"),
        _pending("a3", "t-aid"),
        _pending("a4", "t-q"),
        Assignment(id="a5", user_id="u-pedro", training_id="t-done", status="completed"),
    ]

    digest = build_monthly_digest(assignments, [fire, first_aid, quality, done], USERS, now=NOW)

    report = digest.reports["Ana"]
    assert [(i.title, i.pending_count) for i in report.overdue] == [("Fire Safety", 2)]
    assert [i.title for i in report.upcoming] == ["First Aid", "Quality"]
    assert len(digest.messages) == 1
    msg = digest.messages[0]
    assert msg.recipient == "ana@example.com"
    assert msg.subject == "Monthly training summary: Ana"
    assert msg.html.index("Fire Safety") < msg.html.index("First Aid")
    assert "Done Already" not in msg.html


def test_monthly_digest_skips_unresolvable_trainers():
    no_email = Training(id="t1", title="Forklift", trainer_name="Luis")
    nobody = Training(id="t2", title="Cranes")
    assignments = [_pending("a1", "t1"), _pending("a2", "t2")]

    digest = build_monthly_digest(assignments, [no_email, nobody], USERS, now=NOW)

    assert set(digest.reports) == {"Luis", UNASSIGNED_TRAINER}
    assert digest.messages == []
    assert sorted(digest.skipped) == sorted(["Luis", UNASSIGNED_TRAINER])


def test_monthly_digest_escapes_titles():
    training = Training(id="t1", title="<script>x</script>", trainer_name="Ana")

    digest = build_monthly_digest([_pending("a1", "t1")], [training], USERS, now=NOW)

    assert "<script>" not in digest.messages[0].html
    assert "&lt;script&gt;" in digest.messages[0].html


def test_new_assignment_digest_respects_cursor():
    t0 = NOW - timedelta(hours=1)
    fire = Training(id="t-fire", title="Fire Safety", trainer_name="Ana")
    old = _pending("a-old", "t-fire", assigned_date=t0 - timedelta(seconds=1))
    new = _pending("a-new", "t-fire", assigned_date=t0 + timedelta(seconds=1))

    digest = build_new_assignment_digest([old, new], [fire], USERS, since=t0, now=NOW)

    assert [(n.training_title, n.user_name) for n in digest.notices] == [("Fire Safety", "Pedro")]
    assert digest.cursor == NOW
    assert len(digest.messages) == 1
    assert digest.messages[0].recipient == "ana@example.com"
    assert "Pedro" in digest.messages[0].html


def test_new_assignment_digest_first_run_includes_everything():
    fire = Training(id="t-fire", title="Fire Safety", trainer_name="Ana")
    assignments = [_pending("a1", "t-fire", assigned_date=NOW - timedelta(days=400)), _pending("a2", "t-fire")]

    digest = build_new_assignment_digest(assignments, [fire], USERS, since=None, now=NOW)

    assert len(digest.notices) == 2


def test_new_assignment_digest_cursor_advances_when_empty():
    digest = build_new_assignment_digest([], [], USERS, since=NOW - timedelta(days=1), now=NOW)

    assert digest.notices == []
    assert digest.messages == []
    assert digest.cursor == NOW


def test_new_assignment_digest_unassigned_trainer_is_skipped():
    training = Training(id="t1", title="Cranes")
    assignment = _pending("a1", "t1", assigned_date=NOW)

    digest = build_new_assignment_digest([assignment], [training], USERS, since=NOW - timedelta(days=1), now=NOW)

    assert len(digest.notices) == 1
    assert digest.messages == []
    assert digest.skipped == [UNASSIGNED_TRAINER]


def test_trainer_email_skips_same_name_user_without_address():
    namesake = User(id="u-ana-2", name="Ana", username="ana2", email=None)
    training = Training(id="t1", title="Forklift", trainer_name="Ana")

    digest = build_monthly_digest([_pending("a1", "t1")], [training], [namesake, ANA], now=NOW)

    assert [m.recipient for m in digest.messages] == ["ana@example.com"]
