"""Per-trainer notification digests.

Both builders are pure: they take already-loaded records and return the
messages to send. Loading, sending and persisting the new-assignment cursor
happen in :mod:`training_passport.jobs`.

Trainers are matched to users by exact display name. When several users
share that name, the first one (in the order given) that has an email
address receives the digest; same-name users without an address are passed
over. A trainer group with no such user cannot be delivered and is left out
of ``messages`` (it is still reported in ``skipped``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from markupsafe import Markup, escape

from training_passport.models import Assignment, Training, User
from training_passport.utils.datetime import as_utc, utc_now

UNASSIGNED_TRAINER = "unassigned"

NEW_ASSIGNMENT_SUBJECT = "New trainings assigned"
MONTHLY_SUBJECT = "Monthly training summary: {trainer}"


@dataclass(frozen=True)
class DigestMessage:
    trainer_name: str
    recipient: str
    subject: str
    html: str


@dataclass(frozen=True)
class AssignmentNotice:
    trainer_name: str
    training_title: str
    user_name: str


@dataclass
class NewAssignmentDigest:
    cursor: datetime
    notices: list[AssignmentNotice] = field(default_factory=list)
    messages: list[DigestMessage] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DigestItem:
    training_id: str
    title: str
    pending_count: int


@dataclass
class TrainerReport:
    trainer_name: str
    overdue: list[DigestItem] = field(default_factory=list)
    upcoming: list[DigestItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.overdue and not self.upcoming


@dataclass
class MonthlyDigest:
    reports: dict[str, TrainerReport] = field(default_factory=dict)
    messages: list[DigestMessage] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def trainer_key(training: Training) -> str:
    return training.trainer_name or UNASSIGNED_TRAINER


def resolve_trainer_email(trainer_name: str, users: Iterable[User]) -> str | None:
    if trainer_name == UNASSIGNED_TRAINER:
        return None
    for user in users:
        if user.name == trainer_name and user.email:
            return user.email
    return None


def _render_list(lines: Iterable[Markup]) -> Markup:
    return Markup("<ul>") + Markup("").join(lines) + Markup("</ul>")


def render_new_assignment_html(trainer_name: str, notices: list[AssignmentNotice]) -> str:
    items = (
        Markup("<li><b>{}</b> assigned to {}.</li>").format(n.training_title, n.user_name) for n in notices
    )
    body = (
        Markup("Hello {},<br><br>New trainings have been assigned under your responsibility:").format(trainer_name)
        + _render_list(items)
        + Markup("<br>You can see the details in the administration panel.")
    )
    return str(body)


def render_monthly_html(report: TrainerReport, app_url: str = "") -> str:
    def _items(entries: list[DigestItem]) -> Markup:
        return _render_list(
            Markup("<li><b>{}</b> - {} person(s) pending</li>").format(e.title, e.pending_count) for e in entries
        )

    body = Markup("Hello {},<br><br>This is your monthly summary of assigned trainings:<br><br>").format(
        report.trainer_name
    )
    if report.overdue:
        body += Markup('<h3><font color="red">Overdue trainings:</font></h3>') + _items(report.overdue) + Markup("<br>")
    if report.upcoming:
        body += Markup("<h3>Pending trainings:</h3>") + _items(report.upcoming) + Markup("<br>")
    if app_url:
        body += Markup('Please check the <a href="{}">administration panel</a> for details.<br><br>').format(app_url)
    else:
        body += Markup("Please check the administration panel for details.<br><br>")
    body += Markup("Regards,<br>Training Passport")
    return str(body)


def build_new_assignment_digest(
    assignments: Iterable[Assignment],
    trainings: Iterable[Training],
    users: Iterable[User],
    *,
    since: datetime | None,
    now: datetime | None = None,
) -> NewAssignmentDigest:
    """Group assignments created after ``since`` by their training's trainer.

    ``since=None`` (first run) counts every assignment. The returned cursor is
    ``now`` whether or not anything is sent, so the next run never looks at
    the same window twice.
    """
    now = now or utc_now()
    since = as_utc(since)
    users = list(users)
    trainings_by_id = {t.id: t for t in trainings}
    users_by_id = {u.id: u for u in users}

    digest = NewAssignmentDigest(cursor=now)
    grouped: dict[str, list[AssignmentNotice]] = {}
    for a in assignments:
        if since is not None and (a.assigned_date is None or as_utc(a.assigned_date) <= since):
            continue
        training = trainings_by_id.get(a.training_id)
        user = users_by_id.get(a.user_id)
        if training is None or user is None:
            continue
        notice = AssignmentNotice(trainer_name=trainer_key(training), training_title=training.title, user_name=user.name)
        digest.notices.append(notice)
        grouped.setdefault(notice.trainer_name, []).append(notice)

    for trainer_name, notices in grouped.items():
        recipient = resolve_trainer_email(trainer_name, users)
        if recipient is None:
            digest.skipped.append(trainer_name)
            continue
        digest.messages.append(
            DigestMessage(
                trainer_name=trainer_name,
                recipient=recipient,
                subject=NEW_ASSIGNMENT_SUBJECT,
                html=render_new_assignment_html(trainer_name, notices),
            )
        )
    return digest


def build_monthly_digest(
    assignments: Iterable[Assignment],
    trainings: Iterable[Training],
    users: Iterable[User],
    *,
    now: datetime | None = None,
    app_url: str = "",
) -> MonthlyDigest:
    """Classify each training with pending assignments as overdue or upcoming, per trainer.

    A training is overdue when its scheduledDate is already past. Overdue
    items are listed before upcoming ones; trainers with nothing pending get
    no message.
    """
    now = as_utc(now or utc_now())
    users = list(users)

    pending_by_training: dict[str, int] = {}
    for a in assignments:
        if a.is_pending:
            pending_by_training[a.training_id] = pending_by_training.get(a.training_id, 0) + 1

    digest = MonthlyDigest()
    for training in sorted(trainings, key=lambda t: t.title):
        pending = pending_by_training.get(training.id, 0)
        if not pending:
            continue
        key = trainer_key(training)
        report = digest.reports.setdefault(key, TrainerReport(trainer_name=key))
        item = DigestItem(training_id=training.id, title=training.title, pending_count=pending)
        if training.scheduled_date is not None and as_utc(training.scheduled_date) < now:
            report.overdue.append(item)
        else:
            report.upcoming.append(item)

    for key, report in digest.reports.items():
        if report.is_empty:
            continue
        recipient = resolve_trainer_email(key, users)
        if recipient is None:
            digest.skipped.append(key)
            continue
        digest.messages.append(
            DigestMessage(
                trainer_name=key,
                recipient=recipient,
                subject=MONTHLY_SUBJECT.format(trainer=key),
                html=render_monthly_html(report, app_url),
            )
        )
    return digest
