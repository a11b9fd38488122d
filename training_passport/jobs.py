"""Digest sweeps, triggered by an external scheduler.

Either call ``POST /api/v1/jobs/...`` with ``X-Internal-Token`` set to
``INTERNAL_CRON_TOKEN``, or run this module from cron::

    python -m training_passport.jobs new-assignments   # every 5-10 minutes
    python -m training_passport.jobs monthly           # 1st day of the month
"""
from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from typing import Any, Iterable

from dotenv import load_dotenv

from training_passport.models import Assignment, Training, User
from training_passport.notify import LAST_ASSIGNMENT_CHECK, NotificationSender, SettingsCursorStore, sender_from_config
from training_passport.services.digests import DigestMessage, build_monthly_digest, build_new_assignment_digest
from training_passport.store import DocumentStore
from training_passport.utils.datetime import to_iso, utc_now

logger = logging.getLogger("training_passport.jobs")


def _load_all(store: DocumentStore) -> tuple[list[Training], list[User]]:
    trainings = [Training.from_doc(d) for d in store.trainings.all()]
    users = [User.from_doc(d) for d in store.users.all()]
    return trainings, users


def deliver(sender: NotificationSender, messages: Iterable[DigestMessage]) -> tuple[int, int]:
    """Fire-and-forget: a failed send is logged and not retried."""
    sent = failed = 0
    for msg in messages:
        try:
            sender.send(msg.recipient, msg.subject, msg.html)
            sent += 1
        except Exception:
            failed += 1
            logger.exception("digest delivery failed trainer=%s to=%s", msg.trainer_name, msg.recipient)
    return sent, failed


def run_new_assignment_sweep(
    store: DocumentStore,
    cursor_store: SettingsCursorStore,
    sender: NotificationSender,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utc_now()
    since = cursor_store.get(LAST_ASSIGNMENT_CHECK)

    assignments = [Assignment.from_doc(d) for d in store.assignments.all()]
    trainings, users = _load_all(store)
    digest = build_new_assignment_digest(assignments, trainings, users, since=since, now=now)
    sent, failed = deliver(sender, digest.messages)

    # Advances even when nothing was sent. If this write fails after sending,
    # the next run repeats the same notices.
    cursor_store.set(LAST_ASSIGNMENT_CHECK, digest.cursor)

    logger.info(
        "new-assignment sweep since=%s notices=%d sent=%d failed=%d skipped=%s",
        to_iso(since),
        len(digest.notices),
        sent,
        failed,
        digest.skipped,
    )
    return {
        "since": to_iso(since),
        "cursor": to_iso(digest.cursor),
        "notices": len(digest.notices),
        "sent": sent,
        "failed": failed,
        "skipped": digest.skipped,
    }


def run_monthly_digest(
    store: DocumentStore,
    sender: NotificationSender,
    *,
    now: datetime | None = None,
    app_url: str = "",
) -> dict[str, Any]:
    now = now or utc_now()
    pending = [Assignment.from_doc(d) for d in store.assignments.find(status="pending")]
    trainings, users = _load_all(store)

    digest = build_monthly_digest(pending, trainings, users, now=now, app_url=app_url)
    sent, failed = deliver(sender, digest.messages)

    logger.info(
        "monthly digest trainers=%d sent=%d failed=%d skipped=%s", len(digest.reports), sent, failed, digest.skipped
    )
    return {
        "trainers": {
            name: {"overdue": [i.title for i in r.overdue], "upcoming": [i.title for i in r.upcoming]}
            for name, r in digest.reports.items()
        },
        "sent": sent,
        "failed": failed,
        "skipped": digest.skipped,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Send Training Passport digest emails.")
    parser.add_argument("job", choices=["new-assignments", "monthly"], help="Which digest to run.")
    args = parser.parse_args(argv)

    load_dotenv()

    from training_passport.config import get_config
    from training_passport.db import get_client, get_db
    from training_passport.utils.logging import setup_logging

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)
    store = DocumentStore(
        get_db(cfg), client=get_client(cfg), transactions=cfg.MONGO_TRANSACTIONS and not cfg.USES_MONGOMOCK
    )
    sender = sender_from_config(cfg)

    if args.job == "new-assignments":
        result = run_new_assignment_sweep(store, SettingsCursorStore(store), sender)
    else:
        result = run_monthly_digest(store, sender, app_url=cfg.APP_URL)

    print(json.dumps(result, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
