from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from training_passport.utils.datetime import as_utc, to_iso


def _start_of_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def _month_range(month: int, year: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 else datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def overdue_report(db, now: datetime) -> list[dict[str, Any]]:
    """Pending assignments whose own scheduledDate is before today, one row per (training, date)."""
    pipe = [
        {"$match": {"status": "pending", "scheduledDate": {"$ne": None}}},
        {"$group": {"_id": {"trainingId": "$trainingId", "scheduledDate": "$scheduledDate"}, "pendingCount": {"$sum": 1}}},
    ]
    # Date cut applied here: stored datetimes may come back naive.
    cutoff = _start_of_day(now)
    groups = [
        g
        for g in db.assignments.aggregate(pipe)
        if g["_id"].get("scheduledDate") is not None and as_utc(g["_id"]["scheduledDate"]) < cutoff
    ]
    training_ids = list({g["_id"]["trainingId"] for g in groups})
    trainings = {t["_id"]: t for t in db.trainings.find({"_id": {"$in": training_ids}})} if training_ids else {}

    rows = []
    for g in groups:
        training = trainings.get(g["_id"]["trainingId"])
        if training is None:
            continue
        rows.append(
            {
                "trainingId": training["_id"],
                "title": training.get("title") or "",
                "trainerName": training.get("trainerName"),
                "scheduledDate": to_iso(g["_id"].get("scheduledDate")),
                "pendingCount": int(g["pendingCount"]),
            }
        )
    rows.sort(key=lambda r: (r["scheduledDate"] or "", r["title"]))
    return rows


def category_progress(db) -> list[dict[str, Any]]:
    pipe = [
        {"$lookup": {"from": "trainings", "localField": "trainingId", "foreignField": "_id", "as": "training"}},
        {"$unwind": "$training"},
        {"$group": {"_id": {"category": "$training.category", "status": "$status"}, "count": {"$sum": 1}}},
    ]
    totals: dict[str, dict[str, int]] = {}
    for row in db.assignments.aggregate(pipe):
        category = str(row["_id"].get("category") or "")
        stats = totals.setdefault(category, {"total": 0, "completed": 0})
        stats["total"] += int(row["count"])
        if row["_id"].get("status") == "completed":
            stats["completed"] += int(row["count"])

    return [
        {
            "name": name,
            "total": stats["total"],
            "completed": stats["completed"],
            "progress": (stats["completed"] / stats["total"]) * 100 if stats["total"] else 0.0,
        }
        for name, stats in sorted(totals.items())
    ]


def summary_report(db, now: datetime) -> dict[str, Any]:
    total_users = int(db.users.count_documents({}))
    trained_user_ids = db.assignments.distinct("userId", {"status": "completed"})
    completed_count = int(db.assignments.count_documents({"status": "completed"}))

    minutes = 0
    for row in db.trainings.aggregate([{"$group": {"_id": None, "minutes": {"$sum": "$duration"}}}]):
        minutes = int(row.get("minutes") or 0)

    overdue = overdue_report(db, now)
    return {
        "totalUsers": total_users,
        "usersTrained": len(trained_user_ids),
        "percentageUsersTrained": (len(trained_user_ids) / total_users) * 100 if total_users else 0.0,
        "totalHours": minutes / 60,
        "completedCount": completed_count,
        "overdueCount": len(overdue),
        "overdue": overdue,
        "categoryProgress": category_progress(db),
    }


def scheduled_report(db, month: int, year: int) -> list[dict[str, Any]]:
    start, end = _month_range(month, year)
    pipe = [
        {"$match": {"scheduledDate": {"$ne": None}}},
        {"$lookup": {"from": "trainings", "localField": "trainingId", "foreignField": "_id", "as": "training"}},
        {"$unwind": "$training"},
        {"$lookup": {"from": "users", "localField": "userId", "foreignField": "_id", "as": "user"}},
        {"$unwind": {"path": "$user", "preserveNullAndEmptyArrays": True}},
    ]
    rows = [r for r in db.assignments.aggregate(pipe) if start <= as_utc(r["scheduledDate"]) < end]
    rows.sort(key=lambda r: as_utc(r["scheduledDate"]))

    out = []
    for row in rows:
        user = row.get("user") or {}
        out.append(
            {
                "assignmentId": str(row["_id"]),
                "trainingId": row["trainingId"],
                "title": row["training"].get("title") or "",
                "trainerName": row.get("trainerName") or row["training"].get("trainerName"),
                "userId": row["userId"],
                "userName": user.get("name"),
                "status": row.get("status"),
                "scheduledDate": to_iso(row.get("scheduledDate")),
            }
        )
    return out
