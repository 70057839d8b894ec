"""Teacher-facing roll-up of every student's recent activity."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import STUDENT_MESSAGES, STUDY_LOGS, USERS, serialize
from timeutils import default_time_provider, parse_date, week_start

_EPOCH = datetime(1970, 1, 1)


def student_overview(db: Database, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or default_time_provider.now()
    monday = week_start(now)
    students = [serialize(doc) for doc in db[USERS].find({"role": "student"})]
    logs = list(db[STUDY_LOGS].find({}))
    notes = [serialize(doc) for doc in db[STUDENT_MESSAGES].find({})]

    rows = []
    for student in students:
        own_logs = [log for log in logs if log.get("user_id") == student["id"]]
        # undated logs are left out of both figures
        dated = [(parse_date(log.get("date")), log) for log in own_logs]
        dated = [(when, log) for when, log in dated if when is not None]
        weekly = sum(int(log.get("duration") or 0) for when, log in dated if when >= monday)
        last_study = max((when for when, _ in dated), default=None)
        own_notes = [n for n in notes if n.get("student_id") == student["id"]]
        latest_note = max(own_notes, key=lambda n: parse_date(n.get("created_at")) or _EPOCH, default=None)
        rows.append({
            "id": student["id"],
            "name": student.get("name"),
            "grade": student.get("grade"),
            "is_elementary": student.get("is_elementary", False),
            "weekly_study_time": weekly,
            "last_study_date": last_study.date().isoformat() if last_study else None,
            "latest_message": latest_note,
        })
    rows.sort(key=lambda r: r["grade"] or 0)
    return rows
