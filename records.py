"""Study logs, exam records, target schools and the kids' wishlist."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database

import gamification
from auth import get_user
from database import (
    EXAM_RECORDS,
    STUDY_LOGS,
    TARGET_SCHOOLS,
    WISHLIST,
    create_document,
    delete_document,
    get_document,
    get_documents,
    update_document,
)
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import ExamRecord, ExamSitting, StudyLog, TargetSchool, TargetSchoolUpdate, WishItem, WishItemUpdate
from timeutils import default_time_provider, month_start, parse_date, start_of_day, week_start

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


# ---------- Study logs ----------
def add_study_log(db: Database, payload: StudyLog, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or default_time_provider.now()
    get_user(db, payload.user_id)
    log_date = parse_date(payload.date, default=now)
    data = {
        "user_id": payload.user_id,
        "subject": payload.subject.strip(),
        "duration": payload.duration,
        "date": log_date,
    }
    if not data["subject"]:
        raise ValidationError("Subject is required")
    log_id = create_document(db, STUDY_LOGS, data)
    game = gamification.record_study_log(db, payload.user_id, log_date, payload.duration, now=now)
    return {"id": log_id, "game": game}


def list_study_logs(db: Database, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    logs = get_documents(db, STUDY_LOGS, {"user_id": user_id})
    logs.sort(key=lambda log: parse_date(log.get("date")) or _EPOCH, reverse=True)
    return logs[:limit] if limit else logs


def study_stats(logs: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    today = start_of_day(now)
    monday = week_start(now)
    first_of_month = month_start(now)
    stats = {"today_total": 0, "week_total": 0, "month_total": 0, "all_total": 0, "by_subject": {}}
    for log in logs:
        duration = int(log.get("duration") or 0)
        stats["all_total"] += duration
        subject = log.get("subject") or "other"
        stats["by_subject"][subject] = stats["by_subject"].get(subject, 0) + duration
        log_date = parse_date(log.get("date"))
        if log_date is None:
            continue
        day = start_of_day(log_date)
        if day == today:
            stats["today_total"] += duration
        if day >= monday:
            stats["week_total"] += duration
        if day >= first_of_month:
            stats["month_total"] += duration
    return stats


# ---------- Exams ----------
def add_exam_sitting(db: Database, payload: ExamSitting) -> List[str]:
    entries = [e for e in payload.entries if e.subject.strip()]
    if not entries:
        raise ValidationError("Enter at least one subject")
    exam_date = parse_date(payload.exam_date, default=start_of_day(default_time_provider.now()))
    ids = []
    for entry in entries:
        ids.append(create_document(db, EXAM_RECORDS, ExamRecord(
            user_id=payload.user_id,
            exam_type=payload.exam_type,
            exam_name=payload.exam_name,
            exam_date=exam_date,
            subject=entry.subject.strip(),
            score=entry.score,
            max_score=entry.max_score,
            deviation=entry.deviation,
            note=payload.note,
        )))
    logger.info("exam_recorded user_id=%s exam=%s subjects=%d", payload.user_id, payload.exam_name, len(ids))
    return ids


def list_exams(db: Database, user_id: str) -> List[Dict[str, Any]]:
    exams = get_documents(db, EXAM_RECORDS, {"user_id": user_id})
    exams.sort(key=lambda e: parse_date(e.get("exam_date")) or _EPOCH, reverse=True)
    return exams


def delete_exam(db: Database, exam_id: str) -> None:
    delete_document(db, EXAM_RECORDS, exam_id, what="Exam record")


# ---------- Target schools ----------
def add_target(db: Database, payload: TargetSchool) -> str:
    return create_document(db, TARGET_SCHOOLS, payload)


def list_targets(db: Database, user_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, TARGET_SCHOOLS, {"user_id": user_id}, sort=[("priority", 1)])


def get_target(db: Database, user_id: str, target_id: Optional[str] = None) -> Dict[str, Any]:
    """A target by id, or the user's first choice when no id is given."""
    if target_id:
        target = get_document(db, TARGET_SCHOOLS, target_id, what="Target school")
        if target.get("user_id") != user_id:
            raise NotFoundError("Target school not found")
        return target
    targets = list_targets(db, user_id)
    if not targets:
        raise NotFoundError("No target school registered")
    return targets[0]


def update_target(db: Database, target_id: str, payload: TargetSchoolUpdate) -> Dict[str, Any]:
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update")
    update_document(db, TARGET_SCHOOLS, target_id, fields, what="Target school")
    return get_document(db, TARGET_SCHOOLS, target_id, what="Target school")


def delete_target(db: Database, target_id: str) -> None:
    delete_document(db, TARGET_SCHOOLS, target_id, what="Target school")


# ---------- Wishlist ----------
def _require_elementary(db: Database, user_id: str) -> None:
    if not get_user(db, user_id).get("is_elementary"):
        raise PermissionDeniedError("The wishlist is only available to elementary students")


def add_wish(db: Database, payload: WishItem) -> Dict[str, Any]:
    _require_elementary(db, payload.user_id)
    wish_id = create_document(db, WISHLIST, {"user_id": payload.user_id, "title": payload.title.strip(), "completed": payload.completed})
    return get_document(db, WISHLIST, wish_id, what="Wish")


def list_wishes(db: Database, user_id: str) -> List[Dict[str, Any]]:
    _require_elementary(db, user_id)
    return get_documents(db, WISHLIST, {"user_id": user_id}, sort=[("created_at", -1)])


def _owned_wish(db: Database, wish_id: str) -> Dict[str, Any]:
    wish = get_document(db, WISHLIST, wish_id, what="Wish")
    _require_elementary(db, wish["user_id"])
    return wish


def update_wish(db: Database, wish_id: str, payload: WishItemUpdate) -> Dict[str, Any]:
    _owned_wish(db, wish_id)
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update")
    update_document(db, WISHLIST, wish_id, fields, what="Wish")
    return get_document(db, WISHLIST, wish_id, what="Wish")


def delete_wish(db: Database, wish_id: str) -> None:
    _owned_wish(db, wish_id)
    delete_document(db, WISHLIST, wish_id, what="Wish")
