"""
Weekly study-log archival.

Raw logs older than the retention window are folded into one archive document
per (user, week) and then deleted. Weeks start on Monday; the week key is the
``YYYY-MM-DD`` of that Monday. Per-entry timestamps inside an archived week are
not kept.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo.database import Database

from config import settings
from database import STUDY_LOG_ARCHIVES, STUDY_LOGS, create_document, serialize
from schemas import StudyLogArchive
from timeutils import default_time_provider, end_of_day, parse_date, week_key, week_start

logger = logging.getLogger(__name__)


@dataclass
class WeekBucket:
    user_id: str
    week_key: str
    week_start: datetime
    subjects: Dict[str, int] = field(default_factory=dict)
    total_duration: int = 0
    log_count: int = 0

    def add(self, subject: str, duration: int) -> None:
        self.subjects[subject] = self.subjects.get(subject, 0) + duration
        self.total_duration += duration
        self.log_count += 1


@dataclass
class ArchiveResult:
    archived_weeks: int = 0
    merged_weeks: int = 0
    skipped_weeks: int = 0
    deleted_logs: int = 0

    @property
    def message(self) -> str:
        return (
            f"Created {self.archived_weeks} archive(s), merged {self.merged_weeks}, "
            f"skipped {self.skipped_weeks}, deleted {self.deleted_logs} log(s)"
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "archived_weeks": self.archived_weeks,
            "merged_weeks": self.merged_weeks,
            "skipped_weeks": self.skipped_weeks,
            "deleted_logs": self.deleted_logs,
        }


def archive_cutoff(now: datetime, retention_days: int) -> datetime:
    return end_of_day(now - timedelta(days=retention_days))


def bucket_logs(logs: Iterable[Dict[str, Any]], cutoff: datetime) -> Tuple[Dict[Tuple[str, str], WeekBucket], List[Any]]:
    """Group logs dated at or before ``cutoff`` by (user, week).

    Returns the buckets and the ids of every log that was bucketed.
    """
    buckets: Dict[Tuple[str, str], WeekBucket] = {}
    old_ids: List[Any] = []
    for log in logs:
        log_date = parse_date(log.get("date"))
        if log_date is None or log_date > cutoff:
            continue
        user_id = log.get("user_id")
        key = (user_id, week_key(log_date))
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = WeekBucket(user_id=user_id, week_key=key[1], week_start=week_start(log_date))
        bucket.add(log.get("subject") or "other", int(log.get("duration") or 0))
        old_ids.append(log["_id"])
    return buckets, old_ids


def merge_subjects(current: Dict[str, int], extra: Dict[str, int]) -> Dict[str, int]:
    merged = dict(current or {})
    for subject, minutes in extra.items():
        merged[subject] = merged.get(subject, 0) + minutes
    return merged


def run_weekly_archive(
    db: Database,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
    merge_existing: Optional[bool] = None,
) -> ArchiveResult:
    now = now or default_time_provider.now()
    retention_days = settings.archive_retention_days if retention_days is None else retention_days
    merge_existing = settings.archive_merge_existing if merge_existing is None else merge_existing
    cutoff = archive_cutoff(now, retention_days)

    buckets, old_ids = bucket_logs(db[STUDY_LOGS].find({}), cutoff)
    result = ArchiveResult()
    archives = db[STUDY_LOG_ARCHIVES]

    for bucket in buckets.values():
        existing = archives.find_one({"user_id": bucket.user_id, "week_key": bucket.week_key})
        if existing is None:
            create_document(db, STUDY_LOG_ARCHIVES, StudyLogArchive(
                user_id=bucket.user_id,
                week_key=bucket.week_key,
                week_start=bucket.week_start,
                subjects=bucket.subjects,
                total_duration=bucket.total_duration,
                log_count=bucket.log_count,
            ))
            result.archived_weeks += 1
        elif merge_existing:
            archives.update_one(
                {"_id": existing["_id"]},
                {
                    "$set": {
                        "subjects": merge_subjects(existing.get("subjects"), bucket.subjects),
                        "updated_at": now,
                    },
                    "$inc": {"total_duration": bucket.total_duration, "log_count": bucket.log_count},
                },
            )
            result.merged_weeks += 1
        else:
            logger.warning(
                "archive_week_skipped user_id=%s week_key=%s dropped_logs=%d",
                bucket.user_id, bucket.week_key, bucket.log_count,
            )
            result.skipped_weeks += 1

    if old_ids:
        result.deleted_logs = db[STUDY_LOGS].delete_many({"_id": {"$in": old_ids}}).deleted_count

    logger.info(
        "weekly_archive cutoff=%s archived=%d merged=%d skipped=%d deleted=%d",
        cutoff.isoformat(), result.archived_weeks, result.merged_weeks, result.skipped_weeks, result.deleted_logs,
    )
    return result


def list_archives(db: Database, user_id: str) -> List[Dict[str, Any]]:
    archives = [serialize(doc) for doc in db[STUDY_LOG_ARCHIVES].find({"user_id": user_id})]
    archives.sort(key=lambda a: a.get("week_key", ""), reverse=True)
    return archives
