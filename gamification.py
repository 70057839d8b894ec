"""
Experience points, levels, streaks and badges for elementary-grade users.

One summary document per user lives in ``userGameData``. It is updated
incrementally whenever a study log is recorded (``record_study_log``) and only
rebuilt from the full history when it does not exist yet or a back-dated log
arrives (``rebuild_game_data``).

``current_streak`` is stored as the length of the run of consecutive logging
days that ends on ``last_record_date``; it is reported as 0 once that date is
older than yesterday.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import STUDY_LOG_ARCHIVES, STUDY_LOGS, USER_GAME_DATA, serialize
from schemas import UserGameData
from timeutils import date_key, default_time_provider, parse_date, week_start

logger = logging.getLogger(__name__)

EXP_PER_MINUTE = 2
EXP_PER_RECORD = 10
BASE_EXP_FOR_LEVEL = 100
EXP_MULTIPLIER = 1.2
MAX_LEVEL = 100

BADGES: List[Dict[str, Any]] = [
    {"id": "streak_3", "name": "3-day streak", "icon": "🔥", "condition": "streak", "threshold": 3},
    {"id": "streak_7", "name": "1-week streak", "icon": "⭐", "condition": "streak", "threshold": 7},
    {"id": "streak_14", "name": "2-week streak", "icon": "🌟", "condition": "streak", "threshold": 14},
    {"id": "streak_30", "name": "1-month streak", "icon": "👑", "condition": "streak", "threshold": 30},
    {"id": "time_60", "name": "1 hour studied", "icon": "📚", "condition": "total_time", "threshold": 60},
    {"id": "time_300", "name": "5 hours studied", "icon": "📖", "condition": "total_time", "threshold": 300},
    {"id": "time_600", "name": "10 hours studied", "icon": "🎯", "condition": "total_time", "threshold": 600},
    {"id": "time_1800", "name": "30 hours studied", "icon": "🏆", "condition": "total_time", "threshold": 1800},
    {"id": "time_6000", "name": "100 hours studied", "icon": "💎", "condition": "total_time", "threshold": 6000},
]


def total_exp(total_minutes: int, record_count: int) -> int:
    return total_minutes * EXP_PER_MINUTE + record_count * EXP_PER_RECORD


def exp_needed(level: int) -> int:
    """Experience needed to go from ``level`` to ``level + 1``."""
    return int(math.floor(BASE_EXP_FOR_LEVEL * EXP_MULTIPLIER ** (level - 1)))


def exp_for_level(level: int) -> int:
    """Cumulative experience at which ``level`` is reached."""
    return sum(exp_needed(i) for i in range(1, max(level, 1)))


def level_from_exp(exp: int) -> Dict[str, int]:
    level = 1
    accumulated = 0
    while level <= MAX_LEVEL:
        needed = exp_needed(level)
        if accumulated + needed > exp:
            return {"level": level, "current_exp": exp - accumulated, "next_level_exp": needed}
        accumulated += needed
        level += 1
    return {"level": MAX_LEVEL, "current_exp": 0, "next_level_exp": 0}


def earned_badges(streak: int, total_minutes: int, total_records: int = 0) -> List[str]:
    earned = []
    for badge in BADGES:
        value = {"streak": streak, "total_time": total_minutes, "total_records": total_records}.get(badge["condition"], 0)
        if value >= badge["threshold"]:
            earned.append(badge["id"])
    return earned


def compute_streak(dates: Iterable[date], today: date) -> int:
    """Consecutive logging days counted back from ``today``.

    The newest date may be today or yesterday; after that each date must be
    the day before the previous one.
    """
    streak = 0
    check = today
    for day in sorted(set(dates), reverse=True):
        diff = (check - day).days
        if diff in (0, 1):
            streak += 1
            check = day
        elif diff < 0:
            continue
        else:
            break
    return streak


def displayed_streak(game: Dict[str, Any], today: date) -> int:
    last = game.get("last_record_date")
    if not last:
        return 0
    if (today - date.fromisoformat(last)).days > 1:
        return 0
    return int(game.get("current_streak") or 0)


def summarize_logs(logs: Iterable[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    today = now.date()
    monday = week_start(now)
    summary = {"total_minutes": 0, "today_minutes": 0, "week_minutes": 0, "record_count": 0, "dates": set()}
    for log in logs:
        duration = int(log.get("duration") or 0)
        log_date = parse_date(log.get("date"))
        summary["total_minutes"] += duration
        summary["record_count"] += 1
        if log_date is None:
            continue
        summary["dates"].add(log_date.date())
        if log_date.date() == today:
            summary["today_minutes"] += duration
        if log_date >= monday:
            summary["week_minutes"] += duration
    return summary


def rebuild_game_data(db: Database, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Recompute the summary from every log and archived week, and overwrite it."""
    now = now or default_time_provider.now()
    summary = summarize_logs(db[STUDY_LOGS].find({"user_id": user_id}), now)
    total_minutes = summary["total_minutes"]
    record_count = summary["record_count"]
    for archive in db[STUDY_LOG_ARCHIVES].find({"user_id": user_id}):
        total_minutes += int(archive.get("total_duration") or 0)
        record_count += int(archive.get("log_count") or 0)

    # future-dated logs count toward totals but not the streak
    dates = {d for d in summary["dates"] if d <= now.date()}
    last = max(dates) if dates else None
    run = compute_streak(dates, last) if last else 0

    games = db[USER_GAME_DATA]
    existing = games.find_one({"user_id": user_id}) or {}
    badges = list(existing.get("earned_badges") or [])
    badges.extend(b for b in earned_badges(run, total_minutes, record_count) if b not in badges)

    game = UserGameData(
        user_id=user_id,
        total_exp=total_exp(total_minutes, record_count),
        total_minutes=total_minutes,
        record_count=record_count,
        current_streak=run,
        longest_streak=max(run, int(existing.get("longest_streak") or 0)),
        last_record_date=date_key(last) if last else None,
        earned_badges=badges,
    ).model_dump()
    game["updated_at"] = now
    games.replace_one({"user_id": user_id}, game, upsert=True)
    logger.info("game_data_rebuilt user_id=%s exp=%d streak=%d", user_id, game["total_exp"], run)
    return serialize(games.find_one({"user_id": user_id}))


def record_study_log(db: Database, user_id: str, log_date: datetime, duration: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fold one newly inserted log into the user's summary.

    Must be called after the log itself has been stored.
    """
    now = now or default_time_provider.now()
    games = db[USER_GAME_DATA]
    existing = games.find_one({"user_id": user_id})
    if existing is None:
        return rebuild_game_data(db, user_id, now)

    day = log_date.date()
    last = date.fromisoformat(existing["last_record_date"]) if existing.get("last_record_date") else None
    if last is not None and day < last:
        return rebuild_game_data(db, user_id, now)

    update: Dict[str, Any] = {
        "$inc": {"total_minutes": duration, "record_count": 1, "total_exp": total_exp(duration, 1)},
        "$set": {"updated_at": now},
    }
    if day > now.date():
        # a future day leaves the streak and last_record_date alone
        streak = int(existing.get("current_streak") or 0)
    else:
        if last is None or day > last + timedelta(days=1):
            streak = 1
        elif day == last:
            streak = max(int(existing.get("current_streak") or 0), 1)
        else:
            streak = int(existing.get("current_streak") or 0) + 1
        update["$set"].update(current_streak=streak, last_record_date=date_key(day))
        update["$max"] = {"longest_streak": streak}

    game = games.find_one_and_update({"user_id": user_id}, update, return_document=ReturnDocument.AFTER)
    owned = set(game.get("earned_badges") or [])
    new_badges = [b for b in earned_badges(streak, game["total_minutes"], game["record_count"]) if b not in owned]
    if new_badges:
        game = games.find_one_and_update(
            {"user_id": user_id},
            {"$addToSet": {"earned_badges": {"$each": new_badges}}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("badges_earned user_id=%s badges=%s", user_id, ",".join(new_badges))
    return serialize(game)


def dashboard(db: Database, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or default_time_provider.now()
    game = db[USER_GAME_DATA].find_one({"user_id": user_id})
    game = serialize(game) if game is not None else rebuild_game_data(db, user_id, now)

    recent = db[STUDY_LOGS].find({"user_id": user_id, "date": {"$gte": week_start(now)}})
    summary = summarize_logs(recent, now)

    return {
        "game": game,
        "level": level_from_exp(int(game.get("total_exp") or 0)),
        "current_streak": displayed_streak(game, now.date()),
        "today_minutes": summary["today_minutes"],
        "week_minutes": summary["week_minutes"],
        "today": date_key(now),
        "badges": [b for b in BADGES if b["id"] in set(game.get("earned_badges") or [])],
    }
