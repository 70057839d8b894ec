"""Read-only score analysis: target gaps, per-subject trends and exam sittings."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from timeutils import date_key, parse_date

_EPOCH = datetime(1970, 1, 1)


def _exam_date(exam: Dict[str, Any]) -> datetime:
    return parse_date(exam.get("exam_date")) or _EPOCH


def _created(exam: Dict[str, Any]) -> datetime:
    return parse_date(exam.get("created_at")) or _EPOCH


def latest_exams_by_subject(exams: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Most recent exam per subject; same-day ties go to the latest recorded."""
    ordered = sorted(exams, key=lambda e: (_exam_date(e), _created(e)), reverse=True)
    latest: Dict[str, Dict[str, Any]] = {}
    for exam in ordered:
        latest.setdefault(exam.get("subject"), exam)
    return latest


def compute_gaps(target_scores: Dict[str, float], exams: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    latest = latest_exams_by_subject(exams)
    gaps = []
    for subject, target in (target_scores or {}).items():
        exam = latest.get(subject)
        if exam is not None:
            score = exam.get("score") or 0
            max_score = exam.get("max_score") or 0
            current = score
            percentage = (score / max_score) * 100 if max_score else 0
        else:
            current = 0
            percentage = 0
        gap = target - current
        gaps.append({
            "subject": subject,
            "current": current,
            "target": target,
            "gap": gap,
            "percentage": percentage,
            "achieved": gap <= 0,
        })
    gaps.sort(key=lambda g: g["gap"], reverse=True)
    return gaps


def summarize_gaps(gaps: List[Dict[str, Any]], top_n: Optional[int] = None) -> Dict[str, List[Dict[str, Any]]]:
    strengths = [g for g in gaps if g["gap"] <= 0]
    weaknesses = sorted((g for g in gaps if g["gap"] > 0), key=lambda g: g["gap"], reverse=True)
    if top_n:
        weaknesses = weaknesses[:top_n]
    return {"strengths": strengths, "weaknesses": weaknesses}


def subject_trend(exams: List[Dict[str, Any]], subject: str) -> List[Dict[str, Any]]:
    rows = sorted((e for e in exams if e.get("subject") == subject), key=_exam_date)
    return [
        {
            "date": date_key(_exam_date(e)),
            "score": e.get("score"),
            "max_score": e.get("max_score"),
            "exam_name": e.get("exam_name"),
        }
        for e in rows
    ]


def group_sittings(exams: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Records sharing exam name and exam day are one sitting; newest first."""
    groups: Dict[str, Dict[str, Any]] = {}
    for exam in exams:
        day = date_key(_exam_date(exam))
        key = f"{exam.get('exam_name')}_{day}"
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "key": key,
                "exam_name": exam.get("exam_name"),
                "exam_date": _exam_date(exam),
                "exam_type": exam.get("exam_type"),
                "subjects": [],
            }
        group["subjects"].append({
            "id": exam.get("id"),
            "subject": exam.get("subject"),
            "score": exam.get("score"),
            "max_score": exam.get("max_score"),
            "deviation": exam.get("deviation"),
        })
    return sorted(groups.values(), key=lambda g: g["exam_date"], reverse=True)


def recorded_subjects(exams: List[Dict[str, Any]]) -> List[str]:
    seen: List[str] = []
    for exam in exams:
        if exam.get("subject") not in seen:
            seen.append(exam.get("subject"))
    return seen
