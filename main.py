import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import analysis
import archival
import auth
import gamification
import messaging
import preferences
import records
import reports
import subjects
import task_tree
from config import settings
from database import db as configured_db, get_db
from errors import PermissionDeniedError, StudyTrackerError, ValidationError
from schemas import (
    CompletionUpdate,
    ExamSitting,
    LoginRequest,
    Message,
    PasswordChange,
    ReceiptAction,
    RegisterRequest,
    ReplyAction,
    StudentMessage,
    StudyLog,
    TargetSchool,
    TargetSchoolUpdate,
    TaskCreate,
    TaskUpdate,
    UiPreference,
    WishItem,
    WishItemUpdate,
)
from timeutils import default_time_provider

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StudyTrackerError)
async def study_tracker_error_handler(request: Request, exc: StudyTrackerError):
    if exc.status_code >= 500:
        logger.error("request_failed path=%s error=%s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": details or "Invalid request"})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.exception("store_operation_failed path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Database operation failed"})


@app.get("/")
def read_root():
    return {"message": "Study Tracker API running"}


@app.get("/api/health")
def health():
    response = {
        "backend": "running",
        "database": "not configured",
        "database_url": "set" if settings.database_url else "not set",
        "database_name": "set" if settings.database_name else "not set",
        "collections": [],
    }
    if configured_db is not None:
        try:
            response["collections"] = configured_db.list_collection_names()[:20]
            response["database"] = "connected"
        except PyMongoError as e:
            logger.warning("health_check_failed error=%s", e)
            response["database"] = f"error: {str(e)[:50]}"
    return response


# ---------- Accounts ----------
@app.post("/api/auth/register")
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    return {"user": auth.register(db, payload)}


@app.post("/api/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    return {"user": auth.login(db, payload)}


@app.post("/api/auth/password")
def change_password(payload: PasswordChange, db: Database = Depends(get_db)):
    auth.change_password(db, payload)
    return {"status": "ok"}


@app.get("/api/users/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return {"user": auth.get_session_user(db, user_id)}


@app.get("/api/subjects")
def list_subjects(grade: Optional[int] = Query(None, ge=1, le=12)):
    if grade is None:
        return {"subjects": subjects.SUBJECTS}
    return {"level": subjects.school_level(grade), "subjects": subjects.subjects_for_grade(grade)}


# ---------- Study logs ----------
@app.post("/api/study-logs")
def add_study_log(payload: StudyLog, db: Database = Depends(get_db)):
    result = records.add_study_log(db, payload)
    return {"id": result["id"], "status": "ok", "game": result["game"]}


@app.get("/api/study-logs")
def list_study_logs(user_id: str, limit: Optional[int] = Query(None, ge=1), db: Database = Depends(get_db)):
    return {"logs": records.list_study_logs(db, user_id, limit)}


@app.get("/api/study-logs/stats")
def study_log_stats(user_id: str, db: Database = Depends(get_db)):
    logs = records.list_study_logs(db, user_id)
    return records.study_stats(logs, default_time_provider.now())


# ---------- Archive ----------
@app.post("/api/archive/weekly")
def run_weekly_archive(db: Database = Depends(get_db)):
    return archival.run_weekly_archive(db).as_dict()


@app.get("/api/archive/weekly")
def list_archives(
    user_id: Optional[str] = None,
    userId: Optional[str] = Query(None),
    db: Database = Depends(get_db),
):
    owner = user_id or userId
    if not owner:
        raise ValidationError("userId is required")
    return {"archives": archival.list_archives(db, owner)}


# ---------- Tasks ----------
@app.post("/api/tasks")
def add_task(payload: TaskCreate, db: Database = Depends(get_db)):
    return {"task": task_tree.add_task(db, payload)}


@app.get("/api/tasks")
def list_tasks(user_id: str, db: Database = Depends(get_db)):
    return {"tasks": task_tree.list_tasks(db, user_id)}


@app.get("/api/tasks/tree")
def task_forest(user_id: str, db: Database = Depends(get_db)):
    return {"goals": task_tree.build_tree(task_tree.list_tasks(db, user_id))}


@app.patch("/api/tasks/{task_id}")
def update_task(task_id: str, payload: TaskUpdate, db: Database = Depends(get_db)):
    return {"task": task_tree.update_task(db, task_id, payload)}


@app.post("/api/tasks/{task_id}/completion")
def set_task_completion(task_id: str, payload: CompletionUpdate, db: Database = Depends(get_db)):
    updates = task_tree.set_completion(db, task_id, payload.completed)
    return {"updated": [u._asdict() for u in updates]}


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: str, db: Database = Depends(get_db)):
    return task_tree.delete_task(db, task_id)


# ---------- Exams ----------
@app.post("/api/exams")
def add_exam_sitting(payload: ExamSitting, db: Database = Depends(get_db)):
    ids = records.add_exam_sitting(db, payload)
    return {"ids": ids, "status": "ok"}


@app.get("/api/exams")
def list_exams(user_id: str, db: Database = Depends(get_db)):
    return {"exams": records.list_exams(db, user_id)}


@app.get("/api/exams/sittings")
def list_exam_sittings(user_id: str, db: Database = Depends(get_db)):
    return {"sittings": analysis.group_sittings(records.list_exams(db, user_id))}


@app.delete("/api/exams/{exam_id}")
def delete_exam(exam_id: str, db: Database = Depends(get_db)):
    records.delete_exam(db, exam_id)
    return {"status": "deleted"}


# ---------- Target schools ----------
@app.post("/api/targets")
def add_target(payload: TargetSchool, db: Database = Depends(get_db)):
    return {"id": records.add_target(db, payload), "status": "ok"}


@app.get("/api/targets")
def list_targets(user_id: str, db: Database = Depends(get_db)):
    return {"targets": records.list_targets(db, user_id)}


@app.put("/api/targets/{target_id}")
def update_target(target_id: str, payload: TargetSchoolUpdate, db: Database = Depends(get_db)):
    return {"target": records.update_target(db, target_id, payload)}


@app.delete("/api/targets/{target_id}")
def delete_target(target_id: str, db: Database = Depends(get_db)):
    records.delete_target(db, target_id)
    return {"status": "deleted"}


# ---------- Analysis ----------
@app.get("/api/analysis/gaps")
def target_gaps(
    user_id: str,
    target_id: Optional[str] = None,
    top_n: Optional[int] = Query(None, ge=1),
    db: Database = Depends(get_db),
):
    target = records.get_target(db, user_id, target_id)
    exams = records.list_exams(db, user_id)
    gaps = analysis.compute_gaps(target.get("target_scores") or {}, exams)
    summary = analysis.summarize_gaps(gaps, top_n or settings.weakness_top_n)
    return {"target": target, "gaps": gaps, **summary}


@app.get("/api/analysis/trend")
def subject_trend(user_id: str, subject: str, db: Database = Depends(get_db)):
    exams = records.list_exams(db, user_id)
    return {
        "subject": subject,
        "label": subjects.subject_label(subject),
        "points": analysis.subject_trend(exams, subject),
        "recorded_subjects": analysis.recorded_subjects(exams),
    }


# ---------- Kids ----------
@app.post("/api/wishlist")
def add_wish(payload: WishItem, db: Database = Depends(get_db)):
    return {"item": records.add_wish(db, payload)}


@app.get("/api/wishlist")
def list_wishes(user_id: str, db: Database = Depends(get_db)):
    return {"items": records.list_wishes(db, user_id)}


@app.patch("/api/wishlist/{wish_id}")
def update_wish(wish_id: str, payload: WishItemUpdate, db: Database = Depends(get_db)):
    return {"item": records.update_wish(db, wish_id, payload)}


@app.delete("/api/wishlist/{wish_id}")
def delete_wish(wish_id: str, db: Database = Depends(get_db)):
    records.delete_wish(db, wish_id)
    return {"status": "deleted"}


@app.get("/api/game/{user_id}")
def game_dashboard(user_id: str, db: Database = Depends(get_db)):
    if not auth.get_user(db, user_id).get("is_elementary"):
        raise PermissionDeniedError("The game dashboard is only available to elementary students")
    return gamification.dashboard(db, user_id)


@app.post("/api/game/{user_id}/rebuild")
def rebuild_game(user_id: str, db: Database = Depends(get_db)):
    auth.get_user(db, user_id)
    return {"game": gamification.rebuild_game_data(db, user_id)}


# ---------- Messages ----------
@app.post("/api/messages")
def send_message(payload: Message, db: Database = Depends(get_db)):
    return {"message": messaging.send_message(db, payload)}


@app.get("/api/messages/inbox")
def inbox(user_id: str, db: Database = Depends(get_db)):
    messages = messaging.inbox(db, user_id)
    return {"messages": messages, "unread": messaging.unread_count(messages)}


@app.get("/api/messages/sent")
def sent_messages(sender_id: str, db: Database = Depends(get_db)):
    return {"messages": messaging.sent_messages(db, sender_id)}


@app.post("/api/messages/{message_id}/read")
def mark_message_read(message_id: str, payload: ReceiptAction, db: Database = Depends(get_db)):
    return {"receipt": messaging.mark_read(db, message_id, payload.user_id)}


@app.post("/api/messages/{message_id}/reply")
def reply_to_message(message_id: str, payload: ReplyAction, db: Database = Depends(get_db)):
    return {"receipt": messaging.reply(db, message_id, payload.user_id, payload.reply)}


@app.delete("/api/messages/{message_id}")
def delete_message(message_id: str, sender_id: Optional[str] = None, db: Database = Depends(get_db)):
    messaging.delete_message(db, message_id, sender_id)
    return {"status": "deleted"}


@app.post("/api/student-messages")
def send_student_message(payload: StudentMessage, db: Database = Depends(get_db)):
    return {"message": messaging.send_student_message(db, payload)}


@app.get("/api/student-messages")
def list_student_messages(student_id: Optional[str] = None, db: Database = Depends(get_db)):
    return {"messages": messaging.list_student_messages(db, student_id)}


@app.delete("/api/student-messages/{message_id}")
def delete_student_message(message_id: str, student_id: str, db: Database = Depends(get_db)):
    messaging.delete_student_message(db, message_id, student_id)
    return {"status": "deleted"}


# ---------- Teacher ----------
@app.get("/api/teacher/students")
def student_overview(db: Database = Depends(get_db)):
    return {"students": reports.student_overview(db)}


# ---------- Preferences ----------
@app.get("/api/preferences/{user_id}")
def get_preferences(user_id: str, db: Database = Depends(get_db)):
    return preferences.get_preferences(db, user_id)


@app.put("/api/preferences/{user_id}")
def save_preferences(user_id: str, payload: UiPreference, db: Database = Depends(get_db)):
    return preferences.save_preferences(db, user_id, payload)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
