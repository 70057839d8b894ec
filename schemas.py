"""
Database Schemas for the Study Tracker

Each stored Pydantic model maps to one MongoDB collection (see the collection
names in ``database.py``). Request bodies that only carry part of a document
are defined next to the document they change.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["student", "teacher"]
TaskLevel = Literal["goal", "large", "medium", "small"]
TaskStatus = Literal["pending", "completed"]
ExamType = Literal["mock", "regular"]
RecipientType = Literal["individual", "all"]
MessagePriority = Literal["normal", "important"]
ReplyType = Literal["confirmed", "understood", "will_do"]


# ---------- Users ----------
class User(BaseModel):
    name: str
    password: str = Field(..., description="bcrypt hash")
    grade: int = Field(..., ge=1, le=12)
    role: Role = "student"
    is_elementary: bool = Field(False, description="Derived: grade <= 6")


class SessionUser(BaseModel):
    id: str
    name: str
    role: Role
    grade: int
    is_elementary: bool


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    grade: Optional[int] = Field(None, ge=1, le=12)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None


class PasswordChange(BaseModel):
    user_id: str
    current_password: str
    new_password: str


# ---------- Study logs ----------
class StudyLog(BaseModel):
    user_id: str
    subject: str = Field(..., min_length=1)
    duration: int = Field(..., ge=0, description="Minutes")
    date: Optional[datetime] = Field(None, description="Defaults to now")


class StudyLogArchive(BaseModel):
    user_id: str
    week_key: str = Field(..., description="YYYY-MM-DD of the Monday starting the week")
    week_start: datetime
    subjects: Dict[str, int] = Field(default_factory=dict)
    total_duration: int = 0
    log_count: int = 0


# ---------- Tasks ----------
class TaskCreate(BaseModel):
    user_id: str
    level: TaskLevel = "goal"
    parent_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    memo: str = ""


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    memo: Optional[str] = None
    actual_time: Optional[int] = Field(None, ge=0)


class CompletionUpdate(BaseModel):
    completed: bool


# ---------- Exams & targets ----------
class ExamSubjectEntry(BaseModel):
    subject: str = Field(..., min_length=1)
    score: float
    max_score: float = Field(100, gt=0)
    deviation: Optional[float] = None


class ExamSitting(BaseModel):
    user_id: str
    exam_type: ExamType
    exam_name: str = Field(..., min_length=1)
    exam_date: Optional[datetime] = None
    entries: List[ExamSubjectEntry] = Field(default_factory=list)
    note: Optional[str] = None


class ExamRecord(BaseModel):
    user_id: str
    exam_type: ExamType
    exam_name: str
    exam_date: datetime
    subject: str
    score: float
    max_score: float = 100
    deviation: Optional[float] = None
    note: Optional[str] = None


class TargetSchool(BaseModel):
    user_id: str
    school_name: str = Field(..., min_length=1)
    target_total_score: float = 0
    target_scores: Dict[str, float] = Field(default_factory=dict)
    priority: int = Field(1, ge=1, description="1 = first choice")


class TargetSchoolUpdate(BaseModel):
    school_name: Optional[str] = Field(None, min_length=1)
    target_total_score: Optional[float] = None
    target_scores: Optional[Dict[str, float]] = None
    priority: Optional[int] = Field(None, ge=1)


# ---------- Messages ----------
class Message(BaseModel):
    sender_id: str
    recipient_type: RecipientType = "individual"
    recipient_id: Optional[str] = None
    title: str = ""
    body: str = Field(..., min_length=1)
    priority: MessagePriority = "normal"


class ReceiptAction(BaseModel):
    user_id: str


class ReplyAction(BaseModel):
    user_id: str
    reply: ReplyType


class StudentMessage(BaseModel):
    student_id: str
    mood: Optional[int] = Field(None, ge=1, le=5)
    reaction: Optional[str] = None
    message: Optional[str] = Field(None, max_length=1000)


# ---------- Kids ----------
class WishItem(BaseModel):
    user_id: str
    title: str = Field(..., min_length=1)
    completed: bool = False


class WishItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    completed: Optional[bool] = None


class UserGameData(BaseModel):
    user_id: str
    total_exp: int = 0
    total_minutes: int = 0
    record_count: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_record_date: Optional[str] = None
    earned_badges: List[str] = Field(default_factory=list)


class UiPreference(BaseModel):
    expanded_ids: List[str] = Field(default_factory=list)
    collapsed_memo_ids: List[str] = Field(default_factory=list)
