"""
Teacher/student messaging.

Teachers post messages to one student or to everyone; each student's read
state and quick reply lives in a separate receipt document. Students send
free-form notes back (mood, reaction, text) without receipts.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from auth import get_user, require_role
from database import (
    MESSAGE_RECEIPTS,
    MESSAGES,
    STUDENT_MESSAGES,
    create_document,
    get_document,
    get_documents,
    serialize,
    to_object_id,
)
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Message, ReplyType, StudentMessage
from timeutils import default_time_provider

logger = logging.getLogger(__name__)


def send_message(db: Database, payload: Message) -> Dict[str, Any]:
    teacher = require_role(db, payload.sender_id, "teacher")
    if payload.recipient_type == "individual":
        if not payload.recipient_id:
            raise ValidationError("Choose a recipient")
        get_user(db, payload.recipient_id)
        recipient_id = payload.recipient_id
    else:
        recipient_id = None

    message_id = create_document(db, MESSAGES, {
        "sender_id": payload.sender_id,
        "sender_name": teacher.get("name"),
        "recipient_type": payload.recipient_type,
        "recipient_id": recipient_id,
        "title": payload.title,
        "body": payload.body.strip(),
        "priority": payload.priority,
    })
    logger.info("message_sent message_id=%s type=%s", message_id, payload.recipient_type)
    return get_document(db, MESSAGES, message_id, what="Message")


def _addressed_to(user_id: str) -> Dict[str, Any]:
    return {"$or": [{"recipient_id": user_id}, {"recipient_type": "all"}]}


def inbox(db: Database, user_id: str) -> List[Dict[str, Any]]:
    messages = get_documents(db, MESSAGES, _addressed_to(user_id), sort=[("created_at", -1)])
    receipts = {r["message_id"]: r for r in get_documents(db, MESSAGE_RECEIPTS, {"user_id": user_id})}
    for message in messages:
        message["receipt"] = receipts.get(message["id"])
    return messages


def unread_count(messages: List[Dict[str, Any]]) -> int:
    return sum(1 for m in messages if not (m.get("receipt") or {}).get("is_read"))


def _check_addressed(db: Database, message_id: str, user_id: str) -> Dict[str, Any]:
    message = get_document(db, MESSAGES, message_id, what="Message")
    if message.get("recipient_type") != "all" and message.get("recipient_id") != user_id:
        raise NotFoundError("Message not found")
    return message


def _upsert_receipt(db: Database, message_id: str, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    now = default_time_provider.now()
    db[MESSAGE_RECEIPTS].update_one(
        {"message_id": message_id, "user_id": user_id},
        {
            "$set": dict(fields, updated_at=now),
            "$setOnInsert": {"message_id": message_id, "user_id": user_id, "created_at": now},
        },
        upsert=True,
    )
    return serialize(db[MESSAGE_RECEIPTS].find_one({"message_id": message_id, "user_id": user_id}))


def mark_read(db: Database, message_id: str, user_id: str) -> Dict[str, Any]:
    _check_addressed(db, message_id, user_id)
    existing = db[MESSAGE_RECEIPTS].find_one({"message_id": message_id, "user_id": user_id})
    if existing and existing.get("is_read"):
        return serialize(existing)
    return _upsert_receipt(db, message_id, user_id, {"is_read": True, "read_at": default_time_provider.now()})


def reply(db: Database, message_id: str, user_id: str, reply_type: ReplyType) -> Dict[str, Any]:
    _check_addressed(db, message_id, user_id)
    now = default_time_provider.now()
    return _upsert_receipt(db, message_id, user_id, {
        "is_read": True,
        "read_at": now,
        "reply": reply_type,
        "replied_at": now,
    })


def sent_messages(db: Database, sender_id: str) -> List[Dict[str, Any]]:
    messages = get_documents(db, MESSAGES, {"sender_id": sender_id}, sort=[("created_at", -1)])
    for message in messages:
        receipts = get_documents(db, MESSAGE_RECEIPTS, {"message_id": message["id"]})
        message["read_count"] = sum(1 for r in receipts if r.get("is_read"))
        message["replies"] = [
            {"user_id": r["user_id"], "reply": r["reply"], "replied_at": r.get("replied_at")}
            for r in receipts
            if r.get("reply")
        ]
    return messages


def delete_message(db: Database, message_id: str, sender_id: Optional[str] = None) -> None:
    message = get_document(db, MESSAGES, message_id, what="Message")
    if sender_id and message.get("sender_id") != sender_id:
        raise PermissionDeniedError("Only the sender can delete this message")
    db[MESSAGES].delete_one({"_id": to_object_id(message_id, "Message")})
    removed = db[MESSAGE_RECEIPTS].delete_many({"message_id": message_id}).deleted_count
    logger.info("message_deleted message_id=%s receipts=%d", message_id, removed)


# ---------- Student -> teacher ----------
def send_student_message(db: Database, payload: StudentMessage) -> Dict[str, Any]:
    text = (payload.message or "").strip() or None
    reaction = payload.reaction or None
    if payload.mood is None and reaction is None and text is None:
        raise ValidationError("Choose a mood, a reaction or write a message")
    student = get_user(db, payload.student_id)
    message_id = create_document(db, STUDENT_MESSAGES, {
        "student_id": payload.student_id,
        "student_name": student.get("name"),
        "mood": payload.mood,
        "reaction": reaction,
        "message": text,
    })
    return get_document(db, STUDENT_MESSAGES, message_id, what="Message")


def list_student_messages(db: Database, student_id: Optional[str] = None) -> List[Dict[str, Any]]:
    filter_dict = {"student_id": student_id} if student_id else {}
    return get_documents(db, STUDENT_MESSAGES, filter_dict, sort=[("created_at", -1)])


def delete_student_message(db: Database, message_id: str, student_id: str) -> None:
    message = get_document(db, STUDENT_MESSAGES, message_id, what="Message")
    if message.get("student_id") != student_id:
        raise PermissionDeniedError("Only the author can delete this message")
    db[STUDENT_MESSAGES].delete_one({"_id": to_object_id(message_id, "Message")})
