"""Account registration and password login.

Passwords are stored as bcrypt hashes. Sessions are kept by the client, so a
successful login simply returns the ``SessionUser`` view of the account.
"""
import logging
from typing import Any, Dict, Optional

import bcrypt
from pymongo.database import Database

from config import settings
from database import USERS, create_document, get_document, serialize, update_document
from errors import AuthenticationError, NotFoundError, PermissionDeniedError, ValidationError
from schemas import LoginRequest, PasswordChange, RegisterRequest, SessionUser, User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def to_session_user(user: Dict[str, Any]) -> SessionUser:
    return SessionUser(
        id=user["id"],
        name=user["name"],
        role=user.get("role", "student"),
        grade=user.get("grade", 1),
        is_elementary=bool(user.get("is_elementary", False)),
    )


def register(db: Database, payload: RegisterRequest) -> SessionUser:
    if not payload.name or not payload.password or payload.grade is None:
        raise ValidationError("Name, password and grade are required")
    if len(payload.password) < settings.min_password_length:
        raise ValidationError(f"Password must be at least {settings.min_password_length} characters")
    if db[USERS].find_one({"name": payload.name}):
        raise ValidationError("This name is already taken")

    grade = int(payload.grade)
    user = User(
        name=payload.name,
        password=hash_password(payload.password),
        grade=grade,
        role=payload.role or "student",
        is_elementary=grade <= settings.elementary_max_grade,
    ).model_dump()
    user_id = create_document(db, USERS, user)
    logger.info("user_registered user_id=%s role=%s grade=%s", user_id, user["role"], grade)
    user["id"] = user_id
    return to_session_user(user)


def login(db: Database, payload: LoginRequest) -> SessionUser:
    role = payload.role or "student"
    if not payload.password:
        raise ValidationError("Password is required")

    if role == "teacher":
        # teachers sign in with the shared password only
        for doc in db[USERS].find({"role": "teacher"}):
            if verify_password(payload.password, doc.get("password")):
                return to_session_user(serialize(doc))
        raise AuthenticationError("Incorrect password")

    if not payload.name:
        raise ValidationError("Name and password are required")
    doc = db[USERS].find_one({"name": payload.name, "role": role})
    if doc is None:
        raise AuthenticationError("User not found")
    if not verify_password(payload.password, doc.get("password")):
        raise AuthenticationError("Incorrect password")
    return to_session_user(serialize(doc))


def get_user(db: Database, user_id: str) -> Dict[str, Any]:
    return get_document(db, USERS, user_id, what="User")


def get_session_user(db: Database, user_id: str) -> SessionUser:
    return to_session_user(get_user(db, user_id))


def require_role(db: Database, user_id: str, role: str) -> Dict[str, Any]:
    try:
        user = get_user(db, user_id)
    except NotFoundError:
        raise PermissionDeniedError(f"Only a {role} can do this") from None
    if user.get("role") != role:
        raise PermissionDeniedError(f"Only a {role} can do this")
    return user


def change_password(db: Database, payload: PasswordChange) -> None:
    user = get_user(db, payload.user_id)
    if not verify_password(payload.current_password, user.get("password")):
        raise AuthenticationError("Incorrect password")
    if len(payload.new_password) < settings.min_password_length:
        raise ValidationError(f"Password must be at least {settings.min_password_length} characters")
    update_document(db, USERS, payload.user_id, {"password": hash_password(payload.new_password)}, what="User")
    logger.info("password_changed user_id=%s", payload.user_id)
