"""User account repository. Passwords arrive here already hashed."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import store
from .models import ErrorKind, OperationResult
from .timezone import clinic_now_iso

logger = logging.getLogger(__name__)

NOT_FOUND_MSG = "User not found"


def sanitize_user(record: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": record["id"], "username": record["username"], "createdAt": record.get("createdAt")}


def list_users() -> List[Dict[str, Any]]:
    return sorted(store.list_records(store.USERS), key=lambda user: str(user.get("username", "")))


def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    return store.get_record(store.USERS, user_id)


def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    for user in store.list_records(store.USERS):
        if user.get("username") == username:
            return user
    return None


def create_user(username: str, password_hash: str) -> OperationResult:
    if not username or not password_hash:
        return OperationResult.fail(ErrorKind.VALIDATION, "Username and password are required")
    with store.locked():
        if get_user_by_username(username):
            return OperationResult.fail(ErrorKind.CONFLICT, "This username already exists")
        record = {
            "id": store.next_id(store.USERS),
            "username": username,
            "password": password_hash,
            "createdAt": clinic_now_iso(),
        }
        store.insert(store.USERS, record)
    logger.info("Created user %s", username)
    return OperationResult.ok("Account created successfully! You can now log in.", sanitize_user(record))


def update_user_password(user_id: int, password_hash: str) -> OperationResult:
    if not store.update_by_id(store.USERS, user_id, {"password": password_hash}):
        return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
    return OperationResult(success=True, message="Password updated", id=user_id)


def delete_user(user_id: int) -> OperationResult:
    if not store.delete_by_id(store.USERS, user_id):
        return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
    logger.info("Deleted user %s", user_id)
    return OperationResult(success=True, message="User deleted", id=user_id)
