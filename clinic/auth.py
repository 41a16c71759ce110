"""Authentication service: password hashing, login/register/logout and sessions."""
from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from itsdangerous import BadSignature, URLSafeSerializer
from passlib.context import CryptContext

from . import login_guard, store, users
from .models import ErrorKind, OperationResult, Session
from .settings import get_settings
from .timezone import epoch_millis
from .validators import login_errors, register_errors

logger = logging.getLogger(__name__)

# Deterministic digest: stored hashes are plain SHA-256 hex.
pwd_context = CryptContext(schemes=["hex_sha256"])
settings = get_settings()
serializer = URLSafeSerializer(settings.secret_key, salt="clinic-auth")
SESSION_COOKIE = "clinic_session"
SESSION_KEY = "CurrentSession"
LOCKOUT_MSG = "Account temporarily locked. Try again in 5 minutes."
BAD_CREDENTIALS_MSG = "Incorrect username or password"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def _find_user(username: str, password_hash: str) -> Optional[dict]:
    user = users.get_user_by_username(username)
    stored = user.get("password") if user else None
    if not isinstance(stored, str) or not secrets.compare_digest(stored.encode(), password_hash.encode()):
        return None
    return user


def current_session() -> Optional[Session]:
    data = store.get_value(SESSION_KEY)
    if not isinstance(data, dict):
        return None
    try:
        return Session(**data)
    except ValueError:
        return None


def _start_session(user: dict) -> Session:
    session = Session(
        id=secrets.token_hex(16),
        user_id=user["id"],
        username=user["username"],
        login_time=epoch_millis(),
    )
    store.set_value(SESSION_KEY, session.model_dump(by_alias=True))
    return session


async def login(username: str, password: str) -> OperationResult:
    """Authenticate ``username`` and open a session on success.

    The attempt is counted as a failure before any awaiting, so a burst of
    concurrent logins is still capped by the lockout threshold.
    """
    if not await run_in_threadpool(login_guard.reserve_attempt, username):
        logger.warning("Rejected login for locked account %s", username)
        return OperationResult.fail(ErrorKind.LOCKOUT, LOCKOUT_MSG)

    errors = login_errors(username, password)
    if errors:
        logger.warning("Failed login attempt for %s", username)
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid login data", errors)

    password_hash = await run_in_threadpool(hash_password, password)
    user = await run_in_threadpool(_find_user, username, password_hash)
    if not user:
        logger.warning("Failed login attempt for %s", username)
        return OperationResult.fail(ErrorKind.AUTHENTICATION, BAD_CREDENTIALS_MSG)

    await run_in_threadpool(login_guard.record_attempt, username, True)
    await asyncio.sleep(get_settings().login_delay_seconds)
    session = await run_in_threadpool(_start_session, user)
    logger.info("User %s logged in", username)
    return OperationResult(
        success=True, message="Login successful!", id=user["id"], data=session.model_dump(by_alias=True)
    )


async def register(username: str, password: str, confirm_password: str) -> OperationResult:
    """Create a user account; the new user still has to log in."""
    if password != confirm_password:
        return OperationResult.fail(ErrorKind.VALIDATION, "Passwords do not match")
    errors = register_errors(username, password)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid registration data", errors)
    if await run_in_threadpool(users.get_user_by_username, username):
        return OperationResult.fail(ErrorKind.CONFLICT, "This username already exists")
    password_hash = await run_in_threadpool(hash_password, password)
    return await run_in_threadpool(users.create_user, username, password_hash)


def logout() -> None:
    if store.delete_value(SESSION_KEY):
        logger.info("Session closed")


def create_session_token(session_id: str) -> str:
    return serializer.dumps({"session_id": session_id})


def read_session_token(token: str) -> Optional[str]:
    try:
        data = serializer.loads(token)
        return str(data["session_id"])
    except (BadSignature, KeyError, TypeError):
        return None


def set_login_cookie(response: Response, session: Session) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        create_session_token(session.id),
        httponly=True,
        samesite="lax",
        secure=get_settings().session_cookie_secure,
    )


def clear_login_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)


def get_current_session(request: Request) -> Optional[Session]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    session_id = read_session_token(token)
    session = current_session()
    if not session_id or not session or session.id != session_id:
        return None
    return session


def require_current_session(request: Request) -> Session:
    session = get_current_session(request)
    if not session:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    request.state.current_session = session
    return session
