"""Field-level validation rules returning lists of human-readable messages."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List

from .models import AppointmentStatus

PHONE_PATTERN = re.compile(r"^\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

MIN_USERNAME_LENGTH = 3
MIN_LOGIN_PASSWORD_LENGTH = 6
MIN_REGISTER_PASSWORD_LENGTH = 8
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120

APPOINTMENT_STATUSES = frozenset(status.value for status in AppointmentStatus)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def login_errors(username: str, password: str) -> List[str]:
    errors: List[str] = []
    if not username or len(username) < MIN_USERNAME_LENGTH:
        errors.append(f"Username must contain at least {MIN_USERNAME_LENGTH} characters")
    if not password or len(password) < MIN_LOGIN_PASSWORD_LENGTH:
        errors.append(f"Password must contain at least {MIN_LOGIN_PASSWORD_LENGTH} characters")
    return errors


def register_errors(username: str, password: str) -> List[str]:
    errors = login_errors(username, password)
    if password and len(password) < MIN_REGISTER_PASSWORD_LENGTH:
        errors.append(
            f"Password must contain at least {MIN_REGISTER_PASSWORD_LENGTH} characters for better security"
        )
    return errors


def patient_errors(data: Dict[str, Any], *, partial: bool = False) -> List[str]:
    """Validate patient fields; with ``partial`` only the supplied keys are checked."""
    errors: List[str] = []
    if not partial or "fullName" in data:
        if len(_text(data.get("fullName"))) < 2:
            errors.append("Full name is required (minimum 2 characters)")
    if not partial or "phone" in data:
        if not PHONE_PATTERN.match(_text(data.get("phone"))):
            errors.append("Phone must contain exactly 10 digits")
    email = _text(data.get("email"))
    if email and not EMAIL_PATTERN.match(email):
        errors.append("Email must have a valid format")
    return errors


def _valid_date(value: str) -> bool:
    # slots are matched by exact string, so only the zero-padded form is accepted
    if not DATE_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _valid_time(value: str) -> bool:
    if not TIME_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%H:%M")
    except ValueError:
        return False
    return True


def appointment_errors(data: Dict[str, Any], *, partial: bool = False) -> List[str]:
    errors: List[str] = []
    if not partial or "patientId" in data:
        if not data.get("patientId"):
            errors.append("Patient is required")
    if not partial or "date" in data:
        date_value = _text(data.get("date"))
        if not date_value:
            errors.append("Date is required")
        elif not _valid_date(date_value):
            errors.append("Date must use the YYYY-MM-DD format")
    if not partial or "time" in data:
        time_value = _text(data.get("time"))
        if not time_value:
            errors.append("Time is required")
        elif not _valid_time(time_value):
            errors.append("Time must use the HH:MM format")
    duration = data.get("duration")
    if duration is not None:
        if not isinstance(duration, int) or isinstance(duration, bool) or not (
            MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES
        ):
            errors.append(
                f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )
    status = data.get("status")
    if status is not None and status not in APPOINTMENT_STATUSES:
        errors.append(f"Status must be one of: {', '.join(sorted(APPOINTMENT_STATUSES))}")
    return errors


def amount_errors(data: Dict[str, Any], *, partial: bool = False) -> List[str]:
    if partial and "amount" not in data:
        return []
    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        return ["Amount must be positive"]
    return []


def date_errors(data: Dict[str, Any]) -> List[str]:
    value = data.get("date")
    if value is None:
        return []
    if not isinstance(value, str) or not _valid_date(value.strip()):
        return ["Date must use the YYYY-MM-DD format"]
    return []
