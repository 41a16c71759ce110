"""Appointment repository enforcing patient references and slot exclusivity.

``patientName`` is a snapshot of the patient's name taken when the
appointment is booked. Renaming the patient later does not change it; only
moving the appointment to a different ``patientId`` refreshes it.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import patients, store
from .models import AppointmentStatus, ErrorKind, OperationResult
from .timezone import clinic_now_iso
from .validators import appointment_errors

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = ("patientId", "date", "time", "duration", "notes", "status")
DEFAULT_DURATION_MINUTES = 30
CANCELLED = AppointmentStatus.CANCELLED.value
NOT_FOUND_MSG = "Appointment not found"
CONFLICT_MSG = "An appointment already exists at this time"


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for field in APPOINTMENT_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if isinstance(value, AppointmentStatus):
            value = value.value
        cleaned[field] = value.strip() if isinstance(value, str) else value
    return cleaned


def find_slot_conflict(date: str, time: str, exclude_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Return an active appointment occupying ``date`` and ``time``, if any."""
    for appointment in store.list_records(store.APPOINTMENTS):
        if exclude_id is not None and appointment.get("id") == exclude_id:
            continue
        if (
            appointment.get("date") == date
            and appointment.get("time") == time
            and appointment.get("status") != CANCELLED
        ):
            return appointment
    return None


def list_appointments(status: Optional[str] = None, date: Optional[str] = None) -> List[Dict[str, Any]]:
    records = store.list_records(store.APPOINTMENTS)
    if status:
        records = [record for record in records if record.get("status") == status]
    if date:
        records = [record for record in records if record.get("date") == date]
    return records


def get_appointment(appointment_id: int) -> Optional[Dict[str, Any]]:
    return store.get_record(store.APPOINTMENTS, appointment_id)


def create_appointment(data: Dict[str, Any]) -> OperationResult:
    """Book an appointment for an existing patient in a free slot."""
    payload = _clean(data)
    errors = appointment_errors(payload)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid appointment data", errors)
    status = payload.get("status") or AppointmentStatus.SCHEDULED.value
    with store.locked():
        patient = patients.get_patient(payload["patientId"])
        if patient is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, patients.NOT_FOUND_MSG)
        if status != CANCELLED and find_slot_conflict(payload["date"], payload["time"]):
            return OperationResult.fail(ErrorKind.CONFLICT, CONFLICT_MSG)
        record = {
            "id": store.next_id(store.APPOINTMENTS),
            "patientId": patient["id"],
            "patientName": patient.get("fullName", ""),
            "date": payload["date"],
            "time": payload["time"],
            "duration": payload.get("duration") or DEFAULT_DURATION_MINUTES,
            "notes": payload.get("notes") or "",
            "status": status,
            "createdAt": clinic_now_iso(),
        }
        store.insert(store.APPOINTMENTS, record)
    logger.info("Booked appointment %s on %s at %s", record["id"], record["date"], record["time"])
    return OperationResult.ok("Appointment created successfully!", record)


def update_appointment(appointment_id: int, data: Dict[str, Any]) -> OperationResult:
    changes = _clean(data)
    errors = appointment_errors(changes, partial=True)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid appointment data", errors)
    with store.locked():
        existing = get_appointment(appointment_id)
        if existing is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
        if "patientId" in changes and changes["patientId"] != existing.get("patientId"):
            patient = patients.get_patient(changes["patientId"])
            if patient is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, patients.NOT_FOUND_MSG)
            changes["patientName"] = patient.get("fullName", "")
        merged = {**existing, **changes}
        if merged.get("status") != CANCELLED and find_slot_conflict(
            merged.get("date"), merged.get("time"), exclude_id=appointment_id
        ):
            return OperationResult.fail(ErrorKind.CONFLICT, CONFLICT_MSG)
        store.update_by_id(store.APPOINTMENTS, appointment_id, changes)
        record = get_appointment(appointment_id)
    logger.info("Updated appointment %s", appointment_id)
    return OperationResult.ok("Appointment updated successfully!", record)


def update_appointment_status(appointment_id: int, status: Any) -> OperationResult:
    """Change only ``status`` (and ``updatedAt``) of an appointment."""
    value = status.value if isinstance(status, AppointmentStatus) else status
    errors = appointment_errors({"status": value}, partial=True)
    if value is None or errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid appointment status", errors or None)
    with store.locked():
        existing = get_appointment(appointment_id)
        if existing is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
        reactivating = existing.get("status") == CANCELLED and value != CANCELLED
        if reactivating and find_slot_conflict(
            existing.get("date"), existing.get("time"), exclude_id=appointment_id
        ):
            return OperationResult.fail(ErrorKind.CONFLICT, CONFLICT_MSG)
        store.update_by_id(store.APPOINTMENTS, appointment_id, {"status": value})
        record = get_appointment(appointment_id)
    logger.info("Appointment %s is now %s", appointment_id, value)
    return OperationResult.ok("Appointment status updated!", record)


def delete_appointment(appointment_id: int) -> OperationResult:
    if not store.delete_by_id(store.APPOINTMENTS, appointment_id):
        return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
    logger.info("Deleted appointment %s", appointment_id)
    return OperationResult(success=True, message="Appointment deleted successfully!", id=appointment_id)
