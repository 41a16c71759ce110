"""Patient repository: required fields, phone/email uniqueness and search."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import store
from .models import ErrorKind, OperationResult
from .timezone import clinic_now_iso
from .validators import patient_errors

logger = logging.getLogger(__name__)

PATIENT_FIELDS = ("fullName", "phone", "email", "notes")
NOT_FOUND_MSG = "Patient not found"


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for field in PATIENT_FIELDS:
        if field in data:
            value = data[field]
            cleaned[field] = value.strip() if isinstance(value, str) else ("" if value is None else value)
    return cleaned


def _normalized_email(value: Any) -> str:
    return value.strip().casefold() if isinstance(value, str) else ""


def _find_duplicate(
    patients: List[Dict[str, Any]], phone: Optional[str], email: Optional[str], exclude_id: Optional[int] = None
) -> Optional[Dict[str, Any]]:
    wanted_email = _normalized_email(email)
    for patient in patients:
        if exclude_id is not None and patient.get("id") == exclude_id:
            continue
        if phone and patient.get("phone") == phone:
            return patient
        if wanted_email and _normalized_email(patient.get("email")) == wanted_email:
            return patient
    return None


def list_patients() -> List[Dict[str, Any]]:
    return store.list_records(store.PATIENTS)


def get_patient(patient_id: int) -> Optional[Dict[str, Any]]:
    return store.get_record(store.PATIENTS, patient_id)


def create_patient(data: Dict[str, Any]) -> OperationResult:
    """Create a patient once required fields and uniqueness checks pass."""
    payload = _clean(data)
    errors = patient_errors(payload)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid patient data", errors)
    with store.locked():
        if _find_duplicate(list_patients(), payload["phone"], payload.get("email")):
            return OperationResult.fail(ErrorKind.CONFLICT, "A patient with this phone or email already exists")
        record = {
            "id": store.next_id(store.PATIENTS),
            "fullName": payload["fullName"],
            "phone": payload["phone"],
            "email": payload.get("email", ""),
            "notes": payload.get("notes", ""),
            "createdAt": clinic_now_iso(),
        }
        store.insert(store.PATIENTS, record)
    logger.info("Created patient %s", record["id"])
    return OperationResult.ok("Patient added successfully!", record)


def update_patient(patient_id: int, data: Dict[str, Any]) -> OperationResult:
    """Merge the supplied fields onto an existing patient."""
    changes = _clean(data)
    errors = patient_errors(changes, partial=True)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, "Invalid patient data", errors)
    with store.locked():
        if get_patient(patient_id) is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
        duplicate = _find_duplicate(
            list_patients(), changes.get("phone"), changes.get("email"), exclude_id=patient_id
        )
        if duplicate:
            return OperationResult.fail(ErrorKind.CONFLICT, "A patient with this phone or email already exists")
        store.update_by_id(store.PATIENTS, patient_id, changes)
        record = get_patient(patient_id)
    logger.info("Updated patient %s", patient_id)
    return OperationResult.ok("Patient updated successfully!", record)


def delete_patient(patient_id: int) -> OperationResult:
    """Permanently remove a patient; booked appointments keep their name snapshot."""
    if not store.delete_by_id(store.PATIENTS, patient_id):
        return OperationResult.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MSG)
    logger.info("Deleted patient %s", patient_id)
    return OperationResult(success=True, message="Patient deleted successfully!", id=patient_id)


def search_patients(term: Optional[str]) -> List[Dict[str, Any]]:
    """Case-insensitive substring match across name, phone and email."""
    needle = (term or "").strip().casefold()
    patients = list_patients()
    if not needle:
        return patients
    return [
        patient
        for patient in patients
        if any(needle in str(patient.get(field) or "").casefold() for field in ("fullName", "phone", "email"))
    ]
