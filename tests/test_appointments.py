import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clinic import appointments, patients, store
from clinic.app import create_app
from clinic.models import ErrorKind
from clinic.settings import get_settings


@pytest.fixture()
def isolated_store(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DB_PATH", tmp_path / "test.db")
    store.initialize()


@pytest.fixture()
def client(tmp_path, monkeypatch):
    """Provide an authenticated TestClient backed by an isolated database."""
    monkeypatch.setattr(store, "DB_PATH", tmp_path / "test.db")
    monkeypatch.setattr(get_settings(), "login_delay_seconds", 0.0)
    with TestClient(create_app()) as test_client:
        test_client.post(
            "/auth/register",
            json={"username": "admin", "password": "changeme", "confirmPassword": "changeme"},
        )
        login = test_client.post("/auth/login", json={"username": "admin", "password": "changeme"})
        assert login.status_code == 200
        yield test_client


def _create_patient(full_name: str = "John Doe", phone: str = "0123456789") -> int:
    result = patients.create_patient({"fullName": full_name, "phone": phone})
    assert result.success
    return result.id


def _book(patient_id: int, date: str = "2025-01-10", time: str = "09:00", **extra):
    return appointments.create_appointment({"patientId": patient_id, "date": date, "time": time, **extra})


def _active_in_slot(date: str, time: str):
    return [
        a
        for a in appointments.list_appointments()
        if a["date"] == date and a["time"] == time and a["status"] != "cancelled"
    ]


def test_slot_conflict_then_cancel_and_rebook(isolated_store):
    john = _create_patient()
    jane = _create_patient("Jane Roe", "0999999999")

    first = _book(john)
    assert first.success

    second = _book(jane)
    assert second.error == ErrorKind.CONFLICT
    assert len(appointments.list_appointments()) == 1

    assert appointments.update_appointment_status(first.id, "cancelled").success

    retry = _book(jane)
    assert retry.success
    assert len(_active_in_slot("2025-01-10", "09:00")) == 1


def test_create_applies_defaults_and_snapshots_patient_name(isolated_store):
    john = _create_patient()

    result = _book(john)

    assert result.data["duration"] == 30
    assert result.data["status"] == "scheduled"
    assert result.data["notes"] == ""
    assert result.data["patientName"] == "John Doe"


def test_patient_name_is_a_snapshot_not_resynced(isolated_store):
    john = _create_patient()
    booked = _book(john)

    patients.update_patient(john, {"fullName": "Johnathan Doe"})

    assert appointments.get_appointment(booked.id)["patientName"] == "John Doe"


def test_changing_patient_refreshes_the_snapshot(isolated_store):
    john = _create_patient()
    jane = _create_patient("Jane Roe", "0999999999")
    booked = _book(john)

    result = appointments.update_appointment(booked.id, {"patientId": jane})

    assert result.success
    assert result.data["patientName"] == "Jane Roe"


def test_unknown_patient_is_not_found(isolated_store):
    result = _book(424242)
    assert result.error == ErrorKind.NOT_FOUND
    assert appointments.list_appointments() == []


def test_validation_errors(isolated_store):
    result = appointments.create_appointment({"duration": 5})

    assert result.error == ErrorKind.VALIDATION
    assert "Patient is required" in result.errors
    assert "Date is required" in result.errors
    assert "Time is required" in result.errors
    assert "Duration must be between 15 and 120 minutes" in result.errors


@pytest.mark.parametrize("date, time", [("2025-1-10", "09:00"), ("2025-01-10", "9:0"), ("2025-01-10", "9:00")])
def test_unpadded_date_or_time_cannot_double_book_a_slot(isolated_store, date, time):
    john = _create_patient()
    assert _book(john).success

    result = _book(john, date=date, time=time)

    assert result.error == ErrorKind.VALIDATION
    assert len(appointments.list_appointments()) == 1


def test_unpadded_time_is_rejected_on_update(isolated_store):
    john = _create_patient()
    booked = _book(john, time="10:00")

    result = appointments.update_appointment(booked.id, {"time": "9:0"})

    assert result.error == ErrorKind.VALIDATION
    assert appointments.get_appointment(booked.id)["time"] == "10:00"


def test_status_update_touches_only_status(isolated_store):
    john = _create_patient()
    booked = _book(john, notes="bring x-rays", duration=45)

    result = appointments.update_appointment_status(booked.id, "confirmed")

    assert result.success
    record = appointments.get_appointment(booked.id)
    assert record["status"] == "confirmed"
    assert record["notes"] == "bring x-rays"
    assert record["duration"] == 45
    assert record["updatedAt"]
    assert appointments.update_appointment_status(booked.id, "postponed").error == ErrorKind.VALIDATION
    assert appointments.update_appointment_status(999, "confirmed").error == ErrorKind.NOT_FOUND


def test_reactivating_a_cancelled_appointment_rechecks_the_slot(isolated_store):
    john = _create_patient()
    first = _book(john)
    appointments.update_appointment_status(first.id, "cancelled")
    assert _book(john).success

    result = appointments.update_appointment_status(first.id, "scheduled")

    assert result.error == ErrorKind.CONFLICT
    assert appointments.get_appointment(first.id)["status"] == "cancelled"


def test_moving_into_an_occupied_slot_conflicts(isolated_store):
    john = _create_patient()
    _book(john, time="09:00")
    later = _book(john, time="10:00")

    moved = appointments.update_appointment(later.id, {"time": "09:00"})
    assert moved.error == ErrorKind.CONFLICT

    rescheduled = appointments.update_appointment(later.id, {"time": "11:30", "notes": "moved"})
    assert rescheduled.success
    assert rescheduled.data["time"] == "11:30"


def test_list_filters_by_status_and_date(isolated_store):
    john = _create_patient()
    _book(john, date="2025-01-10")
    other = _book(john, date="2025-01-11")
    appointments.update_appointment_status(other.id, "completed")

    assert [a["date"] for a in appointments.list_appointments(status="completed")] == ["2025-01-11"]
    assert [a["id"] for a in appointments.list_appointments(date="2025-01-11")] == [other.id]


def test_delete_appointment(isolated_store):
    john = _create_patient()
    booked = _book(john)
    assert appointments.delete_appointment(booked.id).success
    assert appointments.delete_appointment(booked.id).error == ErrorKind.NOT_FOUND


def test_appointment_http_flow(client: TestClient):
    patient = client.post("/patients/", json={"fullName": "John Doe", "phone": "0123456789"})
    patient_id = patient.json()["id"]
    payload = {"patientId": patient_id, "date": "2025-01-10", "time": "09:00"}

    created = client.post("/appointments/", json=payload)
    assert created.status_code == 201
    appointment_id = created.json()["id"]

    assert client.post("/appointments/", json=payload).status_code == 409

    cancelled = client.patch(f"/appointments/{appointment_id}/status", json={"status": "cancelled"})
    assert cancelled.status_code == 200

    assert client.post("/appointments/", json=payload).status_code == 201

    listed = client.get("/appointments/", params={"status": "cancelled"})
    assert [a["id"] for a in listed.json()] == [appointment_id]
    assert listed.json()[0]["patientName"] == "John Doe"
