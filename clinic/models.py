"""Pydantic models representing the clinic's records and operation results."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    LOCKOUT = "lockout"
    AUTHENTICATION = "authentication"


class OperationResult(BaseModel):
    """Outcome of a repository or authentication operation."""
    success: bool = Field(..., description="Whether the operation succeeded")
    message: Optional[str] = Field(None, description="Human-readable outcome")
    error: Optional[ErrorKind] = Field(None, description="Failure category when success is false")
    errors: List[str] = Field(default_factory=list, description="Field-level validation messages")
    id: Optional[int] = Field(None, description="Identifier of the affected record")
    data: Optional[Dict[str, Any]] = Field(None, description="The affected record or session")

    @classmethod
    def ok(cls, message: str, record: Optional[Dict[str, Any]] = None) -> "OperationResult":
        record_id = record.get("id") if record else None
        return cls(
            success=True,
            message=message,
            id=record_id if isinstance(record_id, int) else None,
            data=record,
        )

    @classmethod
    def fail(cls, error: ErrorKind, message: str, errors: Optional[List[str]] = None) -> "OperationResult":
        return cls(success=False, error=error, message=message, errors=errors or [message])


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Collection-unique identifier")
    created_at: str = Field(..., alias="createdAt", description="Timestamp when the record was created")
    updated_at: Optional[str] = Field(None, alias="updatedAt", description="Timestamp of the last update")


class PatientCreate(BaseModel):
    """Patient payload; required fields are checked by the repository."""
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[str] = Field(None, alias="fullName", description="Patient full name")
    phone: Optional[str] = Field(None, description="Ten digit phone number, unique per patient")
    email: Optional[str] = Field(None, description="Optional email, unique when provided")
    notes: Optional[str] = Field(None, description="Free-form medical notes")


class PatientUpdate(PatientCreate):
    pass


class Patient(_Record):
    full_name: str = Field(..., alias="fullName")
    phone: str
    email: str = ""
    notes: str = ""


class AppointmentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: Optional[int] = Field(None, alias="patientId", description="Identifier of an existing patient")
    date: Optional[str] = Field(None, description="Appointment date (YYYY-MM-DD)")
    time: Optional[str] = Field(None, description="Appointment time (HH:MM)")
    duration: Optional[int] = Field(None, description="Length in minutes, 15 to 120")
    notes: Optional[str] = None
    status: Optional[AppointmentStatus] = None


class AppointmentUpdate(AppointmentCreate):
    pass


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class Appointment(_Record):
    patient_id: int = Field(..., alias="patientId")
    patient_name: str = Field(
        ..., alias="patientName", description="Snapshot of the patient's name when the appointment was booked"
    )
    date: str
    time: str
    duration: int = 30
    notes: str = ""
    status: AppointmentStatus = AppointmentStatus.SCHEDULED


class IncomeCreate(BaseModel):
    amount: Optional[float] = Field(None, description="Amount received, strictly positive")
    method: Optional[str] = Field(None, description="Payment method (defaults to cash)")
    description: Optional[str] = None
    date: Optional[str] = Field(None, description="Defaults to today")


class Income(_Record):
    amount: float
    method: str = "cash"
    description: str = ""
    date: str


class ExpenseCreate(BaseModel):
    amount: Optional[float] = Field(None, description="Amount spent, strictly positive")
    category: Optional[str] = Field(None, description="Expense category (defaults to other)")
    description: Optional[str] = None
    date: Optional[str] = Field(None, description="Defaults to today")


class Expense(_Record):
    amount: float
    category: str = "other"
    description: str = ""
    date: str


class FinanceSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_income: float = Field(..., alias="totalIncome")
    total_expense: float = Field(..., alias="totalExpense")
    margin: float


class MonthlyFinance(FinanceSummary):
    year: int
    month: int = Field(..., ge=1, le=12)
    incomes: List[Income] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)


class DashboardSummary(FinanceSummary):
    year: int
    month: int = Field(..., ge=1, le=12)
    total_patients: int = Field(..., alias="totalPatients")
    monthly_appointments: int = Field(..., alias="monthlyAppointments")


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = ""
    password: str = ""
    confirm_password: str = Field("", alias="confirmPassword")


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str
    created_at: Optional[str] = Field(None, alias="createdAt")


class Session(BaseModel):
    """The single active authenticated-user marker."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Random session token")
    user_id: int = Field(..., alias="userId")
    username: str
    login_time: int = Field(..., alias="loginTime", description="Epoch milliseconds")
