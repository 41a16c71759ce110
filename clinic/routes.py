"""API routes that expose the clinic record store."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from . import appointments, auth, finance, login_guard, patients, users
from .models import (
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    DashboardSummary,
    ErrorKind,
    Expense,
    ExpenseCreate,
    FinanceSummary,
    Income,
    IncomeCreate,
    LoginRequest,
    MonthlyFinance,
    OperationResult,
    Patient,
    PatientCreate,
    PatientUpdate,
    RegisterRequest,
    Session,
    User,
)
from .timezone import clinic_now

auth_router = APIRouter(prefix="/auth", tags=["auth"])
patients_router = APIRouter(prefix="/patients", tags=["patients"])
appointments_router = APIRouter(prefix="/appointments", tags=["appointments"])
incomes_router = APIRouter(prefix="/incomes", tags=["finance"])
expenses_router = APIRouter(prefix="/expenses", tags=["finance"])
finance_router = APIRouter(tags=["finance"])

CLEARABLE_FIELDS = frozenset({"email", "notes", "description"})

ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.LOCKOUT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
}


def _raise_for_failure(result: OperationResult, headers: Optional[Dict[str, str]] = None) -> OperationResult:
    if result.success:
        return result
    code = ERROR_STATUS_CODES.get(result.error, status.HTTP_400_BAD_REQUEST)
    detail: Any = result.errors if result.error == ErrorKind.VALIDATION else result.message
    raise HTTPException(status_code=code, detail=detail, headers=headers)


def _payload(model: Any) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def _changes(model: Any) -> Dict[str, Any]:
    """Fields the client sent; an explicit null clears a free-text field."""
    data = model.model_dump(by_alias=True, exclude_unset=True, mode="json")
    return {
        key: "" if value is None else value
        for key, value in data.items()
        if value is not None or key in CLEARABLE_FIELDS
    }


def _resolve_month(year: Optional[int], month: Optional[int]) -> tuple[int, int]:
    today = clinic_now().date()
    return year or today.year, month or today.month


@auth_router.post("/register", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest) -> OperationResult:
    result = await auth.register(payload.username, payload.password, payload.confirm_password)
    return _raise_for_failure(result)


@auth_router.post("/login", response_model=Session)
async def login(payload: LoginRequest, response: Response) -> Session:
    result = await auth.login(payload.username, payload.password)
    if result.error == ErrorKind.LOCKOUT:
        retry_after = await run_in_threadpool(login_guard.lockout_remaining_seconds, payload.username)
        _raise_for_failure(result, headers={"Retry-After": str(retry_after)})
    _raise_for_failure(result)
    session = Session(**result.data)
    auth.set_login_cookie(response, session)
    return session


@auth_router.post("/logout")
def logout(response: Response) -> dict[str, str]:
    auth.logout()
    auth.clear_login_cookie(response)
    return {"detail": "Logged out"}


@auth_router.get("/me", response_model=Session)
def current_session_route(session: Session = Depends(auth.require_current_session)) -> Session:
    return session


@auth_router.get("/users", response_model=List[User])
def list_users_route(_: Session = Depends(auth.require_current_session)) -> List[User]:
    return [User(**users.sanitize_user(record)) for record in users.list_users()]


@patients_router.get("/", response_model=List[Patient])
def list_patients(q: Optional[str] = Query(None, description="Optional search term")) -> List[Patient]:
    records = patients.search_patients(q) if q else patients.list_patients()
    return [Patient(**record) for record in records]


@patients_router.get("/search", response_model=List[Patient])
def search_patients(term: str = Query("", description="Matches name, phone or email")) -> List[Patient]:
    """Case-insensitive search across name, phone and email."""
    return [Patient(**record) for record in patients.search_patients(term)]


@patients_router.post("/", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
def create_patient(payload: PatientCreate) -> OperationResult:
    return _raise_for_failure(patients.create_patient(_payload(payload)))


@patients_router.get("/{patient_id}", response_model=Patient)
def get_patient(patient_id: int) -> Patient:
    record = patients.get_patient(patient_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=patients.NOT_FOUND_MSG)
    return Patient(**record)


@patients_router.put("/{patient_id}", response_model=OperationResult)
def update_patient(patient_id: int, payload: PatientUpdate) -> OperationResult:
    return _raise_for_failure(patients.update_patient(patient_id, _changes(payload)))


@patients_router.delete("/{patient_id}", response_model=OperationResult)
def delete_patient(patient_id: int) -> OperationResult:
    return _raise_for_failure(patients.delete_patient(patient_id))


@appointments_router.get("/", response_model=List[Appointment])
def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    date: Optional[str] = Query(None, description="Only appointments on this date (YYYY-MM-DD)"),
) -> List[Appointment]:
    records = appointments.list_appointments(
        status=status_filter.value if status_filter else None,
        date=date,
    )
    return [Appointment(**record) for record in records]


@appointments_router.post("/", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
def create_appointment(payload: AppointmentCreate) -> OperationResult:
    return _raise_for_failure(appointments.create_appointment(_payload(payload)))


@appointments_router.get("/{appointment_id}", response_model=Appointment)
def get_appointment(appointment_id: int) -> Appointment:
    record = appointments.get_appointment(appointment_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=appointments.NOT_FOUND_MSG)
    return Appointment(**record)


@appointments_router.put("/{appointment_id}", response_model=OperationResult)
def update_appointment(appointment_id: int, payload: AppointmentUpdate) -> OperationResult:
    return _raise_for_failure(appointments.update_appointment(appointment_id, _changes(payload)))


@appointments_router.patch("/{appointment_id}/status", response_model=OperationResult)
def update_appointment_status(appointment_id: int, payload: AppointmentStatusUpdate) -> OperationResult:
    return _raise_for_failure(appointments.update_appointment_status(appointment_id, payload.status))


@appointments_router.delete("/{appointment_id}", response_model=OperationResult)
def delete_appointment(appointment_id: int) -> OperationResult:
    return _raise_for_failure(appointments.delete_appointment(appointment_id))


@incomes_router.get("/", response_model=List[Income])
def list_incomes() -> List[Income]:
    return [Income(**record) for record in finance.list_incomes()]


@incomes_router.post("/", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
def create_income(payload: IncomeCreate) -> OperationResult:
    return _raise_for_failure(finance.create_income(_payload(payload)))


@incomes_router.get("/{income_id}", response_model=Income)
def get_income(income_id: int) -> Income:
    record = finance.get_income(income_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Income not found")
    return Income(**record)


@incomes_router.put("/{income_id}", response_model=OperationResult)
def update_income(income_id: int, payload: IncomeCreate) -> OperationResult:
    return _raise_for_failure(finance.update_income(income_id, _changes(payload)))


@incomes_router.delete("/{income_id}", response_model=OperationResult)
def delete_income(income_id: int) -> OperationResult:
    return _raise_for_failure(finance.delete_income(income_id))


@expenses_router.get("/", response_model=List[Expense])
def list_expenses() -> List[Expense]:
    return [Expense(**record) for record in finance.list_expenses()]


@expenses_router.post("/", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
def create_expense(payload: ExpenseCreate) -> OperationResult:
    return _raise_for_failure(finance.create_expense(_payload(payload)))


@expenses_router.get("/{expense_id}", response_model=Expense)
def get_expense(expense_id: int) -> Expense:
    record = finance.get_expense(expense_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return Expense(**record)


@expenses_router.put("/{expense_id}", response_model=OperationResult)
def update_expense(expense_id: int, payload: ExpenseCreate) -> OperationResult:
    return _raise_for_failure(finance.update_expense(expense_id, _changes(payload)))


@expenses_router.delete("/{expense_id}", response_model=OperationResult)
def delete_expense(expense_id: int) -> OperationResult:
    return _raise_for_failure(finance.delete_expense(expense_id))


@finance_router.get("/finance/summary", response_model=FinanceSummary)
def finance_summary() -> FinanceSummary:
    """All-time income, expense and margin."""
    return FinanceSummary(**finance.calculate_margin())


@finance_router.get("/finance/monthly", response_model=MonthlyFinance)
def finance_monthly(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
) -> MonthlyFinance:
    return MonthlyFinance(**finance.monthly_summary(*_resolve_month(year, month)))


@finance_router.get("/dashboard", response_model=DashboardSummary)
def dashboard(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
) -> DashboardSummary:
    """KPI cards: monthly revenue, expenses, margin, patients and consultations."""
    return DashboardSummary(**finance.dashboard_summary(*_resolve_month(year, month)))
