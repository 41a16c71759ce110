"""Income and expense repositories plus the dashboard KPI arithmetic."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from . import store
from .models import ErrorKind, OperationResult
from .timezone import clinic_now_iso, clinic_today_iso
from .validators import amount_errors, date_errors

logger = logging.getLogger(__name__)

DEFAULT_INCOME_METHOD = "cash"
DEFAULT_EXPENSE_CATEGORY = "other"

# collection -> (label, classifier field, classifier default)
_LEDGERS: Dict[str, Tuple[str, str, str]] = {
    store.INCOMES: ("Income", "method", DEFAULT_INCOME_METHOD),
    store.EXPENSES: ("Expense", "category", DEFAULT_EXPENSE_CATEGORY),
}


def _clean(collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _, classifier, _ = _LEDGERS[collection]
    cleaned: Dict[str, Any] = {}
    for field in ("amount", classifier, "description", "date"):
        if field in data:
            value = data[field]
            cleaned[field] = value.strip() if isinstance(value, str) else value
    return cleaned


def _entry_errors(data: Dict[str, Any], *, partial: bool = False) -> List[str]:
    return amount_errors(data, partial=partial) + date_errors(data)


def _create_entry(collection: str, data: Dict[str, Any]) -> OperationResult:
    label, classifier, default = _LEDGERS[collection]
    payload = _clean(collection, data)
    errors = _entry_errors(payload)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, f"Invalid {label.lower()} data", errors)
    with store.locked():
        record = {
            "id": store.next_id(collection),
            "amount": payload["amount"],
            classifier: payload.get(classifier) or default,
            "description": payload.get("description") or "",
            "date": payload.get("date") or clinic_today_iso(),
            "createdAt": clinic_now_iso(),
        }
        store.insert(collection, record)
    logger.info("Recorded %s %s of %s", label.lower(), record["id"], record["amount"])
    return OperationResult.ok(f"{label} added successfully!", record)


def _update_entry(collection: str, entry_id: int, data: Dict[str, Any]) -> OperationResult:
    label, _, _ = _LEDGERS[collection]
    changes = _clean(collection, data)
    errors = _entry_errors(changes, partial=True)
    if errors:
        return OperationResult.fail(ErrorKind.VALIDATION, f"Invalid {label.lower()} data", errors)
    with store.locked():
        if not store.update_by_id(collection, entry_id, changes):
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"{label} not found")
        record = store.get_record(collection, entry_id)
    return OperationResult.ok(f"{label} updated successfully!", record)


def _delete_entry(collection: str, entry_id: int) -> OperationResult:
    label, _, _ = _LEDGERS[collection]
    if not store.delete_by_id(collection, entry_id):
        return OperationResult.fail(ErrorKind.NOT_FOUND, f"{label} not found")
    logger.info("Deleted %s %s", label.lower(), entry_id)
    return OperationResult(success=True, message=f"{label} deleted successfully!", id=entry_id)


def create_income(data: Dict[str, Any]) -> OperationResult:
    return _create_entry(store.INCOMES, data)


def list_incomes() -> List[Dict[str, Any]]:
    return store.list_records(store.INCOMES)


def get_income(income_id: int) -> Optional[Dict[str, Any]]:
    return store.get_record(store.INCOMES, income_id)


def update_income(income_id: int, data: Dict[str, Any]) -> OperationResult:
    return _update_entry(store.INCOMES, income_id, data)


def delete_income(income_id: int) -> OperationResult:
    return _delete_entry(store.INCOMES, income_id)


def create_expense(data: Dict[str, Any]) -> OperationResult:
    return _create_entry(store.EXPENSES, data)


def list_expenses() -> List[Dict[str, Any]]:
    return store.list_records(store.EXPENSES)


def get_expense(expense_id: int) -> Optional[Dict[str, Any]]:
    return store.get_record(store.EXPENSES, expense_id)


def update_expense(expense_id: int, data: Dict[str, Any]) -> OperationResult:
    return _update_entry(store.EXPENSES, expense_id, data)


def delete_expense(expense_id: int) -> OperationResult:
    return _delete_entry(store.EXPENSES, expense_id)


def _total(records: List[Dict[str, Any]]) -> float:
    total = 0.0
    for record in records:
        amount = record.get("amount")
        if isinstance(amount, (int, float)) and not isinstance(amount, bool):
            total += amount
    return total


def _in_month(record: Dict[str, Any], year: int, month: int) -> bool:
    return str(record.get("date") or "").startswith(f"{year:04d}-{month:02d}-")


def calculate_margin() -> Dict[str, float]:
    total_income = _total(list_incomes())
    total_expense = _total(list_expenses())
    return {"totalIncome": total_income, "totalExpense": total_expense, "margin": total_income - total_expense}


def monthly_summary(year: int, month: int) -> Dict[str, Any]:
    """Return the month's incomes and expenses with their totals."""
    incomes = [record for record in list_incomes() if _in_month(record, year, month)]
    expenses = [record for record in list_expenses() if _in_month(record, year, month)]
    total_income = _total(incomes)
    total_expense = _total(expenses)
    return {
        "year": year,
        "month": month,
        "incomes": incomes,
        "expenses": expenses,
        "totalIncome": total_income,
        "totalExpense": total_expense,
        "margin": total_income - total_expense,
    }


def dashboard_summary(year: int, month: int) -> Dict[str, Any]:
    monthly = monthly_summary(year, month)
    appointments = store.list_records(store.APPOINTMENTS)
    return {
        "year": year,
        "month": month,
        "totalIncome": monthly["totalIncome"],
        "totalExpense": monthly["totalExpense"],
        "margin": monthly["margin"],
        "totalPatients": len(store.list_records(store.PATIENTS)),
        "monthlyAppointments": sum(1 for record in appointments if _in_month(record, year, month)),
    }
