from fastapi import APIRouter, Query, status
from uuid import UUID
from typing import Optional

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.expenses import actions
from app.modules.expenses.schemas import ExpenseCreate, ExpensePaymentCreate, ExpenseUpdate, RecurringExpenseCreate

expense_router = APIRouter(prefix="/expenses", tags=["Expenses"])


@expense_router.post("/", status_code=status.HTTP_201_CREATED)
def create_expense(data: ExpenseCreate, uow: uow_dependency):
    return unwrap(actions.create_expense(data, uow))


@expense_router.get("/")
def list_expenses(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
):
    """Gastos del mes (genera antes los recurrentes vencidos)"""
    return unwrap(actions.get_expenses(month, year, uow))


@expense_router.get("/categories")
def list_categories():
    return actions.get_expense_categories()


@expense_router.get("/recurring")
def list_recurring_expenses(uow: uow_dependency):
    return unwrap(actions.get_recurring_expenses(uow))


@expense_router.post("/recurring", status_code=status.HTTP_201_CREATED)
def create_recurring_expense(data: RecurringExpenseCreate, uow: uow_dependency):
    return unwrap(actions.create_recurring_expense(data, uow))


@expense_router.post("/recurring/generate")
def generate_recurring_expenses(uow: uow_dependency):
    return unwrap(actions.generate_recurring_expenses(uow=uow))


@expense_router.patch("/recurring/{recurring_id}")
def toggle_recurring_expense(recurring_id: UUID, uow: uow_dependency, active: bool = Query(...)):
    return unwrap(actions.toggle_recurring_expense(recurring_id, active, uow))


@expense_router.delete("/recurring/{recurring_id}")
def delete_recurring_expense(recurring_id: UUID, uow: uow_dependency):
    return unwrap(actions.delete_recurring_expense(recurring_id, uow))


@expense_router.get("/{expense_id}")
def get_expense(expense_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_expense(expense_id, uow))


@expense_router.patch("/{expense_id}")
def update_expense(expense_id: UUID, data: ExpenseUpdate, uow: uow_dependency):
    return unwrap(actions.update_expense(expense_id, data, uow))


@expense_router.post("/{expense_id}/payments")
def register_expense_payment(expense_id: UUID, data: ExpensePaymentCreate, uow: uow_dependency):
    return unwrap(actions.register_expense_payment(expense_id, data, uow))


@expense_router.delete("/{expense_id}")
def delete_expense(expense_id: UUID, uow: uow_dependency):
    return unwrap(actions.delete_expense(expense_id, uow))
