"""
Acciones de gastos: resultados ``{success, expense? | message}``.

La consulta de gastos primero genera los recurrentes vencidos; si esa
generación falla se registra y la consulta continúa.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from app.core.config import settings
from app.common.results import ok, parse_input, run_action
from app.database.transaction import UnitOfWork
from app.modules.expenses.schemas import (
    ExpenseCreate, ExpenseOut, ExpensePaymentCreate, ExpenseUpdate, RecurringExpenseCreate, RecurringExpenseOut,
)
from app.modules.expenses.service import ExpenseService


def expense_to_dict(expense) -> Dict[str, Any]:
    return ExpenseOut.model_validate(expense).model_dump()


def recurring_to_dict(recurring) -> Dict[str, Any]:
    return RecurringExpenseOut.model_validate(recurring).model_dump()


def generate_recurring_expenses(now: Optional[datetime] = None, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        generated = ExpenseService(db).generate_recurring_expenses(now)
        return ok(count=len(generated), expenses=[expense_to_dict(e) for e in generated])
    return run_action(
        "generateRecurringExpenses",
        lambda: (uow or UnitOfWork()).run(work, "generar gastos recurrentes"),
    )


def get_expenses(month: Optional[int] = None, year: Optional[int] = None,
                 uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    uow = uow or UnitOfWork()
    generate_recurring_expenses(uow=uow)

    def action():
        with uow.session() as db:
            expenses = ExpenseService(db).list_expenses(month, year)
            return ok(expenses=[expense_to_dict(e) for e in expenses])
    return run_action("getExpenses", action)


def get_expense(expense_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(expense=expense_to_dict(ExpenseService(db).get_expense(expense_id)))
    return run_action("getExpense", action)


def create_expense(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ExpenseCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(expense=expense_to_dict(ExpenseService(db).create_expense(payload))),
            "crear gasto",
        )
    return run_action("createExpense", action)


def update_expense(expense_id: UUID, data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ExpenseUpdate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(expense=expense_to_dict(ExpenseService(db).update_expense(expense_id, payload))),
            "actualizar gasto",
        )
    return run_action("updateExpense", action)


def register_expense_payment(expense_id: UUID, data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ExpensePaymentCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(expense=expense_to_dict(ExpenseService(db).register_payment(expense_id, payload))),
            "registrar pago de gasto",
        )
    return run_action("registerExpensePayment", action)


def delete_expense(expense_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        description = ExpenseService(db).delete_expense(expense_id)
        return ok(message=f"Gasto '{description}' eliminado")
    return run_action("deleteExpense", lambda: (uow or UnitOfWork()).run(work, "eliminar gasto"))


def get_expense_categories() -> Dict[str, Any]:
    return ok(categories=settings.expense_categories_list)


# ===== GASTOS RECURRENTES =====

def get_recurring_expenses(uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(recurring_expenses=[recurring_to_dict(r) for r in ExpenseService(db).list_recurring()])
    return run_action("getRecurringExpenses", action)


def create_recurring_expense(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(RecurringExpenseCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(recurring_expense=recurring_to_dict(ExpenseService(db).create_recurring(payload))),
            "crear gasto recurrente",
        )
    return run_action("createRecurringExpense", action)


def toggle_recurring_expense(recurring_id: UUID, active: bool, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        recurring = ExpenseService(db).set_recurring_active(recurring_id, active)
        return ok(recurring_expense=recurring_to_dict(recurring))
    return run_action(
        "toggleRecurringExpense",
        lambda: (uow or UnitOfWork()).run(work, "activar/desactivar gasto recurrente"),
    )


def delete_recurring_expense(recurring_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        ExpenseService(db).delete_recurring(recurring_id)
        return ok(message="Gasto recurrente eliminado")
    return run_action("deleteRecurringExpense", lambda: (uow or UnitOfWork()).run(work, "eliminar gasto recurrente"))
