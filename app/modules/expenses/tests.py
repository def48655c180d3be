"""
Tests para el módulo de Gastos

- Estado derivado de los abonos (Pendiente / Parcial / Pagada)
- Abonos que no exceden el saldo
- Gastos recurrentes: generación, avance de ciclo y recuperación de ciclos perdidos
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from app.common.dates import as_local, local_tz
from app.modules.expenses import actions


def local(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=local_tz())


def expense_payload(**extra):
    return {
        "description": "Factura de luz",
        "category": "Servicios",
        "amount": "1500",
        "date": "2024-03-10",
        **extra,
    }


def recurring_payload(**extra):
    return {
        "description": "Alquiler del local",
        "category": "Servicios",
        "amount": "25000",
        "frequency": "Mensual",
        "next_run": "2024-01-31",
        **extra,
    }


def next_run_of(uow, recurring_id) -> date:
    recurring = next(
        r for r in actions.get_recurring_expenses(uow)["recurring_expenses"] if r["id"] == recurring_id
    )
    return as_local(recurring["next_run"]).date()


class TestExpenses:
    """Tests de gastos y abonos"""

    def test_create_pending(self, uow):
        result = actions.create_expense(expense_payload(), uow)

        assert result["success"], result.get("message")
        expense = result["expense"]
        assert expense["status"] == "Pendiente"
        assert expense["paid_amount"] == Decimal("0")
        assert as_local(expense["date"]).date() == date(2024, 3, 10)

    def test_create_paid_records_full_payment(self, uow):
        expense = actions.create_expense(expense_payload(status="Pagada"), uow)["expense"]

        assert expense["status"] == "Pagada"
        assert expense["paid_amount"] == Decimal("1500")
        assert len(expense["payments"]) == 1

    def test_initial_partial_payment(self, uow):
        expense = actions.create_expense(expense_payload(paid_amount="500"), uow)["expense"]
        assert expense["status"] == "Parcial"

    def test_required_fields(self, uow):
        assert actions.create_expense(expense_payload(description="  "), uow)["error"] == "validation"
        assert actions.create_expense(expense_payload(amount="0"), uow)["error"] == "validation"

    def test_payments_until_paid(self, uow):
        expense = actions.create_expense(expense_payload(), uow)["expense"]

        partial = actions.register_expense_payment(expense["id"], {"amount": "1000", "method": "Transferencia"}, uow)
        assert partial["expense"]["status"] == "Parcial"
        assert partial["expense"]["payment_method"] == "Transferencia"

        too_much = actions.register_expense_payment(expense["id"], {"amount": "600"}, uow)
        assert too_much["error"] == "validation"

        paid = actions.register_expense_payment(expense["id"], {"amount": "500", "date": "2024-03-15"}, uow)
        assert paid["expense"]["status"] == "Pagada"
        assert paid["expense"]["paid_amount"] == Decimal("1500")
        assert as_local(paid["expense"]["last_payment_date"]).date() == date(2024, 3, 15)

        again = actions.register_expense_payment(expense["id"], {"amount": "1"}, uow)
        assert again["error"] == "conflict"

    def test_amount_cannot_drop_below_paid(self, uow):
        expense = actions.create_expense(expense_payload(paid_amount="1000"), uow)["expense"]

        result = actions.update_expense(expense["id"], {"amount": "800"}, uow)
        assert result["error"] == "conflict"

        result = actions.update_expense(expense["id"], {"amount": "1000", "supplier": "EDESUR"}, uow)
        assert result["expense"]["status"] == "Pagada"
        assert result["expense"]["supplier"] == "EDESUR"

    def test_month_listing_and_delete(self, uow):
        march = actions.create_expense(expense_payload(), uow)["expense"]
        actions.create_expense(expense_payload(date="2024-04-02"), uow)

        listed = actions.get_expenses(month=3, year=2024, uow=uow)["expenses"]
        assert [e["id"] for e in listed] == [march["id"]]

        assert actions.delete_expense(march["id"], uow)["success"]
        assert actions.get_expense(march["id"], uow)["error"] == "not_found"
        assert actions.delete_expense(uuid4(), uow)["error"] == "not_found"


class TestRecurringExpenses:
    """Tests de generación de gastos recurrentes"""

    def test_generates_once_and_advances_month(self, uow):
        recurring = actions.create_recurring_expense(recurring_payload(), uow)["recurring_expense"]

        result = actions.generate_recurring_expenses(now=local(2024, 2, 10), uow=uow)

        assert result["count"] == 1
        expense = result["expenses"][0]
        assert expense["status"] == "Pendiente"
        assert expense["recurring_expense_id"] == recurring["id"]
        assert "Recurrente: Mensual" in expense["notes"]
        # 31 de enero + 1 mes = último día de febrero
        assert next_run_of(uow, recurring["id"]) == date(2024, 2, 29)

        assert actions.generate_recurring_expenses(now=local(2024, 2, 10), uow=uow)["count"] == 0

    def test_missed_cycles_reschedule_from_now(self, uow):
        recurring = actions.create_recurring_expense(
            recurring_payload(frequency="Semanal", next_run="2024-01-01"), uow
        )["recurring_expense"]

        result = actions.generate_recurring_expenses(now=local(2024, 3, 1), uow=uow)

        assert result["count"] == 1
        assert next_run_of(uow, recurring["id"]) == date(2024, 3, 8)

    def test_monthly_catch_up_keeps_day_of_month(self, uow):
        recurring = actions.create_recurring_expense(
            recurring_payload(next_run="2024-01-05", day_of_month=5), uow
        )["recurring_expense"]

        actions.generate_recurring_expenses(now=local(2024, 3, 20), uow=uow)

        assert next_run_of(uow, recurring["id"]) == date(2024, 4, 5)

    def test_day_of_month_only_for_monthly(self, uow):
        result = actions.create_recurring_expense(recurring_payload(frequency="Anual", day_of_month=3), uow)
        assert result["error"] == "validation"

    def test_inactive_is_skipped(self, uow):
        recurring = actions.create_recurring_expense(recurring_payload(), uow)["recurring_expense"]
        actions.toggle_recurring_expense(recurring["id"], False, uow)

        assert actions.generate_recurring_expenses(now=local(2024, 2, 10), uow=uow)["count"] == 0

    def test_listing_generates_due_expenses(self, uow):
        actions.create_recurring_expense(recurring_payload(next_run="2020-01-01"), uow)

        expenses = actions.get_expenses(uow=uow)["expenses"]

        assert [e["description"] for e in expenses] == ["Alquiler del local"]

    def test_delete_keeps_generated_expenses(self, uow):
        recurring = actions.create_recurring_expense(recurring_payload(), uow)["recurring_expense"]
        expense = actions.generate_recurring_expenses(now=local(2024, 2, 10), uow=uow)["expenses"][0]

        assert actions.delete_recurring_expense(recurring["id"], uow)["success"]

        stored = actions.get_expense(expense["id"], uow)["expense"]
        assert stored["recurring_expense_id"] is None
        assert actions.get_recurring_expenses(uow)["recurring_expenses"] == []

    def test_concurrent_generation_creates_one_expense(self, uow):
        actions.create_recurring_expense(recurring_payload(), uow)

        def generate(_):
            return actions.generate_recurring_expenses(now=local(2024, 2, 10), uow=uow)

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(generate, range(6)))

        assert all(r["success"] for r in results)
        assert sum(r["count"] for r in results) == 1


class TestExpenseRouter:

    def test_create_pay_and_list(self, api):
        response = api.post("/expenses/", json=expense_payload())
        assert response.status_code == 201
        expense = response.json()["expense"]

        response = api.post(f"/expenses/{expense['id']}/payments", json={"amount": "1500"})
        assert response.status_code == 200
        assert response.json()["expense"]["status"] == "Pagada"

        listed = api.get("/expenses/?month=3&year=2024").json()["expenses"]
        assert len(listed) == 1

    def test_overpayment_is_400(self, api):
        expense = api.post("/expenses/", json=expense_payload()).json()["expense"]
        response = api.post(f"/expenses/{expense['id']}/payments", json={"amount": "2000"})
        assert response.status_code == 400

    def test_categories(self, api):
        assert "Materia Prima" in api.get("/expenses/categories").json()["categories"]
