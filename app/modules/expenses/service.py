import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.common.dates import add_months, as_local, local_today, month_range, parse_movement_date, to_utc, utcnow, with_day_of_month
from app.common.errors import ConsistencyError, NotFoundError, ValidationError
from app.common.validators import round_money, to_decimal
from app.modules.expenses.models import Expense, ExpensePayment, ExpenseStatus, RecurrenceFrequency, RecurringExpense
from app.modules.expenses.schemas import ExpenseCreate, ExpensePaymentCreate, ExpenseUpdate, RecurringExpenseCreate
from app.modules.invoices.models import PaymentMethod
from app.modules.invoices.service import tolerance

logger = logging.getLogger(__name__)

CYCLE_DAYS = {RecurrenceFrequency.WEEKLY: 7, RecurrenceFrequency.BIWEEKLY: 14}


def derive_expense_status(amount, paid) -> ExpenseStatus:
    paid = to_decimal(paid)
    if paid >= to_decimal(amount) - tolerance():
        return ExpenseStatus.PAID
    if paid > 0:
        return ExpenseStatus.PARTIAL
    return ExpenseStatus.PENDING


def advance(value: datetime, frequency: RecurrenceFrequency) -> datetime:
    """Un ciclo después de ``value``"""
    if frequency in CYCLE_DAYS:
        return value + timedelta(days=CYCLE_DAYS[frequency])
    return add_months(value, 1 if frequency == RecurrenceFrequency.MONTHLY else 12)


def next_run_after(recurring: RecurringExpense, now: datetime) -> datetime:
    """
    Próxima ejecución después de generar el gasto del ciclo actual.

    Avanza un ciclo desde ``next_run``. Si aun así queda en el pasado (se
    perdieron varios ciclos) se reprograma a un ciclo desde ahora; en los
    mensuales con ``day_of_month`` se respeta ese día. Se calcula en hora
    local para que los meses y los días no se corran con el cambio a UTC.
    """
    local_now = as_local(now)
    candidate = advance(as_local(recurring.next_run), recurring.frequency)
    if candidate >= local_now:
        return to_utc(candidate)

    candidate = advance(local_now, recurring.frequency)
    if recurring.frequency == RecurrenceFrequency.MONTHLY and recurring.day_of_month:
        candidate = with_day_of_month(candidate, recurring.day_of_month)
        if candidate < local_now:
            candidate = with_day_of_month(add_months(candidate, 1), recurring.day_of_month)
    return to_utc(candidate)


class ExpenseService:
    """
    Gastos del negocio y sus abonos.

    ``paid_amount`` es siempre la suma de los abonos registrados y el estado
    (Pendiente / Parcial / Pagada) se deriva de él.
    """

    def __init__(self, db: Session):
        self.db = db

    # ===== GASTOS =====

    def create_expense(self, data: ExpenseCreate) -> Expense:
        amount = self._positive(data.amount, "El monto del gasto debe ser mayor que cero")
        expense_date = parse_movement_date(data.date)
        initial = amount if data.status == ExpenseStatus.PAID else round_money(data.paid_amount)
        if initial > amount + tolerance():
            raise ValidationError(f"El abono inicial {initial} excede el monto del gasto ({amount})")

        expense = Expense(
            description=self._required(data.description, "La descripción del gasto es requerida"),
            category=self._required(data.category, "La categoría del gasto es requerida"),
            amount=amount,
            date=expense_date,
            supplier=data.supplier,
            invoice_number=data.invoice_number,
            payment_method=data.payment_method,
            reference=data.reference,
            notes=data.notes,
        )
        self.db.add(expense)
        if initial > 0:
            expense.payments.append(ExpensePayment(
                amount=initial, method=data.payment_method, date=expense_date, notes="Abono inicial",
            ))
            expense.last_payment_date = expense_date
        self._recalculate(expense)
        self.db.flush()
        logger.info(f"Gasto creado: {expense.description} ({expense.amount}, {expense.status.value})")
        return expense

    def get_expense(self, expense_id: UUID) -> Expense:
        expense = self.db.get(Expense, expense_id)
        if not expense:
            raise NotFoundError("Gasto", expense_id)
        return expense

    def list_expenses(self, month: Optional[int] = None, year: Optional[int] = None) -> List[Expense]:
        query = select(Expense)
        if month is not None or year is not None:
            today = local_today()
            start, end = month_range(month or today.month, year or today.year)
            query = query.where(Expense.date >= start, Expense.date < end)
        return list(self.db.execute(query.order_by(Expense.date.desc())).scalars().all())

    def update_expense(self, expense_id: UUID, data: ExpenseUpdate) -> Expense:
        expense = self.get_expense(expense_id)
        changes = data.model_dump(exclude_unset=True)

        if "description" in changes:
            expense.description = self._required(changes["description"], "La descripción del gasto es requerida")
        if "category" in changes:
            expense.category = self._required(changes["category"], "La categoría del gasto es requerida")
        if changes.get("amount") is not None:
            amount = self._positive(changes["amount"], "El monto del gasto debe ser mayor que cero")
            paid = to_decimal(expense.paid_amount)
            if amount < paid - tolerance():
                raise ConsistencyError(f"El monto no puede ser menor que lo ya pagado ({round_money(paid)})")
            expense.amount = amount
        if changes.get("date") is not None:
            expense.date = parse_movement_date(changes["date"])
        if changes.get("payment_method") is not None:
            expense.payment_method = changes["payment_method"]
        for key in ("supplier", "invoice_number", "reference", "notes"):
            if key in changes:
                setattr(expense, key, changes[key])

        self._recalculate(expense)
        self.db.flush()
        return expense

    def register_payment(self, expense_id: UUID, data: ExpensePaymentCreate) -> Expense:
        """Abono a un gasto; no puede exceder el saldo pendiente."""
        expense = self.get_expense(expense_id)
        if expense.status == ExpenseStatus.PAID:
            raise ConsistencyError(f"El gasto '{expense.description}' ya está pagado")
        amount = self._positive(data.amount, "El monto del pago debe ser mayor que cero")
        outstanding = to_decimal(expense.amount) - to_decimal(expense.paid_amount)
        if amount > outstanding + tolerance():
            raise ValidationError(
                f"El monto {amount} excede el saldo pendiente del gasto ({round_money(outstanding)})"
            )

        payment_date = parse_movement_date(data.date)
        expense.payments.append(ExpensePayment(amount=amount, method=data.method, date=payment_date, notes=data.notes))
        expense.payment_method = data.method
        expense.last_payment_date = payment_date
        self._recalculate(expense)
        self.db.flush()
        logger.info(f"Abono de {amount} al gasto '{expense.description}': {expense.status.value}")
        return expense

    def delete_expense(self, expense_id: UUID) -> str:
        expense = self.get_expense(expense_id)
        description = expense.description
        self.db.delete(expense)
        self.db.flush()
        logger.info(f"Gasto eliminado: {description}")
        return description

    # ===== GASTOS RECURRENTES =====

    def list_recurring(self) -> List[RecurringExpense]:
        return list(self.db.execute(
            select(RecurringExpense).order_by(RecurringExpense.created_at.desc())
        ).scalars().all())

    def get_recurring(self, recurring_id: UUID) -> RecurringExpense:
        recurring = self.db.get(RecurringExpense, recurring_id)
        if not recurring:
            raise NotFoundError("Gasto recurrente", recurring_id)
        return recurring

    def create_recurring(self, data: RecurringExpenseCreate) -> RecurringExpense:
        if data.day_of_month and data.frequency != RecurrenceFrequency.MONTHLY:
            raise ValidationError("El día del mes solo aplica a la frecuencia Mensual")
        recurring = RecurringExpense(
            description=self._required(data.description, "La descripción del gasto es requerida"),
            category=self._required(data.category, "La categoría del gasto es requerida"),
            amount=self._positive(data.amount, "El monto del gasto debe ser mayor que cero"),
            supplier=data.supplier,
            frequency=data.frequency,
            day_of_month=data.day_of_month,
            next_run=parse_movement_date(data.next_run),
            active=data.active,
        )
        self.db.add(recurring)
        self.db.flush()
        logger.info(f"Gasto recurrente creado: {recurring.description} ({recurring.frequency.value})")
        return recurring

    def set_recurring_active(self, recurring_id: UUID, active: bool) -> RecurringExpense:
        recurring = self.get_recurring(recurring_id)
        recurring.active = active
        self.db.flush()
        return recurring

    def delete_recurring(self, recurring_id: UUID) -> None:
        """Los gastos ya generados se conservan, sin referencia a la plantilla."""
        recurring = self.get_recurring(recurring_id)
        self.db.execute(
            update(Expense).where(Expense.recurring_expense_id == recurring.id).values(recurring_expense_id=None)
        )
        self.db.delete(recurring)
        self.db.flush()

    def generate_recurring_expenses(self, now: Optional[datetime] = None) -> List[Expense]:
        """
        Genera un gasto Pendiente por cada plantilla activa vencida.

        Cada plantilla se reclama con un UPDATE condicionado a su ``next_run``
        leído: si otro proceso ya la avanzó, no se genera un duplicado.
        """
        now = to_utc(now) if now else utcnow()
        due = self.db.execute(
            select(RecurringExpense).where(RecurringExpense.active.is_(True), RecurringExpense.next_run <= now)
        ).scalars().all()

        table = RecurringExpense.__table__
        generated = []
        for recurring in due:
            following = next_run_after(recurring, now)
            claimed = self.db.execute(
                update(table)
                .where(table.c.id == recurring.id, table.c.next_run == recurring.next_run)
                .values(next_run=following, last_generated=now, updated_at=now)
            ).rowcount
            self.db.expire(recurring)
            if not claimed:
                logger.info(f"Gasto recurrente {recurring.id} ya generado por otro proceso")
                continue

            expense = Expense(
                description=recurring.description,
                category=recurring.category,
                amount=recurring.amount,
                date=now,
                supplier=recurring.supplier,
                payment_method=PaymentMethod.CASH,
                status=ExpenseStatus.PENDING,
                paid_amount=Decimal("0"),
                notes=f"Generado automáticamente - Recurrente: {recurring.frequency.value}",
                recurring_expense_id=recurring.id,
            )
            self.db.add(expense)
            generated.append(expense)

        if generated:
            self.db.flush()
            logger.info(f"{len(generated)} gasto(s) recurrente(s) generados")
        return generated

    @staticmethod
    def _required(value: Optional[str], message: str) -> str:
        if not (value or "").strip():
            raise ValidationError(message)
        return value.strip()

    @staticmethod
    def _positive(value, message: str) -> Decimal:
        amount = round_money(to_decimal(value))
        if amount <= 0:
            raise ValidationError(message)
        return amount

    def _recalculate(self, expense: Expense):
        paid = sum((to_decimal(p.amount) for p in expense.payments), Decimal("0"))
        expense.paid_amount = round_money(paid)
        expense.status = derive_expense_status(expense.amount, paid)
