"""
Tests para el módulo de Facturación

Cubren:
- Cálculo de totales (descuento por línea, descuento general, ITBIS)
- Creación: stock descontado, un movimiento SALIDA por producto, NCF
- Stock insuficiente: nada se escribe
- Eliminación: el stock vuelve a su valor original
- Pagos y recálculo de estado
- Vencimiento y reparación de saldos
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import NotSupportedError
from sqlalchemy.orm import Session, sessionmaker

from app.database.transaction import UnitOfWork
from app.modules.inventory import actions as inventory_actions
from app.modules.invoices import actions
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import compute_line, compute_totals, derive_status
from app.modules.ncf import actions as ncf_actions


def item(product, quantity, price="100", discount="0"):
    return {"product_id": product["id"], "quantity": str(quantity), "price": price, "discount": discount}


def create(uow, *items, ncf_type="B01", **extra):
    data = {"client_name": "Colmado La Esquina", "ncf_type": ncf_type, "items": list(items), **extra}
    return actions.create_invoice(data, uow)


class NoTransactionSession(Session):
    """Sesión cuyo motor rechaza abrir transacciones"""

    def connection(self, *args, **kwargs):
        raise NotSupportedError("BEGIN", None, Exception("transactions not supported"))


# ===== CÁLCULOS =====

class TestTotals:
    """Tests de los cálculos de la factura"""

    def test_line_discount(self):
        line = compute_line(Decimal("3"), Decimal("100"), Decimal("10"))
        assert line == {"subtotal": Decimal("300.00"), "total": Decimal("270.00")}

    def test_general_discount_then_tax(self):
        totals = compute_totals([Decimal("270.00"), Decimal("130.00")], Decimal("5"), Decimal("18"))
        assert totals["discount_amount"] == Decimal("20.00")
        assert totals["subtotal"] == Decimal("380.00")
        assert totals["tax"] == Decimal("68.40")
        assert totals["total"] == Decimal("448.40")

    def test_rounding_half_up(self):
        totals = compute_totals([Decimal("0.25")], Decimal("0"), Decimal("18"))
        # 0.045 -> 0.05
        assert totals["tax"] == Decimal("0.05")


class TestDeriveStatus:

    def test_rules(self):
        total = Decimal("1180")
        assert derive_status(total, total, 0) == InvoiceStatus.PAID
        assert derive_status(total, Decimal("680"), Decimal("500")) == InvoiceStatus.VOID
        assert derive_status(total, 0, Decimal("500")) == InvoiceStatus.PARTIAL_CREDIT
        assert derive_status(total, Decimal("100"), 0) == InvoiceStatus.PARTIAL
        assert derive_status(total, 0, 0) == InvoiceStatus.PENDING

    def test_tolerance(self):
        assert derive_status(Decimal("100.00"), Decimal("99.995"), 0) == InvoiceStatus.PAID

    def test_overdue_uses_due_date(self):
        from app.common.dates import parse_movement_date

        due = parse_movement_date("2024-01-10")
        assert derive_status(100, 0, 0, due, today=date(2024, 1, 11)) == InvoiceStatus.OVERDUE
        assert derive_status(100, 0, 0, due, today=date(2024, 1, 10)) == InvoiceStatus.PENDING


# ===== CREACIÓN =====

class TestInvoiceCreation:
    """Tests de creación de facturas"""

    def test_create_subtracts_stock_once_per_product(self, uow, make_product, stock):
        a = make_product(name="Chorizo A", stock=Decimal("100"))
        b = make_product(name="Chorizo B", stock=Decimal("30"))

        result = create(uow, item(a, 4), item(b, 10), item(a, 6))

        assert result["success"], result.get("message")
        invoice = result["invoice"]
        assert stock(uow, a["id"]) == Decimal("90")
        assert stock(uow, b["id"]) == Decimal("20")
        assert len(invoice["line_items"]) == 3
        assert invoice["ncf"] == "B0100000001"
        assert invoice["status"] == "Pendiente"

        out = [m for m in inventory_actions.get_inventory_movements(uow=uow) if m["type"] == "SALIDA"]
        assert sorted(m["quantity"] for m in out) == [Decimal("10"), Decimal("10")]
        assert {m["reference"] for m in out} == {invoice["number"]}

    def test_totals_stored(self, uow, make_product):
        a = make_product()
        invoice = create(uow, item(a, 2, price="500"), discount="10")["invoice"]
        # 1000 - 10% = 900; ITBIS 18% = 162
        assert Decimal(str(invoice["subtotal"])) == Decimal("900")
        assert Decimal(str(invoice["tax"])) == Decimal("162")
        assert Decimal(str(invoice["total"])) == Decimal("1062")
        assert Decimal(str(invoice["balance_due"])) == Decimal("1062")

    def test_number_format(self, uow, make_product):
        invoice = create(uow, item(make_product(), 1), ncf_type="S/C")["invoice"]
        parts = invoice["number"].split("-")
        assert parts[0] == "FAC" and len(parts[2]) == 3
        assert invoice["ncf"] is None

    def test_insufficient_stock_writes_nothing(self, uow, make_product, stock):
        a = make_product(name="Chorizo A", stock=Decimal("5"))

        result = create(uow, item(a, 8))

        assert not result["success"]
        assert result["message"] == "Stock insuficiente para Chorizo A. Disponible: 5, Solicitado: 8"
        assert stock(uow, a["id"]) == Decimal("5")
        assert actions.get_invoices(uow=uow)["invoices"] == []
        # el NCF no se consumió
        sequences = {s["type"]: s for s in ncf_actions.get_ncf_sequences(uow)["sequences"]}
        assert sequences["B01"]["current_value"] == 0

    def test_unknown_product(self, uow, make_product):
        result = create(uow, {"product_id": str(uuid4()), "product_name": "Fantasma", "quantity": "1", "price": "10"})
        assert not result["success"]
        assert result["error"] == "not_found"
        assert "Fantasma" in result["message"]

    @pytest.mark.parametrize("bad_item", [
        {"quantity": "0", "price": "10"},
        {"quantity": "1", "price": "0"},
    ])
    def test_invalid_lines(self, uow, make_product, bad_item):
        product = make_product()
        result = create(uow, {"product_id": product["id"], **bad_item})
        assert not result["success"]
        assert result["error"] == "validation"

    def test_empty_items(self, uow):
        result = create(uow)
        assert result["error"] == "validation"

    def test_credit_note_type_not_allowed(self, uow, make_product):
        result = create(uow, item(make_product(), 1), ncf_type="B04")
        assert not result["success"]
        assert "B04" in result["message"]

    def test_sequential_mode_logs_warning(self, sequential_uow, make_product, stock, caplog):
        a = make_product(stock=Decimal("10"))
        with caplog.at_level(logging.WARNING):
            result = create(sequential_uow, item(a, 3))
        assert result["success"], result.get("message")
        assert stock(sequential_uow, a["id"]) == Decimal("7")
        assert any("sin transacción" in r.getMessage() for r in caplog.records)

    def test_required_mode_without_transactions_fails(self, engine, make_product):
        uow = UnitOfWork(engine.execution_options(isolation_level="AUTOCOMMIT"), mode="required")
        result = create(uow, item(make_product(), 1))
        assert not result["success"]
        assert result["error"] == "unavailable"

    def test_engine_rejecting_begin_falls_back(self, engine, uow, make_product, stock, caplog):
        a = make_product(stock=Decimal("10"))
        rejecting = UnitOfWork(engine, mode="auto")
        rejecting._session_factory = sessionmaker(
            bind=engine, class_=NoTransactionSession, autoflush=False, expire_on_commit=False
        )

        with caplog.at_level(logging.WARNING):
            result = create(rejecting, item(a, 4))

        assert result["success"], result.get("message")
        assert stock(uow, a["id"]) == Decimal("6")
        assert any("sin transacción" in r.getMessage() for r in caplog.records)

    def test_engine_rejecting_begin_in_required_mode(self, engine, uow, make_product, stock):
        a = make_product(stock=Decimal("10"))
        rejecting = UnitOfWork(engine, mode="required")
        rejecting._session_factory = sessionmaker(
            bind=engine, class_=NoTransactionSession, autoflush=False, expire_on_commit=False
        )

        result = create(rejecting, item(a, 4))

        assert result["error"] == "unavailable"
        assert stock(uow, a["id"]) == Decimal("10")


# ===== ELIMINACIÓN =====

class TestInvoiceDeletion:

    def test_create_then_delete_restores_stock(self, uow, make_product, stock):
        a = make_product(stock=Decimal("100"))
        invoice = create(uow, item(a, 10), item(a, 5))["invoice"]
        assert stock(uow, a["id"]) == Decimal("85")

        result = actions.delete_invoice(invoice["id"], uow)

        assert result["success"], result.get("message")
        assert stock(uow, a["id"]) == Decimal("100")
        entries = [m for m in inventory_actions.get_inventory_movements(product_id=a["id"], uow=uow)
                   if m["reference"] == invoice["number"] and m["type"] == "ENTRADA"]
        assert len(entries) == 1
        assert entries[0]["quantity"] == Decimal("15")
        assert actions.get_invoice_by_id(invoice["id"], uow)["error"] == "not_found"

    def test_delete_removes_payments(self, uow, make_product):
        invoice = create(uow, item(make_product(), 1))["invoice"]
        actions.create_payment({"invoice_id": invoice["id"], "amount": "50"}, uow)

        actions.delete_invoice(invoice["id"], uow)

        assert actions.get_all_payments(uow=uow)["payments"] == []

    def test_delete_unknown(self, uow):
        assert actions.delete_invoice(uuid4(), uow)["error"] == "not_found"

    def test_delete_after_product_removed(self, uow, make_product):
        from app.modules.products import actions as product_actions

        a = make_product()
        invoice = create(uow, item(a, 1))["invoice"]
        product_actions.delete_product(a["id"], uow)

        assert actions.delete_invoice(invoice["id"], uow)["success"]


# ===== PAGOS =====

class TestPayments:
    """Tests de pagos y estado de la factura"""

    def _invoice(self, uow, make_product):
        # total 118.00
        return create(uow, item(make_product(), 1))["invoice"]

    def test_partial_then_full(self, uow, make_product):
        invoice = self._invoice(uow, make_product)

        first = actions.create_payment({"invoice_id": invoice["id"], "amount": "18"}, uow)
        assert first["success"], first.get("message")
        stored = actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["status"] == "Parcial"
        assert stored["payment_ids"] == [first["payment"]["id"]]

        actions.create_payment({"invoice_id": invoice["id"], "amount": "100", "method": "Transferencia"}, uow)
        stored = actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["status"] == "Pagada"
        assert Decimal(str(stored["balance_due"])) == Decimal("0")

    def test_overpayment_rejected(self, uow, make_product):
        invoice = self._invoice(uow, make_product)
        result = actions.create_payment({"invoice_id": invoice["id"], "amount": "118.02"}, uow)
        assert not result["success"]
        assert result["error"] == "validation"

    def test_non_positive_payment_rejected(self, uow, make_product):
        invoice = self._invoice(uow, make_product)
        assert actions.create_payment({"invoice_id": invoice["id"], "amount": "0"}, uow)["error"] == "validation"

    def test_update_and_delete_payment(self, uow, make_product):
        invoice = self._invoice(uow, make_product)
        payment = actions.create_payment({"invoice_id": invoice["id"], "amount": "18"}, uow)["payment"]

        updated = actions.update_payment(payment["id"], {"amount": "118"}, uow)
        assert updated["success"], updated.get("message")
        assert actions.get_invoice_by_id(invoice["id"], uow)["invoice"]["status"] == "Pagada"

        deleted = actions.delete_payment(payment["id"], uow)
        assert deleted["invoice_status"] == "Pendiente"
        assert actions.get_payments_by_invoice(invoice["id"], uow)["payments"] == []

    def test_payments_month_filter(self, uow, make_product):
        invoice = self._invoice(uow, make_product)
        actions.create_payment({"invoice_id": invoice["id"], "amount": "10", "payment_date": "2024-03-31"}, uow)
        actions.create_payment({"invoice_id": invoice["id"], "amount": "10", "payment_date": "2024-04-01"}, uow)

        march = actions.get_all_payments(month=3, year=2024, uow=uow)["payments"]
        assert [Decimal(str(p["amount"])) for p in march] == [Decimal("10")]


# ===== LISTADOS Y MANTENIMIENTO =====

class TestInvoiceMaintenance:

    def test_month_listing_includes_outstanding(self, uow, make_product):
        product = make_product()
        old_pending = create(uow, item(product, 1), date="2023-06-10")["invoice"]
        old_paid = create(uow, item(product, 1), date="2023-06-11")["invoice"]
        actions.create_payment({"invoice_id": old_paid["id"], "amount": str(old_paid["total"])}, uow)
        current = create(uow, item(product, 1), date="2024-02-15")["invoice"]

        numbers = {i["number"] for i in actions.get_invoices(month=2, year=2024, uow=uow)["invoices"]}
        assert numbers == {old_pending["number"], current["number"]}

    def test_mark_overdue(self, uow, make_product):
        product = make_product()
        invoice = create(uow, item(product, 1), date="2024-01-01", due_date="2024-01-31")["invoice"]

        assert actions.mark_overdue_invoices(date(2024, 1, 31), uow)["count"] == 0
        assert actions.mark_overdue_invoices(date(2024, 2, 1), uow)["count"] == 1
        assert actions.get_invoice_by_id(invoice["id"], uow)["invoice"]["status"] == "Vencida"

    def test_fix_balances(self, uow, make_product):
        from sqlalchemy import update
        from app.modules.invoices.models import Invoice

        invoice = create(uow, item(make_product(), 1), due_date=(date.today() + timedelta(days=30)).isoformat())["invoice"]
        actions.create_payment({"invoice_id": invoice["id"], "amount": "18"}, uow)
        uow.run(lambda db: db.execute(
            update(Invoice).values(paid_amount=0, status=InvoiceStatus.PENDING)
        ))

        assert actions.fix_invoice_balances(uow)["count"] == 1
        stored = actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["status"] == "Parcial"
        assert Decimal(str(stored["paid_amount"])) == Decimal("18")


class TestInvoiceRouter:

    def test_insufficient_stock_is_409(self, api, make_product):
        product = make_product(stock=Decimal("1"))
        response = api.post("/invoices/", json={
            "client_name": "Cliente",
            "items": [{"product_id": str(product["id"]), "quantity": "2", "price": "10"}],
        })
        assert response.status_code == 409
        assert "Stock insuficiente" in response.json()["detail"]

    def test_create_list_delete(self, api, make_product):
        product = make_product()
        response = api.post("/invoices/", json={
            "client_name": "Cliente",
            "ncf_type": "b02",
            "items": [{"product_id": str(product["id"]), "quantity": "1", "price": "10"}],
        })
        assert response.status_code == 201
        invoice = response.json()["invoice"]
        assert invoice["ncf"] == "B0200000001"

        assert len(api.get("/invoices/").json()["invoices"]) == 1
        assert api.delete(f"/invoices/{invoice['id']}").status_code == 200
        assert api.get(f"/invoices/{invoice['id']}").status_code == 404

    def test_payment_endpoints(self, api, make_product):
        product = make_product()
        invoice = api.post("/invoices/", json={
            "client_name": "Cliente",
            "items": [{"product_id": str(product["id"]), "quantity": "1", "price": "100"}],
        }).json()["invoice"]

        response = api.post("/payments/", json={"invoice_id": invoice["id"], "amount": "50"})
        assert response.status_code == 201
        assert len(api.get(f"/invoices/{invoice['id']}/payments").json()["payments"]) == 1
