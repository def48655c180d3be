"""
Tests para Notas de Crédito (B04)

- Devolución al stock de lo acreditado
- Estado de la factura: Nota de Crédito Parcial / Anulada
- Límite: nunca se acredita más de lo despachado
- Ciclo completo factura -> nota de crédito -> eliminación
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from app.common.dates import as_local
from app.modules.credit_notes import actions
from app.modules.inventory import actions as inventory_actions
from app.modules.invoices import actions as invoice_actions


def invoice_for(uow, *lines, ncf_type="B01", discount="0"):
    result = invoice_actions.create_invoice({
        "client_name": "Supermercado Bravo",
        "ncf_type": ncf_type,
        "discount": discount,
        "items": [
            {"product_id": product["id"], "quantity": str(quantity), "price": "100"}
            for product, quantity in lines
        ],
    }, uow)
    assert result["success"], result.get("message")
    return result["invoice"]


def credit(uow, invoice, *items, reason="Devolución", **extra):
    return actions.create_credit_note({
        "original_invoice_id": invoice["id"],
        "reason": reason,
        "items": list(items),
        **extra,
    }, uow)


class TestCreditNoteCreation:
    """Tests de emisión de notas de crédito"""

    def test_partial_credit_restocks_and_sets_status(self, uow, make_product, stock):
        product = make_product(stock=Decimal("100"))
        invoice = invoice_for(uow, (product, 10))

        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "5"})

        assert result["success"], result.get("message")
        note = result["credit_note"]
        assert note["ncf"] == "B0400000001"
        assert note["number"].startswith("NC-")
        assert note["original_invoice_number"] == invoice["number"]
        assert note["original_invoice_ncf"] == invoice["ncf"]
        assert result["invoice_status"] == "Nota de Crédito Parcial"
        assert stock(uow, product["id"]) == Decimal("95")

        entries = [m for m in inventory_actions.get_inventory_movements(product_id=product["id"], uow=uow)
                   if m["reference"] == note["number"]]
        assert len(entries) == 1
        assert entries[0]["type"] == "ENTRADA"

    def test_defaults_from_invoice(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 2), discount="10")

        note = credit(uow, invoice, {"line_id": invoice["line_items"][0]["id"], "quantity": "1"})["credit_note"]

        # 100 - 10% = 90; ITBIS 18% = 16.20
        assert note["discount"] == Decimal("10")
        assert note["tax_rate"] == Decimal("18")
        assert note["subtotal"] == Decimal("90")
        assert note["total"] == Decimal("106.20")

    def test_full_credit_voids_invoice(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 3))

        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "3"})

        assert result["invoice_status"] == "Anulada"
        stored = invoice_actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["credit_note_ids"] == [result["credit_note"]["id"]]
        assert Decimal(str(stored["balance_due"])) == Decimal("0")

    def test_payment_plus_credit_voids_invoice(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 2))  # total 236.00
        invoice_actions.create_payment({"invoice_id": invoice["id"], "amount": "118"}, uow)

        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"})

        assert result["invoice_status"] == "Anulada"
        payment = invoice_actions.create_payment({"invoice_id": invoice["id"], "amount": "1"}, uow)
        assert payment["error"] == "conflict"

    def test_cannot_exceed_shipped_quantity(self, uow, make_product, stock):
        product = make_product(stock=Decimal("100"))
        invoice = invoice_for(uow, (product, 10))
        assert credit(uow, invoice, {"product_id": product["id"], "quantity": "6"})["success"]

        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "5"})

        assert not result["success"]
        assert "disponible para acreditar 4" in result["message"]
        assert stock(uow, product["id"]) == Decimal("96")

    def test_duplicate_items_are_summed(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 4))
        result = credit(uow, invoice,
                        {"product_id": product["id"], "quantity": "3"},
                        {"product_id": product["id"], "quantity": "2"})
        assert not result["success"]

    def test_product_on_several_lines_needs_line_id(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 1), (product, 2))

        ambiguous = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"})
        assert ambiguous["error"] == "validation"

        line_id = invoice["line_items"][1]["id"]
        assert credit(uow, invoice, {"line_id": line_id, "quantity": "2"})["success"]

    def test_price_above_invoiced_rejected(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 1))
        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "1", "price": "150"})
        assert result["error"] == "validation"

    def test_reason_required(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 1))
        result = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"}, reason="  ")
        assert result["error"] == "validation"

    def test_unknown_invoice(self, uow):
        result = actions.create_credit_note({
            "original_invoice_id": str(uuid4()),
            "reason": "x",
            "items": [{"product_id": str(uuid4()), "quantity": "1"}],
        }, uow)
        assert result["error"] == "not_found"

    def test_date_object_anchored_at_local_noon(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 2))

        note = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"}, date=date(2024, 5, 20))["credit_note"]

        local = as_local(note["date"])
        assert (local.date(), local.hour) == (date(2024, 5, 20), 12)

    def test_failed_note_does_not_consume_ncf(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 1))
        credit(uow, invoice, {"product_id": product["id"], "quantity": "2"})

        note = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"})["credit_note"]
        assert note["ncf"] == "B0400000001"


class TestCreditNoteLifecycle:

    def test_invoice_credit_delete_round_trip(self, uow, make_product, stock):
        product = make_product(stock=Decimal("100"))

        invoice = invoice_for(uow, (product, 10))
        assert stock(uow, product["id"]) == Decimal("90")

        credit(uow, invoice, {"product_id": product["id"], "quantity": "5"})
        assert stock(uow, product["id"]) == Decimal("95")

        assert invoice_actions.delete_invoice(invoice["id"], uow)["success"]
        assert stock(uow, product["id"]) == Decimal("100")

        # la nota de crédito se conserva como documento fiscal
        notes = actions.get_credit_notes_by_invoice(invoice["id"], uow)["credit_notes"]
        assert len(notes) == 1

    def test_fully_credited_invoice_delete_returns_nothing(self, uow, make_product, stock):
        product = make_product(stock=Decimal("20"))
        invoice = invoice_for(uow, (product, 4))
        credit(uow, invoice, {"product_id": product["id"], "quantity": "4"})

        assert invoice_actions.delete_invoice(invoice["id"], uow)["success"]
        assert stock(uow, product["id"]) == Decimal("20")

    def test_queries(self, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 5))
        note = credit(uow, invoice, {"product_id": product["id"], "quantity": "1"}, date="2024-05-20")["credit_note"]

        assert actions.get_credit_note_by_id(note["id"], uow)["credit_note"]["number"] == note["number"]
        assert len(actions.get_all_credit_notes(month=5, year=2024, uow=uow)["credit_notes"]) == 1
        assert actions.get_all_credit_notes(month=6, year=2024, uow=uow)["credit_notes"] == []
        assert actions.get_credit_note_by_id(uuid4(), uow)["error"] == "not_found"


class TestCreditNoteRouter:

    def test_create_and_list(self, api, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 2))

        response = api.post("/credit-notes/", json={
            "original_invoice_id": str(invoice["id"]),
            "reason": "Producto dañado",
            "items": [{"product_id": str(product["id"]), "quantity": "1"}],
        })
        assert response.status_code == 201

        listed = api.get(f"/credit-notes/invoice/{invoice['id']}").json()["credit_notes"]
        assert len(listed) == 1

    def test_over_credit_is_409(self, api, uow, make_product):
        product = make_product()
        invoice = invoice_for(uow, (product, 1))
        response = api.post("/credit-notes/", json={
            "original_invoice_id": str(invoice["id"]),
            "reason": "Devolución",
            "items": [{"product_id": str(product["id"]), "quantity": "3"}],
        })
        assert response.status_code == 409
