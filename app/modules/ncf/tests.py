"""
Tests para secuencias NCF

- Asignación estrictamente creciente y formato B0100000001
- Ajuste manual que no puede retroceder por debajo de lo emitido
- Resincronización contra los documentos existentes
- Numeración interna FAC-<año>-<nnn>
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.common.errors import ValidationError
from app.modules.invoices import actions as invoice_actions
from app.modules.invoices.models import Invoice
from app.modules.ncf import actions
from app.modules.ncf.models import DocumentSequence, NCFSequence
from app.modules.ncf.service import DocumentNumberAllocator, NCFSequenceAllocator, format_ncf, parse_ncf_value


def invoice_payload(product, ncf_type="B01", quantity=1):
    return {
        "client_name": "Supermercado Nacional",
        "ncf_type": ncf_type,
        "items": [{"product_id": product["id"], "quantity": quantity, "price": "100"}],
    }


class TestNCFFormat:

    def test_format_and_parse(self):
        assert format_ncf("B01", 1) == "B0100000001"
        assert parse_ncf_value("B0100000042", "B01") == 42
        assert parse_ncf_value("B0200000042", "B01") is None
        assert parse_ncf_value(None, "B01") is None


class TestNCFAllocator:
    """Tests del asignador de NCF"""

    def test_allocation_is_strictly_increasing(self, uow):
        values = [uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("B01")) for _ in range(3)]
        assert values == ["B0100000001", "B0100000002", "B0100000003"]

    def test_types_are_independent(self, uow):
        uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("B01"))
        assert uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("B02")) == "B0200000001"

    def test_invalid_type(self, uow):
        with pytest.raises(ValidationError):
            uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("X99"))

    def test_allocation_rolled_back_with_failed_work(self, uow):
        def work(db):
            NCFSequenceAllocator(db).next_ncf("B01")
            raise RuntimeError("fallo al guardar la factura")

        with pytest.raises(RuntimeError):
            uow.run(work)

        assert uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("B01")) == "B0100000001"

    def test_set_sequence_rejects_going_below_issued(self, uow, make_product):
        product = make_product()
        for _ in range(3):
            assert invoice_actions.create_invoice(invoice_payload(product), uow)["success"]

        result = actions.update_ncf_sequence("B01", 1, uow)
        assert not result["success"]
        assert "B0100000003" in result["message"]

        result = actions.update_ncf_sequence("B01", 10, uow)
        assert result["success"]
        assert result["sequence"]["next_ncf"] == "B0100000011"

    def test_resync_sets_max_issued(self, uow, make_product):
        product = make_product()
        for _ in range(2):
            invoice_actions.create_invoice(invoice_payload(product), uow)

        # edición manual de la base
        uow.run(lambda db: db.execute(update(NCFSequence).where(NCFSequence.type == "B01").values(current_value=0)))

        result = actions.resync_ncf_sequence("B01", uow)
        assert result["success"]
        assert result["current_value"] == 2

        created = invoice_actions.create_invoice(invoice_payload(product), uow)
        assert created["invoice"]["ncf"] == "B0100000003"

    def test_duplicate_ncf_triggers_resync(self, uow, make_product):
        product = make_product()
        invoice_actions.create_invoice(invoice_payload(product), uow)
        uow.run(lambda db: db.execute(update(NCFSequence).where(NCFSequence.type == "B01").values(current_value=0)))

        result = invoice_actions.create_invoice(invoice_payload(product), uow)
        assert not result["success"]
        assert result["message"] == "Error de secuencia NCF (duplicado), intente de nuevo."

        retry = invoice_actions.create_invoice(invoice_payload(product), uow)
        assert retry["success"], retry.get("message")
        assert retry["invoice"]["ncf"] == "B0100000002"

    def test_set_sequence_direct_error(self, uow):
        uow.run(lambda db: NCFSequenceAllocator(db).set_sequence("B15", 5))
        with pytest.raises(ValidationError):
            uow.run(lambda db: NCFSequenceAllocator(db).set_sequence("B15", -1))

    def test_list_seeds_standard_types(self, uow):
        result = actions.get_ncf_sequences(uow)
        types = [s["type"] for s in result["sequences"]]
        assert types == ["B01", "B02", "B04", "B14", "B15", "B16"]
        assert all(s["current_value"] == 0 for s in result["sequences"])

    def test_sync_all(self, uow, make_product):
        product = make_product()
        invoice_actions.create_invoice(invoice_payload(product, "B02"), uow)
        result = actions.sync_ncf_sequences(uow)
        assert result["sequences"]["B02"] == 1
        assert result["sequences"]["B01"] == 0


class TestConcurrentAllocation:
    """Emisiones simultáneas desde varios hilos sobre la misma base"""

    def test_first_use_from_many_threads(self, uow):
        def issue(_):
            return uow.run(lambda db: NCFSequenceAllocator(db).next_ncf("B15"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(issue, range(24)))

        assert sorted(values) == [format_ncf("B15", n) for n in range(1, 25)]

    def test_concurrent_invoices_get_unique_consecutive_ncf(self, uow, make_product, stock):
        product = make_product(stock=Decimal("1000"))

        def issue(_):
            return invoice_actions.create_invoice(invoice_payload(product, "B02"), uow)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(issue, range(40)))

        failed = [r["message"] for r in results if not r["success"]]
        assert failed == []
        ncfs = sorted(r["invoice"]["ncf"] for r in results)
        assert ncfs == [format_ncf("B02", n) for n in range(1, 41)]
        assert len({r["invoice"]["number"] for r in results}) == 40
        assert stock(uow, product["id"]) == Decimal("960")


class TestDocumentNumbers:

    def test_numbers_per_prefix_and_year(self, uow):
        numbers = [uow.run(lambda db: DocumentNumberAllocator(db).next_number("FAC", 2024)) for _ in range(2)]
        assert numbers == ["FAC-2024-001", "FAC-2024-002"]
        assert uow.run(lambda db: DocumentNumberAllocator(db).next_number("FAC", 2025)) == "FAC-2025-001"
        assert uow.run(lambda db: DocumentNumberAllocator(db).next_number("NC", 2024)) == "NC-2024-001"

    def test_seeds_from_existing_documents(self, uow, make_product):
        product = make_product()
        created = invoice_actions.create_invoice(invoice_payload(product, "S/C"), uow)["invoice"]
        year = created["number"].split("-")[1]

        # renumerar a mano y perder el contador
        def tamper(db):
            db.execute(update(Invoice).values(number=f"FAC-{year}-007"))
            db.query(DocumentSequence).delete()

        uow.run(tamper)
        again = invoice_actions.create_invoice(invoice_payload(product, "S/C"), uow)["invoice"]
        assert again["number"] == f"FAC-{year}-008"


class TestNCFRouter:

    def test_put_below_issued_is_conflict(self, api, make_product, uow):
        product = make_product(stock=Decimal("5"))
        invoice_actions.create_invoice(invoice_payload(product), uow)

        response = api.put("/ncf-sequences/B01", json={"current_value": 0})
        assert response.status_code == 409

    def test_resync_endpoint(self, api):
        response = api.post("/ncf-sequences/b14/resync")
        assert response.status_code == 200
        assert response.json()["type"] == "B14"
