"""
Tests para el módulo de Clientes

- Validación de RNC (9 dígitos) y cédula (11 dígitos)
- Email único
- Snapshots en facturas: copia al emitir, actualización opcional en lote
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.common.validators import validate_cedula, validate_rnc, validate_tax_id
from app.modules.clients import actions
from app.modules.clients.schemas import ClientCreate
from app.modules.invoices import actions as invoice_actions


class TestTaxIdValidation:
    """Tests para RNC / cédula dominicanos"""

    def test_rnc(self):
        assert validate_rnc("131-24567-8")
        assert not validate_rnc("12345")

    def test_cedula(self):
        assert validate_cedula("001-1234567-8")
        assert not validate_cedula("001-1234567")

    def test_empty_is_final_consumer(self):
        assert validate_tax_id("")
        assert validate_tax_id(None)

    def test_schema_cleans_document(self):
        assert ClientCreate(name="Cliente", rnc="001-1234567-8").rnc == "00112345678"
        with pytest.raises(PydanticValidationError):
            ClientCreate(name="Cliente", rnc="123")


class TestClientService:

    def test_duplicate_email_rejected(self, uow, make_client):
        make_client(email="ventas@colmado.do")
        result = actions.create_client({"name": "Otro", "email": "ventas@colmado.do"}, uow)
        assert not result["success"]
        assert result["error"] == "conflict"

    def test_list_with_search(self, uow, make_client):
        make_client(name="Colmado Don Pedro", rnc=None)
        make_client(name="Supermercado Bravo", rnc=None)
        result = actions.get_clients(search="bravo", uow=uow)
        assert [c["name"] for c in result["clients"]] == ["Supermercado Bravo"]


class TestClientSnapshots:
    """El cambio de nombre/RNC se propaga a los documentos solo si se pide"""

    def _invoice_for(self, uow, client, product):
        result = invoice_actions.create_invoice({
            "client_id": client["id"],
            "items": [{"product_id": product["id"], "quantity": 1, "price": "50"}],
        }, uow)
        assert result["success"], result.get("message")
        return result["invoice"]

    def test_invoice_copies_client_data(self, uow, make_client, make_product):
        client = make_client(address="Av. Duarte 12")
        invoice = self._invoice_for(uow, client, make_product())
        assert invoice["client_name"] == client["name"]
        assert invoice["client_rnc"] == "131245678"
        assert invoice["client_address"] == "Av. Duarte 12"

    def test_update_without_cascade_keeps_snapshot(self, uow, make_client, make_product):
        client = make_client()
        invoice = self._invoice_for(uow, client, make_product())

        result = actions.update_client(client["id"], {"name": "Colmado Nuevo"}, cascade_snapshots=False, uow=uow)
        assert result["success"]
        assert result["updated_documents"] == 0

        stored = invoice_actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["client_name"] == "Colmado La Esquina"

    def test_update_with_cascade(self, uow, make_client, make_product):
        client = make_client()
        invoice = self._invoice_for(uow, client, make_product())

        result = actions.update_client(client["id"], {"name": "Colmado Nuevo", "rnc": "001-1234567-8"}, uow=uow)
        assert result["updated_documents"] == 1

        stored = invoice_actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["client_name"] == "Colmado Nuevo"
        assert stored["client_rnc"] == "00112345678"

    def test_unchanged_fields_do_not_cascade(self, uow, make_client, make_product):
        client = make_client()
        self._invoice_for(uow, client, make_product(stock=Decimal("3")))
        result = actions.update_client(client["id"], {"phone": "809-555-0101"}, uow=uow)
        assert result["updated_documents"] == 0


class TestClientDeletion:
    """Eliminar un cliente no toca sus documentos emitidos"""

    def test_delete_keeps_invoice_snapshot(self, uow, make_client, make_product):
        client = make_client(name="Colmado Don Pedro")
        invoice = invoice_actions.create_invoice({
            "client_id": client["id"],
            "items": [{"product_id": make_product()["id"], "quantity": 1, "price": "50"}],
        }, uow)["invoice"]

        result = actions.delete_client(client["id"], uow)

        assert result["success"], result.get("message")
        assert actions.get_client(client["id"], uow)["error"] == "not_found"
        stored = invoice_actions.get_invoice_by_id(invoice["id"], uow)["invoice"]
        assert stored["client_name"] == "Colmado Don Pedro"
        assert stored["client_id"] is None

    def test_delete_unknown_client(self, uow):
        assert actions.delete_client(uuid4(), uow)["error"] == "not_found"

    def test_delete_endpoint(self, api, make_client):
        client = make_client()
        assert api.delete(f"/clients/{client['id']}").status_code == 200
        assert api.get(f"/clients/{client['id']}").status_code == 404


class TestClientRouter:

    def test_create_invalid_rnc_rejected(self, api):
        response = api.post("/clients/", json={"name": "Cliente", "rnc": "12"})
        assert response.status_code == 422

    def test_patch_with_cascade_flag(self, api, make_client):
        client = make_client()
        response = api.patch(f"/clients/{client['id']}?cascade=false", json={"name": "Renombrado"})
        assert response.status_code == 200
        assert response.json()["client"]["name"] == "Renombrado"
