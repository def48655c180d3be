from fastapi import APIRouter, status, Query
from typing import Optional
from uuid import UUID

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.credit_notes import actions
from app.modules.credit_notes.schemas import CreditNoteCreate

credit_note_router = APIRouter(prefix="/credit-notes", tags=["Credit Notes"])


@credit_note_router.post("/", status_code=status.HTTP_201_CREATED)
def create_credit_note(data: CreditNoteCreate, uow: uow_dependency):
    """
    Emitir nota de crédito (B04) sobre una factura

    Devuelve la mercancía al stock y recalcula el estado de la factura.
    Las notas de crédito no se editan ni se eliminan.
    """
    return unwrap(actions.create_credit_note(data, uow))


@credit_note_router.get("/")
def list_credit_notes(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
):
    return unwrap(actions.get_all_credit_notes(month, year, uow))


@credit_note_router.get("/invoice/{invoice_id}")
def list_credit_notes_by_invoice(invoice_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_credit_notes_by_invoice(invoice_id, uow))


@credit_note_router.get("/{credit_note_id}")
def get_credit_note(credit_note_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_credit_note_by_id(credit_note_id, uow))
