import logging
from typing import Any, Dict, Optional
from uuid import UUID

from app.common.errors import FiscalSequenceError
from app.common.results import ok, parse_input, run_action
from app.database.transaction import UnitOfWork
from app.modules.credit_notes.schemas import CreditNoteCreate, CreditNoteOut
from app.modules.credit_notes.service import CreditNoteService
from app.modules.invoices.actions import resync_after_duplicate

logger = logging.getLogger(__name__)


def credit_note_to_dict(credit_note) -> Dict[str, Any]:
    return CreditNoteOut.model_validate(credit_note).model_dump()


def create_credit_note(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """createCreditNote(input) -> {success, creditNote?, message?}"""
    uow = uow or UnitOfWork()

    def work(db, payload):
        service = CreditNoteService(db)
        credit_note = service.create_credit_note(payload)
        invoice = service.invoices.get_invoice(credit_note.original_invoice_id)
        return ok(credit_note=credit_note_to_dict(credit_note), invoice_status=invoice.status.value)

    def action():
        payload = parse_input(CreditNoteCreate, data)
        try:
            return uow.run(lambda db: work(db, payload), "crear nota de crédito")
        except FiscalSequenceError as e:
            resync_after_duplicate(uow, e)
            raise

    return run_action("createCreditNote", action)


def get_credit_note_by_id(credit_note_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(credit_note=credit_note_to_dict(CreditNoteService(db).get_credit_note(credit_note_id)))
    return run_action("getCreditNoteById", action)


def get_credit_notes_by_invoice(invoice_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            notes = CreditNoteService(db).get_credit_notes_by_invoice(invoice_id)
            return ok(credit_notes=[credit_note_to_dict(n) for n in notes])
    return run_action("getCreditNotesByInvoice", action)


def get_all_credit_notes(month: Optional[int] = None, year: Optional[int] = None,
                         uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            notes = CreditNoteService(db).get_all_credit_notes(month, year)
            return ok(credit_notes=[credit_note_to_dict(n) for n in notes])
    return run_action("getAllCreditNotes", action)
