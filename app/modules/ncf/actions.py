"""
Administración de secuencias NCF.
"""
from typing import Any, Dict, Optional

from app.common.results import ok, run_action
from app.database.transaction import UnitOfWork
from app.modules.ncf.schemas import NCFSequenceOut
from app.modules.ncf.service import NCFSequenceAllocator, format_ncf


def sequence_to_dict(sequence) -> Dict[str, Any]:
    data = NCFSequenceOut.model_validate(sequence).model_dump()
    data["next_ncf"] = format_ncf(sequence.type, sequence.current_value + 1)
    return data


def get_ncf_sequences(uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """Lista los contadores, creando los tipos estándar que falten."""
    def work(db):
        sequences = NCFSequenceAllocator(db).list_sequences()
        return ok(sequences=[sequence_to_dict(s) for s in sequences])
    return run_action("getNCFSequences", lambda: (uow or UnitOfWork()).run(work, "listar secuencias NCF"))


def update_ncf_sequence(ncf_type: str, value: int, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        sequence = NCFSequenceAllocator(db).set_sequence(ncf_type, value)
        return ok(sequence=sequence_to_dict(sequence), message=f"Secuencia {sequence.type} actualizada")
    return run_action("updateNCFSequence", lambda: (uow or UnitOfWork()).run(work, "actualizar secuencia NCF"))


def resync_ncf_sequence(ncf_type: str, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        value = NCFSequenceAllocator(db).resync(ncf_type)
        return ok(type=ncf_type.upper(), current_value=value)
    return run_action("resyncNCFSequence", lambda: (uow or UnitOfWork()).run(work, "resincronizar secuencia NCF"))


def sync_ncf_sequences(uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """Resincroniza todos los tipos estándar contra los documentos emitidos."""
    def work(db):
        return ok(sequences=NCFSequenceAllocator(db).sync_all(), message="Secuencias NCF sincronizadas")
    return run_action("syncNCFSequences", lambda: (uow or UnitOfWork()).run(work, "sincronizar secuencias NCF"))
