from fastapi import APIRouter

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.ncf import actions
from app.modules.ncf.schemas import NCFSequenceUpdate

ncf_router = APIRouter(prefix="/ncf-sequences", tags=["NCF"])


@ncf_router.get("/")
def list_sequences(uow: uow_dependency):
    return unwrap(actions.get_ncf_sequences(uow))


@ncf_router.put("/{ncf_type}")
def update_sequence(ncf_type: str, data: NCFSequenceUpdate, uow: uow_dependency):
    """Ajuste manual (no puede quedar por debajo del último NCF emitido)."""
    return unwrap(actions.update_ncf_sequence(ncf_type, data.current_value, uow))


@ncf_router.post("/{ncf_type}/resync")
def resync_sequence(ncf_type: str, uow: uow_dependency):
    return unwrap(actions.resync_ncf_sequence(ncf_type, uow))


@ncf_router.post("/sync")
def sync_sequences(uow: uow_dependency):
    return unwrap(actions.sync_ncf_sequences(uow))
