from fastapi import APIRouter, Query, status
from uuid import UUID
from typing import Optional

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.clients import actions
from app.modules.clients.models import ContactType
from app.modules.clients.schemas import ClientCreate, ClientUpdate

client_router = APIRouter(prefix="/clients", tags=["Clients"])


@client_router.post("/", status_code=status.HTTP_201_CREATED)
def create_client(data: ClientCreate, uow: uow_dependency):
    return unwrap(actions.create_client(data, uow))


@client_router.get("/")
def list_clients(
    uow: uow_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre o RNC"),
    contact_type: Optional[ContactType] = Query(None),
):
    return unwrap(actions.get_clients(search, contact_type, uow))


@client_router.get("/{client_id}")
def get_client(client_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_client(client_id, uow))


@client_router.patch("/{client_id}")
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    uow: uow_dependency,
    cascade: bool = Query(True, description="Actualizar snapshots en facturas y notas de crédito"),
):
    return unwrap(actions.update_client(client_id, data, cascade, uow))


@client_router.delete("/{client_id}")
def delete_client(client_id: UUID, uow: uow_dependency):
    """Las facturas del cliente conservan sus datos"""
    return unwrap(actions.delete_client(client_id, uow))
