from typing import Any, Dict, Optional
from uuid import UUID

from app.common.results import ok, parse_input, run_action
from app.database.transaction import UnitOfWork
from app.modules.clients.models import ContactType
from app.modules.clients.schemas import ClientCreate, ClientOut, ClientUpdate
from app.modules.clients.service import ClientService


def client_to_dict(client) -> Dict[str, Any]:
    return ClientOut.model_validate(client).model_dump()


def create_client(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ClientCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(client=client_to_dict(ClientService(db).create_client(payload))),
            "crear cliente",
        )
    return run_action("createClient", action)


def update_client(client_id: UUID, data, cascade_snapshots: bool = True,
                  uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db, payload):
        result = ClientService(db).update_client(client_id, payload, cascade_snapshots)
        return ok(client=client_to_dict(result["client"]), updated_documents=result["updated_documents"])

    def action():
        payload = parse_input(ClientUpdate, data)
        return (uow or UnitOfWork()).run(lambda db: work(db, payload), "actualizar cliente")
    return run_action("updateClient", action)


def get_clients(search: Optional[str] = None, contact_type: Optional[ContactType] = None,
                uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            clients = ClientService(db).list_clients(search, contact_type)
            return ok(clients=[client_to_dict(c) for c in clients])
    return run_action("getClients", action)


def get_client(client_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(client=client_to_dict(ClientService(db).get_client(client_id)))
    return run_action("getClient", action)


def delete_client(client_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        name = ClientService(db).delete_client(client_id)
        return ok(message=f"Cliente {name} eliminado")
    return run_action("deleteClient", lambda: (uow or UnitOfWork()).run(work, "eliminar cliente"))
