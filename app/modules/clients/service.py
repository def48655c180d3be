import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.common.errors import ConsistencyError, NotFoundError, ValidationError
from app.modules.clients.models import Client, ContactType
from app.modules.clients.schemas import ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)

# Campo del cliente -> campo snapshot en facturas / notas de crédito
INVOICE_SNAPSHOT_FIELDS = {"name": "client_name", "rnc": "client_rnc", "address": "client_address"}
CREDIT_NOTE_SNAPSHOT_FIELDS = {"name": "client_name", "rnc": "client_rnc"}


class ClientService:
    """Servicio de clientes"""

    def __init__(self, db: Session):
        self.db = db

    def create_client(self, data: ClientCreate) -> Client:
        if not data.name.strip():
            raise ValidationError("El nombre del cliente es requerido")
        self._check_unique_email(data.email)

        client = Client(**data.model_dump())
        client.name = client.name.strip()
        self.db.add(client)
        self.db.flush()
        logger.info(f"Cliente creado: {client.name}")
        return client

    def get_client(self, client_id: UUID) -> Client:
        client = self.db.get(Client, client_id)
        if not client:
            raise NotFoundError("Cliente", client_id)
        return client

    def list_clients(self, search: Optional[str] = None, contact_type: Optional[ContactType] = None) -> List[Client]:
        query = select(Client)
        if search:
            pattern = f"%{search}%"
            query = query.where(Client.name.ilike(pattern) | Client.rnc.ilike(pattern))
        if contact_type:
            query = query.where(Client.contact_type == contact_type)
        return list(self.db.execute(query.order_by(Client.name)).scalars().all())

    def update_client(self, client_id: UUID, data: ClientUpdate, cascade_snapshots: bool = True) -> Dict:
        """
        Actualiza el cliente.

        Las facturas y notas de crédito guardan una copia (snapshot) de nombre,
        RNC y dirección del momento de emisión; no siguen al cliente. Si
        ``cascade_snapshots`` es True y cambió alguno de esos campos, se
        actualizan en lote los snapshots existentes.
        """
        client = self.get_client(client_id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("El nombre del cliente es requerido")
        if changes.get("email") and changes["email"] != client.email:
            self._check_unique_email(changes["email"])

        changed_snapshot = {}
        for key, value in changes.items():
            if value is None and key not in ("rnc", "email", "phone", "address", "category", "notes"):
                continue
            if key in INVOICE_SNAPSHOT_FIELDS and getattr(client, key) != value:
                changed_snapshot[key] = value
            setattr(client, key, value)
        self.db.flush()

        updated_documents = 0
        if cascade_snapshots and changed_snapshot:
            updated_documents = self.propagate_snapshots(client.id, changed_snapshot)

        return {"client": client, "updated_documents": updated_documents}

    def delete_client(self, client_id: UUID) -> str:
        """
        Elimina el cliente. Sus facturas y notas de crédito se conservan con el
        snapshot de nombre / RNC y quedan sin referencia al cliente.
        """
        from app.modules.invoices.models import Invoice
        from app.modules.credit_notes.models import CreditNote

        client = self.get_client(client_id)
        name = client.name
        for model in (Invoice, CreditNote):
            table = model.__table__
            self.db.execute(update(table).where(table.c.client_id == client_id).values(client_id=None))
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, (Invoice, CreditNote)) and obj.client_id == client_id:
                self.db.expire(obj)

        self.db.delete(client)
        self.db.flush()
        logger.info(f"Cliente eliminado: {name}")
        return name

    def propagate_snapshots(self, client_id: UUID, changed: Dict) -> int:
        from app.modules.invoices.models import Invoice
        from app.modules.credit_notes.models import CreditNote

        total = 0
        for model, mapping in ((Invoice, INVOICE_SNAPSHOT_FIELDS), (CreditNote, CREDIT_NOTE_SNAPSHOT_FIELDS)):
            values = {mapping[k]: v for k, v in changed.items() if k in mapping}
            if not values:
                continue
            table = model.__table__
            result = self.db.execute(update(table).where(table.c.client_id == client_id).values(**values))
            total += result.rowcount or 0

        # Los objetos ya cargados en la sesión no ven el UPDATE en lote
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, (Invoice, CreditNote)) and obj.client_id == client_id:
                self.db.expire(obj)

        logger.info(f"Snapshots de cliente actualizados en {total} documento(s)")
        return total

    def _check_unique_email(self, email: Optional[str]):
        if not email:
            return
        if self.db.execute(select(Client.id).where(Client.email == email)).first():
            raise ConsistencyError(f"Ya existe un cliente con el email {email}")
