from app.database.database import Base
from sqlalchemy import Column, String, Numeric, Enum, Text
from app.common.mixins import BaseMixin, enum_values
import enum


class PersonType(enum.Enum):
    NATURAL = "Persona Física"
    JURIDICA = "Persona Jurídica"


class ContactType(enum.Enum):
    CLIENT = "Cliente"
    PROVIDER = "Proveedor"
    EMPLOYEE = "Empleado"
    OTHER = "Otro"


class ClientStatus(enum.Enum):
    ACTIVE = "Activo"
    INACTIVE = "Inactivo"


class Client(Base, BaseMixin):
    __tablename__ = "clients"

    name = Column(String(200), nullable=False, index=True)
    rnc = Column(String(20), nullable=True, index=True)  # RNC (9) o cédula (11)
    email = Column(String(150), nullable=True, unique=True)
    phone = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)

    type = Column(Enum(PersonType, values_callable=enum_values, name="person_type"),
                  nullable=False, default=PersonType.JURIDICA)
    contact_type = Column(Enum(ContactType, values_callable=enum_values, name="contact_type"),
                          nullable=False, default=ContactType.CLIENT)
    category = Column(String(100), nullable=True)
    credit_limit = Column(Numeric(15, 2), nullable=False, default=0)
    status = Column(Enum(ClientStatus, values_callable=enum_values, name="client_status"),
                    nullable=False, default=ClientStatus.ACTIVE)
    notes = Column(Text, nullable=True)
