"""
Unidad de trabajo transaccional.

Toda operación que toca varias tablas (factura + stock + NCF + movimientos)
se ejecuta como una función ``work(session)`` a través de ``UnitOfWork.run``.
Hay dos caminos para la misma función:

- transaccional: ``Session.begin()``, commit al final, rollback ante cualquier error
- secuencial: cada sentencia se confirma al ejecutarse (AUTOCOMMIT); se usa
  cuando el motor no soporta transacciones y siempre se registra un warning
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import NotSupportedError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.common.errors import InfrastructureError, StorageTimeoutError, TransactionsUnsupportedError
from app.database.database import sync_engine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TIMEOUT_MARKERS = ("timeout", "timed out", "locked", "lock wait", "canceling statement")


class UnitOfWork:

    def __init__(self, engine: Optional[Engine] = None, mode: Optional[str] = None):
        self.engine = engine or sync_engine
        self.mode = mode or settings.DB_TRANSACTION_MODE
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def supports_transactions(self) -> bool:
        """Sondeo de capacidad: modo configurado y nivel de aislamiento del engine."""
        if self.mode == "disabled":
            return False
        isolation = self.engine.get_execution_options().get("isolation_level")
        return isolation != "AUTOCOMMIT"

    def run(self, work: Callable[[Session], T], description: str = "operación") -> T:
        """Ejecuta ``work`` de forma atómica o, si no hay transacciones, secuencial."""
        if self.supports_transactions():
            try:
                return self._run_transactional(work)
            except TransactionsUnsupportedError:
                if self.mode == "required":
                    raise
        elif self.mode == "required":
            raise TransactionsUnsupportedError()

        logger.warning(
            f"Transacciones no soportadas, ejecutando '{description}' sin transacción "
            f"(atomicidad reducida)"
        )
        return self._run_sequential(work)

    def _run_transactional(self, work: Callable[[Session], T]) -> T:
        with self._session_factory() as session:
            try:
                session.begin()
                # begin() es perezoso: la conexión abre la transacción real
                session.connection()
            except NotSupportedError as e:
                raise TransactionsUnsupportedError() from e
            try:
                result = work(session)
                session.commit()
                return result
            except OperationalError as e:
                session.rollback()
                raise _translate_operational(e) from e
            except Exception:
                session.rollback()
                raise

    def _run_sequential(self, work: Callable[[Session], T]) -> T:
        autocommit_engine = self.engine.execution_options(isolation_level="AUTOCOMMIT")
        with Session(bind=autocommit_engine, autoflush=False, expire_on_commit=False) as session:
            try:
                result = work(session)
                # vacía lo pendiente; lo ya ejecutado quedó confirmado
                session.commit()
                return result
            except OperationalError as e:
                session.rollback()
                raise _translate_operational(e) from e
            except Exception:
                session.rollback()
                raise

    def session(self) -> Session:
        """Sesión de solo lectura para consultas fuera de una unidad de trabajo."""
        return self._session_factory()


def in_autocommit(session: Session) -> bool:
    """True si la sesión corre en el camino secuencial (sin transacción)."""
    return session.get_bind().get_execution_options().get("isolation_level") == "AUTOCOMMIT"


def _translate_operational(error: OperationalError) -> InfrastructureError:
    text = str(error.orig if error.orig is not None else error).lower()
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        logger.error(f"Timeout de almacenamiento: {text}")
        return StorageTimeoutError()
    logger.error(f"Error de almacenamiento: {text}")
    return InfrastructureError("No se pudo acceder a la base de datos.")


def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork()
