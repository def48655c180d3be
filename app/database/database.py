import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings

logger = logging.getLogger(__name__)


def _connect_args(database_url: str) -> dict:
    """Argumentos del driver para que el servidor imponga el timeout por sentencia."""
    timeout_ms = settings.DB_STATEMENT_TIMEOUT_MS
    if database_url.startswith("sqlite"):
        # busy timeout de SQLite, en segundos
        return {"check_same_thread": False, "timeout": timeout_ms / 1000}
    if database_url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={timeout_ms}"}
    return {}


def build_engine(database_url: str, **kwargs) -> Engine:
    """Crea un engine para la URL dada (una sola vez por proceso, se reutiliza)."""
    if database_url.startswith("sqlite:///./"):
        os.makedirs(os.path.dirname(database_url.replace("sqlite:///", "")) or ".", exist_ok=True)

    options = {"echo": settings.DEBUG and settings.ENVIRONMENT == "development"}
    if not database_url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    options.update(kwargs)
    return create_engine(database_url, connect_args=_connect_args(database_url), **options)


sync_engine = build_engine(settings.DATABASE_URL)

Base = declarative_base()


def import_all_models():
    """Registra todos los modelos en Base.metadata."""
    import app.modules.products.models  # noqa: F401
    import app.modules.clients.models  # noqa: F401
    import app.modules.ncf.models  # noqa: F401
    import app.modules.invoices.models  # noqa: F401
    import app.modules.credit_notes.models  # noqa: F401
    import app.modules.expenses.models  # noqa: F401


def init_db(engine: Engine = None):
    """Crear tablas si no existen (arranque normal y tests)."""
    import_all_models()
    Base.metadata.create_all(bind=engine or sync_engine)
