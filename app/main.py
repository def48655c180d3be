from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import init_db
from app.database.transaction import UnitOfWork

# Import routers
from app.modules.products.router import product_router
from app.modules.inventory.router import inventory_router
from app.modules.clients.router import client_router
from app.modules.ncf.router import ncf_router
from app.modules.invoices.router import router as invoices_router, payments_router
from app.modules.credit_notes.router import credit_note_router
from app.modules.expenses.router import expense_router
from app.modules.ncf.service import NCFSequenceAllocator

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Monterrey ERP API",
    description="Inventario, facturación con NCF y notas de crédito para Chorizos Monterrey",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(product_router)
app.include_router(inventory_router)
app.include_router(client_router)
app.include_router(ncf_router)
app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(credit_note_router)
app.include_router(expense_router)


@app.get("/")
async def read_root():
    return {
        "message": "Monterrey ERP API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Monterrey ERP API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (no migrations; schema is created on start-up)
    if settings.ENVIRONMENT != "production":
        init_db()

    # Secuencias NCF estándar
    UnitOfWork().run(lambda db: NCFSequenceAllocator(db).list_sequences(), "inicializar secuencias NCF")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Monterrey ERP API shutting down...")
