from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.common.immutability import register_immutability_listeners

# Import routers
from app.modules.customers.router import router as customers_router
from app.modules.catalog.router import router as products_router
from app.modules.ledger.router import router as ledger_router
from app.modules.sales.router import router as sales_router
from app.modules.invoices.router import router as invoices_router
from app.modules.delivery_notes.router import router as delivery_notes_router
from app.modules.receipts.router import router as receipts_router

# Import models for table creation
import app.modules.customers.models
import app.modules.catalog.models
import app.modules.ledger.models
import app.modules.sales.models
import app.modules.invoices.models
import app.modules.delivery_notes.models
import app.modules.receipts.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

register_immutability_listeners()

# FastAPI app
app = FastAPI(
    title="Gestión Comercial API",
    description="Ventas, facturación electrónica, remitos, recibos y cuenta corriente de clientes",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(customers_router)
app.include_router(ledger_router)
app.include_router(products_router)
app.include_router(sales_router)
app.include_router(invoices_router)
app.include_router(delivery_notes_router)
app.include_router(receipts_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Gestión Comercial API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Gestión Comercial API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Tax authority mode: {settings.TAX_AUTHORITY_MODE}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Gestión Comercial API shutting down...")
