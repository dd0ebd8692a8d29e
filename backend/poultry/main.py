"""
Poultry ledger backend.

ARCHITECTURE:
- Ledger: invoice and payment postings against cached customer balances
- Balance auditor: recomputes balances from transaction history
- Reconciliation: daily truck load vs. sold weight, wastage analytics
- SQLite (WAL) or any SQLAlchemy backend as the source of truth

Every posting is one transaction: committed whole or rolled back whole.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from poultry.api.routes import ledger, reconciliations, trucks
from poultry.core.config import settings
from poultry.db.init_db import init_db

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables
    """
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(
    title="Poultry Ledger API",
    description="Invoice and payment ledger with daily truck reconciliation.",
    version="0.1.0",
    lifespan=lifespan,
)

# Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
)

app.include_router(ledger.router, prefix="/ledger", tags=["ledger"])
app.include_router(reconciliations.router, prefix="/reconciliations", tags=["reconciliations"])
app.include_router(trucks.router, prefix="/trucks", tags=["trucks"])


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
