from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Job invoicing
    invoices,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Invoices ====================
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices"]
)
