# Services module
from app.services.invoice_service import (
    InvoiceGenerationError,
    InvoiceNotFoundError,
    InvoiceService,
)

__all__ = [
    "InvoiceGenerationError",
    "InvoiceNotFoundError",
    "InvoiceService",
]
