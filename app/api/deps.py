from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.invoice_service import InvoiceService


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]


async def get_invoice_service(db: DB) -> InvoiceService:
    return InvoiceService(db)


Invoices = Annotated[InvoiceService, Depends(get_invoice_service)]
