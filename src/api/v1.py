"""Centralized v1 API router: all module routers are included here."""

from fastapi import APIRouter

from src.modules.refund.router import router as refund_router
from src.modules.replacement.router import router as replacement_router
from src.modules.ticket.router import router as ticket_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(ticket_router)
v1_router.include_router(refund_router)
v1_router.include_router(replacement_router)
