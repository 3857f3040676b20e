from fastapi import APIRouter

from .chat_router import chat_router
from .handoff_router import handoff_router
from .metrics_router import metrics_router
from .report_router import report_router

api_router = APIRouter()
"""
Main API router that aggregates all sub-routers of the project:
chat, reports, metrics and handoff queues.
"""

api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(report_router, prefix="/reports", tags=["reports"])
api_router.include_router(metrics_router, prefix="/metrics", tags=["metrics"])
api_router.include_router(handoff_router, prefix="/handoff", tags=["handoff"])


@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
