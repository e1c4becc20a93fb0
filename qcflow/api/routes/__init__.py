"""API Routes module"""
from fastapi import APIRouter

from .templates import router as templates_router
from .executions import router as executions_router
from .qc import router as qc_router
from .admin import router as admin_router

# Main API router
api_router = APIRouter()

api_router.include_router(templates_router, prefix="/templates", tags=["Templates"])
api_router.include_router(executions_router, prefix="/executions", tags=["Executions"])
api_router.include_router(qc_router, prefix="/qc", tags=["QC"])
api_router.include_router(admin_router, prefix="/admin", tags=["Admin"])

__all__ = ["api_router"]
