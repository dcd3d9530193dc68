"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from app.api.v1.charts import router as charts_router
from app.api.v1.odontograms import router as odontograms_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    odontograms_router,
    prefix="/odontograms",
    tags=["Odontograma"],
)

api_v1_router.include_router(
    charts_router,
    prefix="/charts",
    tags=["Geometría del Odontograma"],
)
