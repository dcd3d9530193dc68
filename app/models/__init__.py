"""
Modelos SQLAlchemy: exportar todos para que Alembic los detecte.
"""

from app.models.odontogram import Odontogram, ToothTreatment

__all__ = [
    "Odontogram",
    "ToothTreatment",
]
