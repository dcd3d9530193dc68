"""
Dependencies de FastAPI compartidas por los endpoints del odontograma.
"""

from app.database import async_session_factory
from app.services.odontogram_repository import SqlOdontogramRepository

_repository = SqlOdontogramRepository(async_session_factory)


def get_odontogram_repository() -> SqlOdontogramRepository:
    """Repositorio de odontogramas sobre la sesión async de la aplicación."""
    return _repository
