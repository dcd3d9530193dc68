"""
Excepciones HTTP personalizadas para la API y errores de dominio del odontograma.
"""

from fastapi import HTTPException, status


class NotFoundException(HTTPException):
    """Recurso no encontrado (404)."""

    def __init__(self, resource: str = "Recurso", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} no encontrado",
        )


class ConflictException(HTTPException):
    """Conflicto de datos (409), ej: odontograma duplicado para un paciente."""

    def __init__(self, detail: str = "El recurso ya existe"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class ValidationException(HTTPException):
    """Error de validación de negocio (422)."""

    def __init__(self, detail: str = "Error de validación"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


# ── Errores de dominio (sin dependencia HTTP) ────────

class OdontogramNotFoundError(LookupError):
    """El colaborador de persistencia no encontró el odontograma."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Odontograma no encontrado: {key}")


class ChartSaveError(RuntimeError):
    """Fallo al guardar el odontograma; el estado local se conserva sin guardar."""

    def __init__(self, detail: str = "No se pudo guardar el odontograma"):
        self.detail = detail
        super().__init__(detail)


class DuplicateOdontogramError(ValueError):
    """Ya existe un odontograma para el paciente."""

    def __init__(self, patient_id: str):
        self.patient_id = patient_id
        super().__init__(f"El paciente {patient_id} ya tiene odontograma")
