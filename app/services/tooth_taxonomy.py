"""
Taxonomía dental FDI: clasificación de dientes por tipo anatómico,
dentición (permanente / temporal), arcada y secuencias de dibujo.

Todas las funciones son puras y rechazan identificadores inválidos
con UnknownToothError (no se asume "molar" por defecto).
"""

import enum
import logging

logger = logging.getLogger(__name__)

# Dientes válidos FDI: permanentes (11-18, 21-28, 31-38, 41-48)
# y temporales (51-55, 61-65, 71-75, 81-85)
VALID_PERMANENT_TEETH = frozenset(
    list(range(11, 19)) + list(range(21, 29)) +
    list(range(31, 39)) + list(range(41, 49))
)
VALID_PRIMARY_TEETH = frozenset(
    list(range(51, 56)) + list(range(61, 66)) +
    list(range(71, 76)) + list(range(81, 86))
)
VALID_TEETH = VALID_PERMANENT_TEETH | VALID_PRIMARY_TEETH

# Secuencias de arcada tal como se dibujan (izquierda → derecha en pantalla)
UPPER_PERMANENT = (18, 17, 16, 15, 14, 13, 12, 11, 21, 22, 23, 24, 25, 26, 27, 28)
LOWER_PERMANENT = (48, 47, 46, 45, 44, 43, 42, 41, 31, 32, 33, 34, 35, 36, 37, 38)
UPPER_PRIMARY = (55, 54, 53, 52, 51, 61, 62, 63, 64, 65)
LOWER_PRIMARY = (85, 84, 83, 82, 81, 71, 72, 73, 74, 75)

CHILD_PROFILE_MAX_AGE = 12


class ToothKind(str, enum.Enum):
    """Tipo anatómico derivado del dígito de posición."""
    CENTRAL_INCISOR = "central-incisor"
    LATERAL_INCISOR = "lateral-incisor"
    CANINE = "canine"
    PREMOLAR = "premolar"
    MOLAR = "molar"

    @property
    def is_anterior(self) -> bool:
        return self in (
            ToothKind.CENTRAL_INCISOR, ToothKind.LATERAL_INCISOR, ToothKind.CANINE
        )


class Dentition(str, enum.Enum):
    PERMANENT = "permanent"
    PRIMARY = "primary"


class Jaw(str, enum.Enum):
    UPPER = "upper"
    LOWER = "lower"


class UnknownToothError(ValueError):
    """Identificador de diente fuera del sistema FDI."""

    def __init__(self, value, reason: str | None = None):
        self.value = value
        message = f"unknown tooth identifier: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


# ── Validación ───────────────────────────────────────

def validate_tooth(number) -> int:
    """Retorna el número si es un código FDI válido; si no, lanza UnknownToothError."""
    # bool es subclase de int: True no es el diente 1
    if isinstance(number, bool) or not isinstance(number, int):
        logger.debug("Tooth id rechazado por tipo: %r", number)
        raise UnknownToothError(number, "not an integer")
    if number not in VALID_TEETH:
        logger.debug("Tooth id rechazado: %r", number)
        raise UnknownToothError(number)
    return number


def is_valid_tooth(number) -> bool:
    try:
        validate_tooth(number)
    except UnknownToothError:
        return False
    return True


# ── Descomposición del código FDI ────────────────────

def quadrant_of(number: int) -> int:
    return validate_tooth(number) // 10


def position_of(number: int) -> int:
    return validate_tooth(number) % 10


def dentition_of(number: int) -> Dentition:
    if quadrant_of(number) >= 5:
        return Dentition.PRIMARY
    return Dentition.PERMANENT


def is_primary(number: int) -> bool:
    return dentition_of(number) is Dentition.PRIMARY


def jaw_of(number: int) -> Jaw:
    # Cuadrantes 1, 2, 5, 6 superiores; 3, 4, 7, 8 inferiores
    if quadrant_of(number) in (1, 2, 5, 6):
        return Jaw.UPPER
    return Jaw.LOWER


def side_of(number: int) -> int:
    """-1 para el lado derecho del paciente (izquierda en pantalla), +1 para el izquierdo."""
    if quadrant_of(number) in (1, 4, 5, 8):
        return -1
    return 1


# ── Clasificación ────────────────────────────────────

def classify(number: int, is_primary_tooth: bool | None = None) -> ToothKind:
    """
    Clasifica un diente FDI en su tipo anatómico.

    `is_primary_tooth` es opcional; si se indica debe coincidir con el
    cuadrante del código. La dentición temporal no tiene premolares:
    las posiciones 4-5 son molares.
    """
    position = position_of(number)
    primary = is_primary(number)
    if is_primary_tooth is not None and bool(is_primary_tooth) != primary:
        raise UnknownToothError(number, "dentition mismatch")

    if position == 1:
        return ToothKind.CENTRAL_INCISOR
    if position == 2:
        return ToothKind.LATERAL_INCISOR
    if position == 3:
        return ToothKind.CANINE
    if position <= 5 and not primary:
        return ToothKind.PREMOLAR
    return ToothKind.MOLAR


# ── Arcadas visibles ─────────────────────────────────

def arch_sequence(jaw: Jaw, dentition: Dentition) -> tuple[int, ...]:
    if jaw is Jaw.UPPER:
        return UPPER_PRIMARY if dentition is Dentition.PRIMARY else UPPER_PERMANENT
    return LOWER_PRIMARY if dentition is Dentition.PRIMARY else LOWER_PERMANENT


def child_profile(patient_age: int | None, max_age: int = CHILD_PROFILE_MAX_AGE) -> bool:
    """Un paciente es pediátrico si su edad es conocida y menor a `max_age`."""
    if patient_age is None:
        return False
    return 0 <= patient_age < max_age


def visible_arches(
    patient_age: int | None = None,
    hide_primary: bool | None = None,
    max_age: int = CHILD_PROFILE_MAX_AGE,
) -> dict[Dentition, bool]:
    """
    Decide qué denticiones se muestran.

    Adultos: sólo permanentes salvo que se pida explícitamente lo contrario.
    Niños: la dentición temporal siempre; la permanente sólo cuando se ocultan
    los temporales (vista de erupción).
    """
    child = child_profile(patient_age, max_age)
    if hide_primary is None:
        hide_primary = not child

    if child:
        return {
            Dentition.PERMANENT: hide_primary,
            Dentition.PRIMARY: not hide_primary,
        }
    return {
        Dentition.PERMANENT: True,
        Dentition.PRIMARY: not hide_primary,
    }


def visible_teeth(jaw: Jaw, visibility: dict[Dentition, bool]) -> list[int]:
    """Secuencia de dientes a dibujar en una arcada para la visibilidad dada."""
    teeth: list[int] = []
    for dentition in (Dentition.PERMANENT, Dentition.PRIMARY):
        if visibility.get(dentition):
            teeth.extend(arch_sequence(jaw, dentition))
    return teeth
