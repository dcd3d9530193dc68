"""
Motor de disposición de arcadas dentales.

Coloca cada diente visible sobre una curva parabólica de arcada:

    point(θ) = (sin θ · rx, 0, -|sin θ|^p · rz)

Las posiciones angulares se asignan acumulando anchos anatómicos, de modo
que los incisivos (estrechos) se agrupan cerca de la línea media y los
molares (anchos) se abren hacia posterior. Todo es puro y sin I/O.
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from app.services.tooth_taxonomy import (
    Dentition,
    Jaw,
    ToothKind,
    classify,
    dentition_of,
    jaw_of,
)

logger = logging.getLogger(__name__)

# ── Constantes anatómicas ────────────────────────────

# Ancho mesio-distal canónico por tipo (unidades de escena)
TOOTH_WIDTHS: dict[ToothKind, float] = {
    ToothKind.CENTRAL_INCISOR: 0.96,
    ToothKind.LATERAL_INCISOR: 0.82,
    ToothKind.CANINE: 0.90,
    ToothKind.PREMOLAR: 0.98,
    ToothKind.MOLAR: 1.20,
}

# Factor de escala uniforme de la dentición temporal
PRIMARY_SCALE = 0.86

# Rotación y desplazamiento máximos de la variación natural por diente
JITTER_ROTATION = 0.04
JITTER_OFFSET = 0.02
JITTER_SEED_FACTOR = 1.48

# Separación vertical máxima con la boca abierta
JAW_OPEN_MAX_SHIFT = 1.8
UPPER_JAW_Z_SHIFT = 0.15


@dataclass(frozen=True)
class ArchConfig:
    """Parámetros de la curva de arcada (constantes de configuración)."""
    radius_x: float
    radius_z: float
    angular_span: float = math.pi * 0.92
    exponent: float = 2.0
    gum_wave_amplitude: float = 0.22
    gum_samples: int = 200


PERMANENT_ARCH = ArchConfig(radius_x=6.0, radius_z=4.0)
PRIMARY_ARCH = ArchConfig(radius_x=4.6, radius_z=3.0, gum_wave_amplitude=0.18)


def config_for(dentition: Dentition) -> ArchConfig:
    if dentition is Dentition.PRIMARY:
        return PRIMARY_ARCH
    return PERMANENT_ARCH


def tooth_width(kind: ToothKind, primary: bool = False) -> float:
    width = TOOTH_WIDTHS[kind]
    if primary:
        width *= PRIMARY_SCALE
    return width


# ── Resultados ───────────────────────────────────────

@dataclass(frozen=True)
class ArchPosition:
    """Posición derivada (efímera) de un diente sobre la arcada."""
    tooth_number: int
    kind: ToothKind
    theta: float
    anchor: tuple[float, float, float]
    yaw: float
    width: float


@dataclass(frozen=True)
class ArchLayout:
    jaw: Jaw | None
    dentition: Dentition | None
    config: ArchConfig
    positions: tuple[ArchPosition, ...] = ()

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self):
        return iter(self.positions)

    @property
    def is_empty(self) -> bool:
        return not self.positions

    def get(self, tooth_number: int) -> ArchPosition | None:
        for position in self.positions:
            if position.tooth_number == tooth_number:
                return position
        return None

    def thetas(self) -> np.ndarray:
        return np.array([p.theta for p in self.positions], dtype=np.float64)


@dataclass(frozen=True)
class GumLine:
    """Curva del margen gingival muestreada sobre la arcada."""
    thetas: np.ndarray = field(default_factory=lambda: np.empty(0))
    points: np.ndarray = field(default_factory=lambda: np.empty((0, 3)))

    def __len__(self) -> int:
        return len(self.thetas)

    @property
    def is_empty(self) -> bool:
        return len(self.thetas) == 0


@dataclass(frozen=True)
class ToothPose:
    """Transformación final de un diente en escena (posición + Euler XYZ)."""
    tooth_number: int
    position: tuple[float, float, float]
    rotation: tuple[float, float, float]


# ── Curva ────────────────────────────────────────────

def arch_point(theta, config: ArchConfig = PERMANENT_ARCH) -> np.ndarray:
    """Punto(s) de la curva de arcada para uno o varios θ."""
    theta = np.asarray(theta, dtype=np.float64)
    s = np.sin(theta)
    x = s * config.radius_x
    z = -np.power(np.abs(s), config.exponent) * config.radius_z
    return np.stack([x, np.zeros_like(x), z], axis=-1)


def arch_tangent_yaw(theta, config: ArchConfig = PERMANENT_ARCH):
    """
    Rotación sobre Y que alinea el eje X local del diente con la tangente
    de la curva en θ.
    """
    theta = np.asarray(theta, dtype=np.float64)
    s = np.sin(theta)
    c = np.cos(theta)
    dx = config.radius_x * c
    dz = (
        -config.exponent
        * np.power(np.abs(s), config.exponent - 1.0)
        * np.sign(s)
        * c
        * config.radius_z
    )
    return np.arctan2(-dz, dx)


# ── Layout ───────────────────────────────────────────

def layout_arch(
    numbers,
    *,
    jaw: Jaw | None = None,
    config: ArchConfig | None = None,
) -> ArchLayout:
    """
    Calcula una ArchPosition por diente respetando el orden de entrada.

    θ_i = (centroAcumulado_i / anchoTotal - 0.5) · span

    Una lista vacía produce un layout vacío (sin error). Todos los dientes
    deben pertenecer a la misma dentición y a la misma arcada, sin repetirse.
    """
    numbers = list(numbers)
    if not numbers:
        return ArchLayout(jaw=jaw, dentition=None, config=config or PERMANENT_ARCH)

    kinds = [classify(n) for n in numbers]
    dentitions = {dentition_of(n) for n in numbers}
    if len(dentitions) > 1:
        raise ValueError("No se pueden mezclar denticiones en una misma arcada")
    dentition = dentitions.pop()
    jaws = {jaw_of(n) for n in numbers}
    if len(jaws) > 1 or (jaw is not None and jaw not in jaws):
        raise ValueError("No se pueden mezclar arcadas superior e inferior")
    if len(set(numbers)) != len(numbers):
        raise ValueError("Un diente no puede repetirse en la arcada")
    primary = dentition is Dentition.PRIMARY
    config = config or config_for(dentition)
    jaw = jaws.pop()

    widths = np.array([tooth_width(k, primary) for k in kinds], dtype=np.float64)
    total = widths.sum()
    centers = np.cumsum(widths) - widths / 2.0
    thetas = (centers / total - 0.5) * config.angular_span

    anchors = arch_point(thetas, config)
    yaws = arch_tangent_yaw(thetas, config)

    positions = tuple(
        ArchPosition(
            tooth_number=n,
            kind=kind,
            theta=float(theta),
            anchor=tuple(float(v) for v in anchor),
            yaw=float(yaw),
            width=float(width),
        )
        for n, kind, theta, anchor, yaw, width in zip(
            numbers, kinds, thetas, anchors, yaws, widths
        )
    )
    return ArchLayout(jaw=jaw, dentition=dentition, config=config, positions=positions)


# ── Línea gingival ───────────────────────────────────

def average_gap(layout: ArchLayout) -> float:
    """Separación angular media entre centros consecutivos."""
    thetas = layout.thetas()
    if len(thetas) < 2:
        # Un solo diente: se usa su propio ancho angular
        if len(thetas) == 1:
            return layout.config.angular_span
        return 0.0
    return float(np.mean(np.diff(thetas)))


def gum_line(layout: ArchLayout, *, base_y: float = 0.0) -> GumLine:
    """
    Curva gingival con papilas interdentales.

    El desplazamiento vertical local es amp · cos(d / gapMedio · π), con d la
    distancia angular al centro de diente más cercano: cenit gingival sobre
    cada diente y papila entre dientes. Superior desplaza hacia +Y (raíz),
    inferior hacia -Y.
    """
    if layout.is_empty:
        return GumLine()

    config = layout.config
    centers = layout.thetas()
    gap = average_gap(layout)
    start = centers[0] - gap / 2.0
    stop = centers[-1] + gap / 2.0
    thetas = np.linspace(start, stop, config.gum_samples + 1)

    distances = np.min(np.abs(thetas[:, None] - centers[None, :]), axis=1)
    wave = config.gum_wave_amplitude * np.cos(distances / gap * math.pi)
    sign = 1.0 if layout.jaw is Jaw.UPPER else -1.0

    points = arch_point(thetas, config)
    points[:, 1] = base_y + sign * wave
    return GumLine(thetas=thetas, points=points)


# ── Pose final de cada diente ────────────────────────

def tooth_jitter(tooth_number: int) -> tuple[float, float]:
    """(rotación, desplazamiento) determinísticos derivados del número del diente."""
    seed = tooth_number * JITTER_SEED_FACTOR
    return math.sin(seed) * JITTER_ROTATION, math.cos(seed) * JITTER_OFFSET


def jaw_opening_offset(jaw: Jaw, opening: float) -> tuple[float, float, float]:
    """Desplazamiento de la arcada completa para la vista de boca abierta (0..1)."""
    opening = min(max(opening, 0.0), 1.0)
    if jaw is Jaw.UPPER:
        return (0.0, opening * JAW_OPEN_MAX_SHIFT, UPPER_JAW_Z_SHIFT)
    return (0.0, -opening * JAW_OPEN_MAX_SHIFT, 0.0)


def tooth_pose(
    position: ArchPosition,
    jaw: Jaw,
    *,
    base_y: float = 0.0,
    opening: float = 0.0,
) -> ToothPose:
    """
    Pose de escena del diente: ancla + variación natural + giro de corona.
    La corona superior apunta hacia abajo (rotX = π).
    """
    rot_jitter, offset = tooth_jitter(position.tooth_number)
    shift = jaw_opening_offset(jaw, opening)
    x, _, z = position.anchor
    rot_x = math.pi if jaw is Jaw.UPPER else 0.0
    return ToothPose(
        tooth_number=position.tooth_number,
        position=(x + offset + shift[0], base_y + shift[1], z + offset + shift[2]),
        rotation=(rot_x, position.yaw + rot_jitter, 0.0),
    )


def arch_poses(layout: ArchLayout, *, base_y: float = 0.0, opening: float = 0.0) -> list[ToothPose]:
    if layout.is_empty:
        return []
    return [
        tooth_pose(p, layout.jaw, base_y=base_y, opening=opening)
        for p in layout.positions
    ]
