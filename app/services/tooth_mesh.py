"""
Generador procedural de mallas dentales.

Deforma un cilindro revolucionado de alta resolución (radio 0.5, altura 1)
hasta obtener un diente anatómico según su tipo:

    1. Sección superelíptica (exponente por tipo)
    2. Aplanado de facetas de contacto mesial/distal
    3. Cuello cervical (taper potencial en altura)
    4. Perfil sagital + pala lingual en anteriores
    5. Abombado vestibular
    6. Escultura oclusal (40% superior)
    7. Micro-ruido orgánico (x, z, seed)
    8. Enterrado gingival (48% de la corona bajo y=0)

Mismos (tipo, dimensiones, seed, segmentos) → arrays bit-idénticos, por lo
que el resultado se memoiza con lru_cache.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from app.services.arch_layout import PRIMARY_SCALE, ArchLayout
from app.services.tooth_taxonomy import ToothKind, classify, is_primary

logger = logging.getLogger(__name__)

DEFAULT_RADIAL_SEGMENTS = 44
DEFAULT_HEIGHT_SEGMENTS = 36
DEFAULT_CAP_RINGS = 8

# Fracción de la altura de corona enterrada bajo el plano gingival
BURIAL_FRACTION = 0.48

# Inicio de la escultura oclusal (altura normalizada)
OCCLUSAL_START = 0.6

SUPERELLIPSE_EXPONENTS: dict[ToothKind, float] = {
    ToothKind.CENTRAL_INCISOR: 2.6,
    ToothKind.LATERAL_INCISOR: 2.6,
    ToothKind.CANINE: 2.6,
    ToothKind.PREMOLAR: 4.5,
    ToothKind.MOLAR: 5.0,
}

# Centros de cúspides en coordenadas normalizadas (nx, nz)
CUSP_CENTERS: dict[ToothKind, tuple[tuple[float, float], ...]] = {
    ToothKind.PREMOLAR: ((0.0, 0.5), (0.0, -0.5)),
    ToothKind.MOLAR: ((0.5, 0.5), (-0.5, 0.5), (0.5, -0.5), (-0.5, -0.5)),
}


@dataclass(frozen=True)
class ToothDimensions:
    width: float
    depth: float
    crown_height: float

    def scaled(self, factor: float) -> "ToothDimensions":
        return ToothDimensions(
            self.width * factor, self.depth * factor, self.crown_height * factor
        )


TOOTH_DIMENSIONS: dict[ToothKind, ToothDimensions] = {
    ToothKind.CENTRAL_INCISOR: ToothDimensions(0.94, 0.54, 1.10),
    ToothKind.LATERAL_INCISOR: ToothDimensions(0.80, 0.48, 1.05),
    ToothKind.CANINE: ToothDimensions(0.88, 0.64, 1.04),
    ToothKind.PREMOLAR: ToothDimensions(0.98, 0.82, 0.90),
    ToothKind.MOLAR: ToothDimensions(1.18, 0.98, 0.85),
}


def dimensions_for(kind: ToothKind, primary: bool = False) -> ToothDimensions:
    dims = TOOTH_DIMENSIONS[kind]
    if primary:
        return dims.scaled(PRIMARY_SCALE)
    return dims


@dataclass(frozen=True, eq=False)
class ToothMesh:
    """Buffer de vértices / normales / índices listo para el renderer."""
    kind: ToothKind
    dimensions: ToothDimensions
    seed: int
    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        return self.positions.min(axis=0), self.positions.max(axis=0)

    def as_buffers(self) -> dict[str, np.ndarray]:
        """Arrays planos float32/uint32 (formato BufferGeometry de WebGL)."""
        return {
            "position": self.positions.astype(np.float32).ravel(),
            "normal": self.normals.astype(np.float32).ravel(),
            "index": self.indices.astype(np.uint32).ravel(),
        }

    def to_dict(self) -> dict:
        buffers = self.as_buffers()
        return {
            "kind": self.kind.value,
            "seed": self.seed,
            "width": self.dimensions.width,
            "depth": self.dimensions.depth,
            "crownHeight": self.dimensions.crown_height,
            "positions": buffers["position"].tolist(),
            "normals": buffers["normal"].tolist(),
            "indices": buffers["index"].tolist(),
        }


# ── Topología del cilindro ───────────────────────────

def _cylinder_grid(radial: int, height: int, cap_rings: int):
    """
    Parámetros (ángulo, altura normalizada, fracción radial) por vértice
    y triángulos de un cilindro cerrado.

    Las tapas son anillos concéntricos que comparten el anillo exterior con
    la pared lateral, de modo que la malla es cerrada.
    """
    angles = np.arange(radial, dtype=np.float64) * (2.0 * math.pi / radial)

    # Pared lateral: filas 0..height, fracción radial 1
    side_y = np.repeat(np.arange(height + 1, dtype=np.float64) / height, radial)
    side_a = np.tile(angles, height + 1)
    side_rho = np.ones_like(side_y)

    # Anillos interiores de cada tapa (sin el exterior ni el centro)
    inner = np.arange(1, cap_rings, dtype=np.float64)
    ring_rho = np.repeat(1.0 - inner / cap_rings, radial)
    ring_a = np.tile(angles, cap_rings - 1)

    top_start = len(side_y)
    bottom_start = top_start + len(ring_rho)
    top_center = bottom_start + len(ring_rho)
    bottom_center = top_center + 1

    theta = np.concatenate([side_a, ring_a, ring_a, [0.0, 0.0]])
    y_norm = np.concatenate([
        side_y, np.ones_like(ring_rho), np.zeros_like(ring_rho), [1.0, 0.0]
    ])
    rho = np.concatenate([side_rho, ring_rho, ring_rho, [0.0, 0.0]])

    j = np.arange(radial)
    jn = (j + 1) % radial
    faces = []

    # Pared lateral: normal exterior
    for i in range(height):
        low = i * radial
        high = (i + 1) * radial
        faces.append(np.stack([low + j, high + j, low + jn], axis=1))
        faces.append(np.stack([low + jn, high + j, high + jn], axis=1))

    def ring_index(start: int, outer_row: int, k: int):
        # k = 0 es el anillo compartido con la pared lateral
        if k == 0:
            return outer_row * radial
        return start + (k - 1) * radial

    # Tapa superior (normal +Y)
    for k in range(cap_rings - 1):
        o = ring_index(top_start, height, k)
        n = ring_index(top_start, height, k + 1)
        faces.append(np.stack([o + j, n + j, o + jn], axis=1))
        faces.append(np.stack([o + jn, n + j, n + jn], axis=1))
    last = ring_index(top_start, height, cap_rings - 1)
    faces.append(np.stack([last + j, np.full(radial, top_center), last + jn], axis=1))

    # Tapa inferior (normal -Y)
    for k in range(cap_rings - 1):
        o = ring_index(bottom_start, 0, k)
        n = ring_index(bottom_start, 0, k + 1)
        faces.append(np.stack([o + j, o + jn, n + j], axis=1))
        faces.append(np.stack([o + jn, n + jn, n + j], axis=1))
    last = ring_index(bottom_start, 0, cap_rings - 1)
    faces.append(np.stack([last + j, last + jn, np.full(radial, bottom_center)], axis=1))

    indices = np.concatenate(faces).astype(np.int32)
    return theta, y_norm, rho, indices


# ── Deformaciones ────────────────────────────────────

def _cross_section(theta: np.ndarray, kind: ToothKind) -> np.ndarray:
    """Radio superelíptico con facetas de contacto aplanadas."""
    p = SUPERELLIPSE_EXPONENTS[kind]
    cos_a = np.abs(np.cos(theta))
    sin_a = np.abs(np.sin(theta))
    r = np.power(np.power(cos_a, p) + np.power(sin_a, p), -1.0 / p)

    # Direcciones cercanas a ±90° del eje vestibular (+Z) → ±X
    side = cos_a
    flatten = np.where(side > 0.6, 1.0 - (side - 0.6) * 0.35, 1.0)
    return r * flatten


def _neck_taper(y_norm: np.ndarray, kind: ToothKind) -> np.ndarray:
    neck = 0.85 if kind is ToothKind.MOLAR else 0.55
    return neck + (1.0 - neck) * np.power(y_norm, 0.35)


def _sagittal_taper(y_norm: np.ndarray, kind: ToothKind) -> np.ndarray:
    if kind.is_anterior:
        return 1.0 - np.power(y_norm, 3.0) * 0.90
    return 1.0 - np.power(y_norm, 4.0) * 0.25


def _shovel(x, z, y_norm, width: float, kind: ToothKind) -> np.ndarray:
    """Concavidad lingual (z < 0) en los dos tercios superiores de los anteriores."""
    if not kind.is_anterior:
        return z
    t = np.clip((y_norm - 1.0 / 3.0) / (2.0 / 3.0), 0.0, 1.0)
    across = np.clip(1.0 - np.square(x / (width * 0.45)), 0.0, 1.0)
    depth = np.sin(t * math.pi) * 0.35 * across
    return np.where((z < 0.0) & (y_norm > 1.0 / 3.0), z * (1.0 - depth), z)


def _labial_bulge(x, z, y_norm, width: float, depth: float) -> np.ndarray:
    bulge = np.sin(y_norm * math.pi * 0.85) * (depth * 0.25)
    across = np.clip(1.0 - np.square(x / (width * 0.55)), 0.0, 1.0)
    return np.where(z > 0.0, z + bulge * across, z)


def _occlusal_lift(x, z, y_norm, width: float, depth: float, kind: ToothKind) -> np.ndarray:
    """Elevación (en unidades de altura normalizada) del 40% superior."""
    lift = np.clip((y_norm - OCCLUSAL_START) / (1.0 - OCCLUSAL_START), 0.0, 1.0)

    if kind is ToothKind.CANINE:
        dist = np.sqrt(x * x + z * z) / (width * 0.4)
        return np.maximum(0.0, 1.0 - dist * 2.2) * lift * 0.12

    if kind in (ToothKind.CENTRAL_INCISOR, ToothKind.LATERAL_INCISOR):
        edge = np.cos(x / (width * 0.55) * math.pi * 0.5)
        return edge * lift * 0.06

    nx = x / (width * 0.5)
    nz = z / (depth * 0.5)
    cusps = np.zeros_like(nx)
    for cx, cz in CUSP_CENTERS[kind]:
        dist = np.sqrt(np.square(nx - cx) + np.square(nz - cz))
        cusps += np.maximum(0.0, 1.0 - dist * 3.5)
    grooves = (
        np.maximum(0.0, 1.0 - np.abs(nx) * 8.0)
        + np.maximum(0.0, 1.0 - np.abs(nz) * 8.0)
    ) * 0.08
    pit = np.maximum(0.0, 1.0 - (np.abs(nx) + np.abs(nz)) * 3.0) * 0.25
    scale = 0.15 if kind is ToothKind.MOLAR else 0.20
    return (cusps - (pit + grooves)) * lift * scale


def _micro_noise(x, z, seed: int) -> np.ndarray:
    return np.sin(x * 25.0 + seed) * np.cos(z * 20.0 + seed) * 0.005


def vertex_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Normales por vértice ponderadas por área de cara."""
    a = positions[indices[:, 0]]
    b = positions[indices[:, 1]]
    c = positions[indices[:, 2]]
    face_normals = np.cross(b - a, c - a)
    normals = np.zeros_like(positions)
    for corner in range(3):
        np.add.at(normals, indices[:, corner], face_normals)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    lengths[lengths == 0.0] = 1.0
    return normals / lengths


def burial_offset(crown_height: float) -> float:
    """Traslación vertical que deja BURIAL_FRACTION de la corona bajo y=0."""
    return crown_height * (0.5 - BURIAL_FRACTION)


# ── API pública ──────────────────────────────────────

@lru_cache(maxsize=256)
def generate_tooth_mesh(
    kind: ToothKind,
    width: float,
    depth: float,
    crown_height: float,
    seed: int,
    radial_segments: int = DEFAULT_RADIAL_SEGMENTS,
    height_segments: int = DEFAULT_HEIGHT_SEGMENTS,
    cap_rings: int = DEFAULT_CAP_RINGS,
) -> ToothMesh:
    """
    Genera la malla sólida de un diente. Determinística: el seed sólo
    afecta el micro-ruido, nunca la topología ni el enterrado.
    """
    kind = ToothKind(kind)
    if width <= 0 or depth <= 0 or crown_height <= 0:
        raise ValueError("Las dimensiones del diente deben ser positivas")
    if radial_segments < 3 or height_segments < 1 or cap_rings < 1:
        raise ValueError("Resolución de malla insuficiente")

    logger.debug(
        "Generando malla %s w=%.3f d=%.3f h=%.3f seed=%s",
        kind.value, width, depth, crown_height, seed,
    )

    theta, y_norm, rho, indices = _cylinder_grid(radial_segments, height_segments, cap_rings)

    r = _cross_section(theta, kind)
    taper = _neck_taper(y_norm, kind)
    d_taper = _sagittal_taper(y_norm, kind)

    x = np.cos(theta) * r * (width * 0.5) * taper * rho
    z = np.sin(theta) * r * (depth * 0.5) * taper * d_taper * rho

    z = _shovel(x, z, y_norm, width, kind)
    z = _labial_bulge(x, z, y_norm, width, depth)

    lift = _occlusal_lift(x, z, y_norm, width, depth, kind)
    y = (y_norm - 0.5 + lift) * crown_height + burial_offset(crown_height)

    noise = _micro_noise(x, z, seed)
    positions = np.stack([x + noise, y, z + noise], axis=1)
    normals = vertex_normals(positions, indices)

    for array in (positions, normals, indices):
        array.setflags(write=False)

    return ToothMesh(
        kind=kind,
        dimensions=ToothDimensions(width, depth, crown_height),
        seed=seed,
        positions=positions,
        normals=normals,
        indices=indices,
    )


def mesh_for_tooth(
    tooth_number: int,
    radial_segments: int = DEFAULT_RADIAL_SEGMENTS,
    height_segments: int = DEFAULT_HEIGHT_SEGMENTS,
) -> ToothMesh:
    """Malla de un diente FDI con sus dimensiones anatómicas; seed = número."""
    kind = classify(tooth_number)
    dims = dimensions_for(kind, is_primary(tooth_number))
    return generate_tooth_mesh(
        kind,
        dims.width,
        dims.depth,
        dims.crown_height,
        tooth_number,
        radial_segments,
        height_segments,
    )


async def build_arch_meshes(
    layout: ArchLayout,
    radial_segments: int = DEFAULT_RADIAL_SEGMENTS,
    height_segments: int = DEFAULT_HEIGHT_SEGMENTS,
) -> dict[int, ToothMesh]:
    """
    Genera en paralelo (hilos de trabajo) las mallas de una arcada.
    Cada diente es independiente: no hay estado compartido mutable.
    """
    numbers = [p.tooth_number for p in layout]
    if not numbers:
        return {}
    meshes = await asyncio.gather(*(
        asyncio.to_thread(mesh_for_tooth, n, radial_segments, height_segments)
        for n in numbers
    ))
    return dict(zip(numbers, meshes))
