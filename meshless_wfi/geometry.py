"""
Solid geometry: axis-aligned box domain with rectangular material regions.

The domain is the box  limits[d][0] <= x_d <= limits[d][1]  for d < D.
Regions are sub-boxes tagged with a material; later regions override
earlier ones where they overlap, and points outside every region take
the default material.  The 2*D faces of the domain box are the boundary
surfaces (Cartesian planes) seen by the meshless functions.

Region lookup works with a single position [D] or with arrays [n, D].
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .constants import DIMENSIONS
from .materials import Material


# ===================================================================
# Boundary surfaces
# ===================================================================

@dataclass
class BoundarySource:
    """Incoming angular source on a boundary plane.

    ``data`` is a flat array (e.g. [ordinates * groups]); ``alpha`` is the
    albedo (0 = vacuum, 1 = reflective).
    """

    data: np.ndarray
    alpha: float = 0.0

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float64).ravel()

    @property
    def size(self):
        return self.data.size


@dataclass
class CartesianPlane:
    """Plane x[surface_dimension] = position with outward normal +/-1."""

    index: int
    dimension: int
    surface_dimension: int
    position: float
    normal: float
    boundary_source: Optional[BoundarySource] = None

    def __post_init__(self):
        if not 0 <= self.surface_dimension < self.dimension:
            raise ValueError(
                f"surface_dimension ({self.surface_dimension}) out of range "
                f"for dimension {self.dimension}"
            )
        if self.normal not in (-1, 1, -1.0, 1.0):
            raise ValueError(f"normal must be +/-1, got {self.normal}")

    def distance(self, position) -> float:
        """Unsigned distance from ``position`` to the plane."""
        return abs(float(position[self.surface_dimension]) - self.position)

    def intersects(self, position, radius: float) -> bool:
        return self.distance(position) <= radius


# ===================================================================
# Solid geometry
# ===================================================================

class SolidGeometry(ABC):
    """Point-query collaborator: material at a position."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @abstractmethod
    def material(self, position) -> Material:
        pass

    @abstractmethod
    def materials(self) -> List[Material]:
        """All distinct materials; ``material_index`` points into this list."""
        pass

    @abstractmethod
    def material_index(self, positions):
        pass

    @abstractmethod
    def boundary_surfaces(self) -> List[CartesianPlane]:
        pass


@dataclass
class Region:
    """Axis-aligned sub-box [lower, upper] holding one material."""

    lower: np.ndarray
    upper: np.ndarray
    material: Material

    def __post_init__(self):
        self.lower = np.asarray(self.lower, dtype=np.float64)
        self.upper = np.asarray(self.upper, dtype=np.float64)

    def contains(self, positions):
        positions = np.asarray(positions, dtype=np.float64)
        return np.all((positions >= self.lower) & (positions <= self.upper), axis=-1)


@dataclass
class BoxGeometry(SolidGeometry):
    """Box domain with material regions and one plane per box face.

    Parameters
    ----------
    limits : [[min, max]] per dimension
    default_material : Material used outside all regions
    regions : list of Region, later entries take precedence
    boundary_sources : optional {(dim, normal): BoundarySource}
    """

    limits: Sequence[Sequence[float]]
    default_material: Material
    regions: List[Region] = field(default_factory=list)
    boundary_sources: dict = field(default_factory=dict)

    def __post_init__(self):
        self.limits = np.asarray(self.limits, dtype=np.float64).reshape(-1, 2)
        if len(self.limits) not in DIMENSIONS:
            raise ValueError(f"dimension ({len(self.limits)}) not found")
        if np.any(self.limits[:, 1] <= self.limits[:, 0]):
            raise ValueError(f"box limits must be increasing: {self.limits.tolist()}")

        self._surfaces = []
        for d in range(self.dimension):
            for normal, position in ((-1.0, self.limits[d, 0]), (1.0, self.limits[d, 1])):
                self._surfaces.append(CartesianPlane(
                    index=len(self._surfaces),
                    dimension=self.dimension,
                    surface_dimension=d,
                    position=float(position),
                    normal=normal,
                    boundary_source=self.boundary_sources.get((d, int(normal))),
                ))

    @property
    def dimension(self) -> int:
        return len(self.limits)

    def inside(self, positions):
        positions = np.asarray(positions, dtype=np.float64)
        return np.all((positions >= self.limits[:, 0]) & (positions <= self.limits[:, 1]),
                      axis=-1)

    def region(self, positions):
        """Region index for position(s); -1 for the default material.

        Works with a single position [D] or an array [n, D].
        """
        positions = np.asarray(positions, dtype=np.float64)
        if positions.ndim == 1:
            result = -1
            for i, reg in enumerate(self.regions):
                if reg.contains(positions):
                    result = i
            return result

        result = np.full(len(positions), -1, dtype=np.int32)
        for i, reg in enumerate(self.regions):
            result[reg.contains(positions)] = i
        return result

    def material(self, position) -> Material:
        index = self.region(position)
        if index < 0:
            return self.default_material
        return self.regions[index].material

    def materials(self) -> List[Material]:
        return [self.default_material] + [reg.material for reg in self.regions]

    def material_index(self, positions):
        """Index into ``materials()`` for position(s): 0 is the default."""
        return self.region(positions) + 1

    def boundary_surfaces(self) -> List[CartesianPlane]:
        return list(self._surfaces)
