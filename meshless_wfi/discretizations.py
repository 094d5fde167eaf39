"""
Angular, energy and dimensional-moment discretizations.

Only the query interface consumed by the spatial discretization lives
here: group counts, spherical-harmonic moment bookkeeping and the number
of SUPG dimensional moments.

Moment ordering (degree l, order m):
  1D: m = 0 only                     -> L moments
  2D: -l <= m <= l with (l + m) even -> L(L+1)/2 moments
  3D: -l <= m <= l                   -> L^2 moments
where L is the number of scattering moments (degrees 0..L-1).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .constants import DIMENSIONS


@dataclass(frozen=True)
class EnergyDiscretization:
    """Multigroup energy structure (only the group count is consumed)."""

    number_of_groups: int

    def __post_init__(self):
        if self.number_of_groups < 1:
            raise ValueError(
                f"number_of_groups must be >= 1, got {self.number_of_groups}"
            )


@dataclass(frozen=True)
class AngularDiscretization:
    """Spherical-harmonic moment bookkeeping for a given dimension."""

    dimension: int
    number_of_scattering_moments: int
    harmonic_degrees: List[int] = field(init=False)
    harmonic_orders: List[int] = field(init=False)

    def __post_init__(self):
        if self.dimension not in DIMENSIONS:
            raise ValueError(f"dimension ({self.dimension}) not found")
        if self.number_of_scattering_moments < 1:
            raise ValueError(
                "number_of_scattering_moments must be >= 1, "
                f"got {self.number_of_scattering_moments}"
            )

        degrees = []
        orders = []
        for l in range(self.number_of_scattering_moments):
            if self.dimension == 1:
                candidates = [0]
            elif self.dimension == 2:
                candidates = [m for m in range(-l, l + 1) if (l + m) % 2 == 0]
            else:
                candidates = list(range(-l, l + 1))
            for m in candidates:
                degrees.append(l)
                orders.append(m)

        # frozen dataclass: bypass __setattr__ for derived fields
        object.__setattr__(self, 'harmonic_degrees', degrees)
        object.__setattr__(self, 'harmonic_orders', orders)

    @property
    def number_of_moments(self) -> int:
        return len(self.harmonic_degrees)

    @property
    def scattering_indices(self) -> List[int]:
        """Scattering moment (degree l) for each angular moment."""
        return list(self.harmonic_degrees)


@dataclass(frozen=True)
class DimensionalMoments:
    """SUPG dimensional moments: the value plus one gradient per dimension."""

    include_supg: bool
    dimension: int

    @property
    def number_of_dimensional_moments(self) -> int:
        return self.dimension + 1 if self.include_supg else 1
