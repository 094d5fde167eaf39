"""
Demonstration problems for the CLI and validation.

Two-group slab (1D) and square (2D) problems with a scattering, fissile
central region surrounded by a scattering reflector with a flat source.

Cross sections (1/cm):
  group             1      2
  fuel   sigma_t    0.5    1.2
         sigma_s    [[0.30, 0.00],   (to-group rows, from-group columns)
                     [0.15, 0.90]]
         nu         2.4    2.4
         sigma_f    0.01   0.12
         chi        1.0    0.0
  refl.  sigma_t    0.6    2.0
         sigma_s    [[0.45, 0.00],
                     [0.14, 1.90]]
         source     1.0    0.0  (isotropic moment only)
"""
from dataclasses import dataclass

import numpy as np

from .discretizations import AngularDiscretization, EnergyDiscretization
from .geometry import BoxGeometry, Region
from .materials import build_material


@dataclass
class Problem:
    """Geometry, discretizations and point centres of a demo problem."""

    geometry: BoxGeometry
    angular: AngularDiscretization
    energy: EnergyDiscretization
    points: np.ndarray
    spacing: float


def build_fuel(index, angular, energy):
    """Fissile two-group region."""
    return build_material(
        index, angular, energy,
        sigma_t=[0.5, 1.2],
        sigma_s=[[0.30, 0.00],
                 [0.15, 0.90]],
        nu=[2.4, 2.4],
        sigma_f=[0.01, 0.12],
        chi=[1.0, 0.0],
        name="fuel",
    )


def build_reflector(index, angular, energy):
    """Scattering reflector with a fast isotropic source."""
    source = np.zeros((angular.number_of_moments, energy.number_of_groups))
    source[0, 0] = 1.0
    return build_material(
        index, angular, energy,
        sigma_t=[0.6, 2.0],
        sigma_s=[[0.45, 0.00],
                 [0.14, 1.90]],
        internal_source=source,
        name="reflector",
    )


def build_problem(dimension=1, points_per_dimension=11, length=4.0,
                  number_of_scattering_moments=1, fuel_fraction=0.5) -> Problem:
    """Box [-L/2, L/2]^D with a central fuel box and a uniform point lattice."""
    if points_per_dimension < 2:
        raise ValueError("points_per_dimension must be >= 2")
    angular = AngularDiscretization(dimension, number_of_scattering_moments)
    energy = EnergyDiscretization(2)
    half = 0.5 * length
    fuel_half = 0.5 * fuel_fraction * length

    reflector = build_reflector(0, angular, energy)
    fuel = build_fuel(1, angular, energy)
    geometry = BoxGeometry(
        limits=[[-half, half]] * dimension,
        default_material=reflector,
        regions=[Region([-fuel_half] * dimension, [fuel_half] * dimension, fuel)],
    )

    axis = np.linspace(-half, half, points_per_dimension)
    grids = np.meshgrid(*([axis] * dimension), indexing='ij')
    points = np.stack([g.ravel() for g in grids], axis=-1)
    return Problem(geometry, angular, energy, points, float(axis[1] - axis[0]))
