"""
Cross sections and materials as flat coefficient arrays.

Each cross section is a flat numpy array tagged with a dependency
descriptor.  The descriptor fixes the array size:

  size = spatial * angular * energy * dimensional

  angular:     NONE -> 1, MOMENTS -> M, SCATTERING_MOMENTS -> L
  energy:      NONE -> 1, GROUP -> G, GROUP_TO_GROUP -> G*G
  spatial:     POINT, BASIS -> 1, BASIS_WEIGHT -> number of basis functions
  dimensional: NONE -> 1, SUPG -> D+1

Flat ordering puts the dimensional moment fastest, then the from-group,
the to-group, the angular moment and the basis function:

  k = d + Dm*(gf + G*(gt + G*(l + L*j)))

which is the C order of the array shape (B, L, Gt, Gf, Dm).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .discretizations import AngularDiscretization, EnergyDiscretization


# ===================================================================
# Dependency descriptor
# ===================================================================

class Angular(Enum):
    NONE = 0
    MOMENTS = 1
    SCATTERING_MOMENTS = 2


class Energy(Enum):
    NONE = 0
    GROUP = 1
    GROUP_TO_GROUP = 2


class Spatial(Enum):
    POINT = 0
    BASIS = 1
    BASIS_WEIGHT = 2


class Dimensional(Enum):
    NONE = 0
    SUPG = 1


@dataclass(frozen=True)
class Dependencies:
    """What a cross section's flat data array is indexed by."""

    angular: Angular = Angular.NONE
    energy: Energy = Energy.NONE
    spatial: Spatial = Spatial.POINT
    dimensional: Dimensional = Dimensional.NONE


# ===================================================================
# Cross section
# ===================================================================

@dataclass
class CrossSection:
    """Flat cross-section data with a dependency descriptor.

    Parameters
    ----------
    dependencies : Dependencies
    angular_discretization, energy_discretization
        Provide moment and group counts for the size check.
    data : array_like
        Flat coefficients; size must match ``dependencies``.
    number_of_basis_functions : int
        Only used for ``Spatial.BASIS_WEIGHT``.
    """

    dependencies: Dependencies
    angular_discretization: AngularDiscretization
    energy_discretization: EnergyDiscretization
    data: np.ndarray
    number_of_basis_functions: int = 1
    shape: Tuple[int, ...] = field(init=False, default=())

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float64).ravel()
        self.shape = self._shape()
        expected = int(np.prod(self.shape)) if self.shape else 1
        if self.data.size != expected:
            raise ValueError(
                f"cross section size ({self.data.size}) does not match "
                f"dependencies {self.dependencies} (expected {expected})"
            )

    def _shape(self) -> Tuple[int, ...]:
        dep = self.dependencies
        n_groups = self.energy_discretization.number_of_groups
        shape = []

        if dep.spatial == Spatial.BASIS_WEIGHT:
            shape.append(self.number_of_basis_functions)

        if dep.angular == Angular.MOMENTS:
            shape.append(self.angular_discretization.number_of_moments)
        elif dep.angular == Angular.SCATTERING_MOMENTS:
            shape.append(self.angular_discretization.number_of_scattering_moments)

        if dep.energy == Energy.GROUP:
            shape.append(n_groups)
        elif dep.energy == Energy.GROUP_TO_GROUP:
            shape.extend([n_groups, n_groups])

        if dep.dimensional == Dimensional.SUPG:
            shape.append(self.angular_discretization.dimension + 1)

        return tuple(shape)

    @property
    def size(self) -> int:
        return self.data.size

    def as_array(self) -> np.ndarray:
        """Shaped read-only view of the flat data."""
        view = self.data.reshape(self.shape).view()
        view.flags.writeable = False
        return view


# ===================================================================
# Material
# ===================================================================

@dataclass
class Material:
    """Cross sections for a region or for a single meshless point.

    ``sigma_f`` holds either the fission cross section (energy GROUP, to be
    combined with ``nu`` and ``chi``) or the full chi*nu*sigma_f transfer
    matrix (energy GROUP_TO_GROUP, ``nu``/``chi`` are placeholders).
    """

    index: int
    angular_discretization: AngularDiscretization
    energy_discretization: EnergyDiscretization
    sigma_t: CrossSection
    sigma_s: CrossSection
    nu: CrossSection
    sigma_f: CrossSection
    chi: CrossSection
    internal_source: CrossSection
    name: str = ""

    @property
    def is_fissile(self) -> bool:
        return bool(np.any(self.sigma_f.data != 0.0))

    def check_class_invariants(self):
        for cs in (self.sigma_t, self.sigma_s, self.nu,
                   self.sigma_f, self.chi, self.internal_source):
            if cs.energy_discretization.number_of_groups != \
                    self.energy_discretization.number_of_groups:
                raise ValueError("cross section group count differs from material")
        if self.sigma_s.dependencies.energy != Energy.GROUP_TO_GROUP:
            raise ValueError("sigma_s must be group-to-group")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        from .conversion import dependencies_to_dict

        out = {'index': self.index, 'name': self.name}
        for key in ('sigma_t', 'sigma_s', 'nu', 'sigma_f', 'chi', 'internal_source'):
            cs = getattr(self, key)
            out[key] = {
                'dependencies': dependencies_to_dict(cs.dependencies),
                'data': cs.data.tolist(),
            }
        return out


# ===================================================================
# Helpers
# ===================================================================

def fission_matrix(material: Material) -> np.ndarray:
    """Group-to-group fission matrix [G_to, G_from] for a point material.

    Expands chi (x) nu (x) sigma_f unless the material already stores
    the product as a group-to-group cross section.
    """
    n_groups = material.energy_discretization.number_of_groups
    sigma_f = material.sigma_f
    if sigma_f.dependencies.energy == Energy.GROUP_TO_GROUP:
        return sigma_f.data.reshape(n_groups, n_groups)
    if sigma_f.dependencies.energy != Energy.GROUP:
        raise ValueError(f"fission dependency {sigma_f.dependencies} not supported")

    chi = material.chi.data
    nu = material.nu.data
    if chi.size != n_groups or nu.size != n_groups:
        raise ValueError("chi and nu must be group-dependent to expand fission")
    return np.outer(chi, nu * sigma_f.data)


def build_material(
    index: int,
    angular: AngularDiscretization,
    energy: EnergyDiscretization,
    sigma_t,
    sigma_s,
    nu=None,
    sigma_f=None,
    chi=None,
    internal_source=None,
    name: str = "",
) -> Material:
    """Build a point material from per-group data.

    Parameters
    ----------
    sigma_t : (G,) total cross section.
    sigma_s : (L, G_to, G_from) scattering cross section per scattering moment.
              A (G_to, G_from) array is taken as isotropic (L = 1 data padded
              with zeros for higher moments).
    nu, sigma_f, chi : (G,) fission data; default non-fissile.
    internal_source : (M, G) source per angular moment; default zero.

    Returns
    -------
    Material with group-dependent cross sections.
    """
    n_groups = energy.number_of_groups
    n_scat = angular.number_of_scattering_moments
    n_moments = angular.number_of_moments

    sigma_t = np.asarray(sigma_t, dtype=np.float64)
    sigma_s = np.asarray(sigma_s, dtype=np.float64)
    if sigma_s.ndim == 2:
        padded = np.zeros((n_scat, n_groups, n_groups))
        padded[0] = sigma_s
        sigma_s = padded

    if nu is None:
        nu = np.zeros(n_groups)
    if sigma_f is None:
        sigma_f = np.zeros(n_groups)
    if chi is None:
        chi = np.zeros(n_groups)
    if internal_source is None:
        internal_source = np.zeros((n_moments, n_groups))

    group = Dependencies(energy=Energy.GROUP)
    scattering = Dependencies(angular=Angular.SCATTERING_MOMENTS,
                              energy=Energy.GROUP_TO_GROUP)
    moment_group = Dependencies(angular=Angular.MOMENTS, energy=Energy.GROUP)

    def cs(dep, data):
        return CrossSection(dep, angular, energy, data)

    return Material(
        index=index,
        angular_discretization=angular,
        energy_discretization=energy,
        sigma_t=cs(group, sigma_t),
        sigma_s=cs(scattering, sigma_s),
        nu=cs(group, nu),
        sigma_f=cs(group, sigma_f),
        chi=cs(group, chi),
        internal_source=cs(moment_group, internal_source),
        name=name,
    )
