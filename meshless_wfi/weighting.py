"""
Cross-section weighting strategies for the integration engine.

Each strategy turns the material seen at a batch of quadrature points into
weighted cross-section accumulators for the points (weight functions) of a
background cell.  ``wid`` is the dimensional-moment weight:

  wid[q, i, 0] = w_i(x_q)              (value)
  wid[q, i, d] = dw_i/dx_{d-1}(x_q)    (SUPG gradient moments, d >= 1)

Accumulated shapes per point (Dm = dimensional moments, B = basis functions
of the weight):

  scheme   sigma_t      sigma_s            sigma_f          norm
  FLAT     [G, Dm]      [L, Gt, Gf, Dm]    [Gt, Gf, Dm]     [Dm]
  FLUX     [M, G, Dm]   [M, Gt, Gf, Dm]    [Gt, Gf, Dm]     [M, G, Dm]
  FULL     [B, G, Dm]   [B, L, Gt, Gf, Dm] [B, Gt, Gf, Dm]  fixed at 1
  BASIS    [G, Dm]      [L, Gt, Gf, Dm]    [Gt, Gf, Dm]     [Dm]

The internal source is always [M, G, Dm], weighted by the weight function
and never normalized.  Flat material arrays are the C order of these shapes.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .constants import NORM_TOLERANCE
from .materials import (
    Angular,
    CrossSection,
    Dependencies,
    Dimensional,
    Energy,
    Material,
    Spatial,
)
from .options import Weighting


CROSS_SECTIONS = ('sigma_t', 'sigma_s', 'sigma_f')


@dataclass
class PointData:
    """Everything known at the quadrature points of one background cell.

    Leading axis q runs over quadrature points; i over the cell's weight
    functions and j over its basis functions.
    """

    quad_weights: np.ndarray        # [q]
    sigma_t: np.ndarray             # [q, G]
    sigma_s: np.ndarray             # [q, L, Gt, Gf]
    fission: np.ndarray             # [q, Gt, Gf]
    internal_source: np.ndarray     # [q, M, G]
    weight_indices: np.ndarray      # [nw]
    weight_values: np.ndarray       # [q, nw]
    weight_gradients: np.ndarray    # [q, nw, D]
    basis_indices: np.ndarray       # [nb]
    basis_values: np.ndarray        # [q, nb]
    basis_gradients: np.ndarray     # [q, nb, D]
    local_basis: np.ndarray         # [nw, nb], -1 where the pair is unrelated


def dimensional_weights(values, gradients, number_of_dimensional_moments):
    """Stack value and gradient components into [..., Dm]."""
    if number_of_dimensional_moments == 1:
        return values[..., None]
    return np.concatenate(
        [values[..., None], gradients[..., :number_of_dimensional_moments - 1]],
        axis=-1)


def normalize_dimensional(values, norm):
    """Divide moment d of ``values`` [..., Dm] by ``norm[d]``.

    Gradient moments whose norm vanishes relative to the value moment
    (interior functions have zero net gradient) take the value-moment
    average instead of an ill-conditioned quotient. This intentionally
    differs from plain division by ``norm[d]`` for those moments.
    """
    norm = np.asarray(norm, dtype=np.float64)
    if norm[0] == 0.0:
        return values
    valid = np.abs(norm) > NORM_TOLERANCE * abs(norm[0])
    valid[0] = True
    quotient = values / np.where(valid, norm, 1.0)
    fallback = values[..., :1] / norm[0]
    return np.where(valid, quotient, fallback)


def safe_divide(values, norm):
    """values / norm with zero where the norm vanishes."""
    norm = np.broadcast_to(norm, values.shape)
    out = np.zeros_like(values)
    np.divide(values, norm, out=out, where=norm != 0.0)
    return out


class WeightingStrategy(ABC):
    """Common bookkeeping for the mesh-integration weighting schemes.

    Parameters
    ----------
    angular : AngularDiscretization
    energy : EnergyDiscretization
    number_of_dimensional_moments : int
        1, or D+1 with SUPG.
    """

    weighting: Weighting = None
    spatial = Spatial.POINT
    accumulated = CROSS_SECTIONS + ('internal_source', 'norm')

    def __init__(self, angular, energy, number_of_dimensional_moments: int):
        self.angular = angular
        self.energy = energy
        self.number_of_dimensional_moments = number_of_dimensional_moments

    @property
    def include_supg(self) -> bool:
        return self.number_of_dimensional_moments > 1

    def _sizes(self):
        return (self.energy.number_of_groups,
                self.angular.number_of_scattering_moments,
                self.angular.number_of_moments,
                self.number_of_dimensional_moments)

    @abstractmethod
    def shapes(self, number_of_basis_functions: int) -> Dict[str, Tuple[int, ...]]:
        """Accumulator shapes for one point."""
        pass

    @abstractmethod
    def accumulate(self, point_data: PointData, store):
        """Add this cell's weighted cross sections to ``store``."""
        pass

    @abstractmethod
    def normalize(self, arrays: Dict[str, np.ndarray]):
        """Divide one point's cross-section accumulators by its norm in place."""
        pass

    def _wid(self, point_data):
        return dimensional_weights(point_data.weight_values,
                                   point_data.weight_gradients,
                                   self.number_of_dimensional_moments)

    def _accumulate_source(self, point_data, store, wid):
        source = np.einsum('q,qmg,qid->imgd', point_data.quad_weights,
                           point_data.internal_source, wid)
        for i, p in enumerate(point_data.weight_indices):
            store.add_material(p, 'internal_source', source[i])

    def dependencies(self) -> Dict[str, Dependencies]:
        dimensional = Dimensional.SUPG if self.include_supg else Dimensional.NONE
        return {
            'sigma_t': Dependencies(angular=Angular.NONE, energy=Energy.GROUP,
                                    spatial=self.spatial, dimensional=dimensional),
            'sigma_s': Dependencies(angular=Angular.SCATTERING_MOMENTS,
                                    energy=Energy.GROUP_TO_GROUP,
                                    spatial=self.spatial, dimensional=dimensional),
            'sigma_f': Dependencies(energy=Energy.GROUP_TO_GROUP,
                                    spatial=self.spatial, dimensional=dimensional),
            'internal_source': Dependencies(angular=Angular.MOMENTS, energy=Energy.GROUP,
                                            dimensional=dimensional),
        }


# ===================================================================
# Schemes
# ===================================================================

class FlatWeighting(WeightingStrategy):
    """Cross sections averaged against the weight function (and its gradient)."""

    weighting = Weighting.FLAT

    def shapes(self, number_of_basis_functions):
        G, L, M, Dm = self._sizes()
        return {
            'sigma_t': (G, Dm),
            'sigma_s': (L, G, G, Dm),
            'sigma_f': (G, G, Dm),
            'internal_source': (M, G, Dm),
            'norm': (Dm,),
        }

    def accumulate(self, point_data, store):
        qw = point_data.quad_weights
        wid = self._wid(point_data)
        sigma_t = np.einsum('q,qg,qid->igd', qw, point_data.sigma_t, wid)
        sigma_s = np.einsum('q,qlab,qid->ilabd', qw, point_data.sigma_s, wid)
        sigma_f = np.einsum('q,qab,qid->iabd', qw, point_data.fission, wid)
        norm = np.einsum('q,qid->id', qw, wid)
        for i, p in enumerate(point_data.weight_indices):
            store.add_material(p, 'sigma_t', sigma_t[i])
            store.add_material(p, 'sigma_s', sigma_s[i])
            store.add_material(p, 'sigma_f', sigma_f[i])
            store.add_material(p, 'norm', norm[i])
        self._accumulate_source(point_data, store, wid)

    def normalize(self, arrays):
        for key in CROSS_SECTIONS:
            arrays[key] = normalize_dimensional(arrays[key], arrays['norm'])


class BasisWeighting(FlatWeighting):
    """Cross sections averaged against the basis function of each point.

    The weight function only enters the internal source.
    """

    weighting = Weighting.BASIS
    spatial = Spatial.BASIS

    def accumulate(self, point_data, store):
        qw = point_data.quad_weights
        bid = dimensional_weights(point_data.basis_values,
                                  point_data.basis_gradients,
                                  self.number_of_dimensional_moments)
        sigma_t = np.einsum('q,qg,qjd->jgd', qw, point_data.sigma_t, bid)
        sigma_s = np.einsum('q,qlab,qjd->jlabd', qw, point_data.sigma_s, bid)
        sigma_f = np.einsum('q,qab,qjd->jabd', qw, point_data.fission, bid)
        norm = np.einsum('q,qjd->jd', qw, bid)
        for j, p in enumerate(point_data.basis_indices):
            store.add_material(p, 'sigma_t', sigma_t[j])
            store.add_material(p, 'sigma_s', sigma_s[j])
            store.add_material(p, 'sigma_f', sigma_f[j])
            store.add_material(p, 'norm', norm[j])
        self._accumulate_source(point_data, store, self._wid(point_data))


class FluxWeighting(WeightingStrategy):
    """Cross sections averaged against weight times the expanded flux.

    ``flux_coefficients`` [N, G, M] expand the flux in the basis functions;
    at a quadrature point phi[g, m] = sum_j b_j(x) * c[j, g, m].  Fission
    is weighted by the scalar (m = 0) flux of the from-group.
    """

    weighting = Weighting.FLUX

    def __init__(self, angular, energy, number_of_dimensional_moments,
                 flux_coefficients):
        super().__init__(angular, energy, number_of_dimensional_moments)
        G, _, M, _ = self._sizes()
        coefficients = np.asarray(flux_coefficients, dtype=np.float64)
        if coefficients.ndim != 3 or coefficients.shape[1:] != (G, M):
            raise ValueError(
                f"flux_coefficients must have shape [N, {G}, {M}], got {coefficients.shape}"
            )
        self.flux_coefficients = coefficients
        self.moment_degrees = np.asarray(angular.scattering_indices, dtype=np.int64)

    def shapes(self, number_of_basis_functions):
        G, L, M, Dm = self._sizes()
        return {
            'sigma_t': (M, G, Dm),
            'sigma_s': (M, G, G, Dm),
            'sigma_f': (G, G, Dm),
            'internal_source': (M, G, Dm),
            'norm': (M, G, Dm),
        }

    def dependencies(self):
        deps = super().dependencies()
        for key in ('sigma_t', 'sigma_s'):
            old = deps[key]
            deps[key] = Dependencies(angular=Angular.MOMENTS, energy=old.energy,
                                     spatial=old.spatial, dimensional=old.dimensional)
        return deps

    def accumulate(self, point_data, store):
        qw = point_data.quad_weights
        wid = self._wid(point_data)
        phi = np.einsum('qj,jgm->qgm', point_data.basis_values,
                        self.flux_coefficients[point_data.basis_indices])
        sigma_s_m = point_data.sigma_s[:, self.moment_degrees]

        sigma_t = np.einsum('q,qg,qgm,qid->imgd', qw, point_data.sigma_t, phi, wid)
        sigma_s = np.einsum('q,qmab,qbm,qid->imabd', qw, sigma_s_m, phi, wid)
        sigma_f = np.einsum('q,qab,qb,qid->iabd', qw, point_data.fission, phi[:, :, 0], wid)
        norm = np.einsum('q,qgm,qid->imgd', qw, phi, wid)
        for i, p in enumerate(point_data.weight_indices):
            store.add_material(p, 'sigma_t', sigma_t[i])
            store.add_material(p, 'sigma_s', sigma_s[i])
            store.add_material(p, 'sigma_f', sigma_f[i])
            store.add_material(p, 'norm', norm[i])
        self._accumulate_source(point_data, store, wid)

    def normalize(self, arrays):
        norm = arrays['norm']
        arrays['sigma_t'] = safe_divide(arrays['sigma_t'], norm)
        arrays['sigma_s'] = safe_divide(arrays['sigma_s'], norm[:, None, :, :])
        arrays['sigma_f'] = safe_divide(arrays['sigma_f'], norm[0][None, :, :])


class FullWeighting(WeightingStrategy):
    """Cross sections integrated against each weight/basis product.

    Results are indexed by the weight's local basis index and are never
    normalized (norm fixed at 1).
    """

    weighting = Weighting.FULL
    spatial = Spatial.BASIS_WEIGHT
    accumulated = CROSS_SECTIONS + ('internal_source',)

    def shapes(self, number_of_basis_functions):
        G, L, M, Dm = self._sizes()
        B = number_of_basis_functions
        return {
            'sigma_t': (B, G, Dm),
            'sigma_s': (B, L, G, G, Dm),
            'sigma_f': (B, G, G, Dm),
            'internal_source': (M, G, Dm),
            'norm': (1,),
        }

    def accumulate(self, point_data, store):
        qw = point_data.quad_weights
        wid = self._wid(point_data)
        b = point_data.basis_values
        sigma_t = np.einsum('q,qg,qj,qid->ijgd', qw, point_data.sigma_t, b, wid)
        sigma_s = np.einsum('q,qlab,qj,qid->ijlabd', qw, point_data.sigma_s, b, wid)
        sigma_f = np.einsum('q,qab,qj,qid->ijabd', qw, point_data.fission, b, wid)
        for i, p in enumerate(point_data.weight_indices):
            for j, k in enumerate(point_data.local_basis[i]):
                if k < 0:
                    continue
                store.add_material(p, 'sigma_t', sigma_t[i, j], k)
                store.add_material(p, 'sigma_s', sigma_s[i, j], k)
                store.add_material(p, 'sigma_f', sigma_f[i, j], k)
        self._accumulate_source(point_data, store, wid)

    def normalize(self, arrays):
        arrays['norm'] = np.ones(1)


WEIGHTING_STRATEGIES = {
    Weighting.FLAT: FlatWeighting,
    Weighting.FLUX: FluxWeighting,
    Weighting.FULL: FullWeighting,
    Weighting.BASIS: BasisWeighting,
}


def get_weighting(weighting: Weighting, angular, energy,
                  number_of_dimensional_moments: int,
                  flux_coefficients: Optional[np.ndarray] = None) -> WeightingStrategy:
    """Build the strategy for a weighting scheme.

    Raises
    ------
    ValueError
        POINT weighting (no mesh integration) or FLUX without coefficients.
    """
    if weighting == Weighting.POINT:
        raise ValueError("POINT weighting is not valid with mesh integration")
    if weighting == Weighting.FLUX:
        if flux_coefficients is None:
            raise ValueError("FLUX weighting requires flux_coefficients")
        return FluxWeighting(angular, energy, number_of_dimensional_moments,
                             flux_coefficients)
    return WEIGHTING_STRATEGIES[weighting](angular, energy, number_of_dimensional_moments)


# ===================================================================
# Material assembly
# ===================================================================

def placeholder_cross_section(angular, energy) -> CrossSection:
    """nu/chi stand-in once fission is folded into a transfer matrix."""
    return CrossSection(Dependencies(), angular, energy, np.ones(1))


def build_weighted_material(index: int, angular, energy,
                            dependencies: Dict[str, Dependencies],
                            arrays: Dict[str, np.ndarray],
                            number_of_basis_functions: int = 1) -> Material:
    """Material from weighted accumulators (flat C order of their shapes)."""
    def cs(key):
        return CrossSection(dependencies[key], angular, energy,
                            np.ascontiguousarray(arrays[key]).ravel(),
                            number_of_basis_functions=number_of_basis_functions)

    return Material(
        index=index,
        angular_discretization=angular,
        energy_discretization=energy,
        sigma_t=cs('sigma_t'),
        sigma_s=cs('sigma_s'),
        nu=placeholder_cross_section(angular, energy),
        sigma_f=cs('sigma_f'),
        chi=placeholder_cross_section(angular, energy),
        internal_source=cs('internal_source'),
    )
