"""
Transport operators built on the weighted materials of a discretization.

Flux vectors are flat arrays in the layout

  k = n + Nn*(d + Dl*(g + G*(m + M*i)))

i.e. the C order of shape (N, M, G, Dl, Nn): point i, angular moment m,
group g, dimensional moment d, node n.  Dl is the number of dimensional
moments carried by the flux (1 unless ``include_dimensional_moments``).
"""
from __future__ import annotations

import numpy as np

from .materials import Angular, Dimensional, Energy, Spatial


def _number_of_dimensional_moments(cross_section) -> int:
    if cross_section.dependencies.dimensional == Dimensional.SUPG:
        return cross_section.angular_discretization.dimension + 1
    return 1


class Scattering:
    """Scattering source  x_to = sigma_s * x_from  per point and moment.

    Parameters
    ----------
    spatial_discretization : WeakSpatialDiscretization
    angular_discretization, energy_discretization
    include_dimensional_moments : bool
        Flux carries all dimensional moments (else only the value moment).
    coherent : bool
        Keep only within-group (diagonal) scattering.
    """

    def __init__(self, spatial_discretization, angular_discretization,
                 energy_discretization, include_dimensional_moments: bool = False,
                 coherent: bool = False):
        self.spatial_discretization = spatial_discretization
        self.angular_discretization = angular_discretization
        self.energy_discretization = energy_discretization
        self.include_dimensional_moments = include_dimensional_moments
        self.coherent = coherent
        self.check_class_invariants()

    def check_class_invariants(self):
        for i in range(self.spatial_discretization.number_of_points):
            dep = self.spatial_discretization.point(i).material.sigma_s.dependencies
            if dep.angular not in (Angular.SCATTERING_MOMENTS, Angular.MOMENTS):
                raise ValueError(f"point {i}: sigma_s must depend on (scattering) moments")
            if dep.energy != Energy.GROUP_TO_GROUP:
                raise ValueError(f"point {i}: sigma_s must be group-to-group")
            if dep.spatial == Spatial.BASIS_WEIGHT:
                raise ValueError(f"point {i}: basis-weighted sigma_s needs a full operator")

    @property
    def number_of_dimensional_moments(self) -> int:
        if self.include_dimensional_moments:
            return self.spatial_discretization.number_of_dimensional_moments
        return 1

    @property
    def shape(self):
        sd = self.spatial_discretization
        return (sd.number_of_points,
                self.angular_discretization.number_of_moments,
                self.energy_discretization.number_of_groups,
                self.number_of_dimensional_moments,
                sd.number_of_nodes)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape))

    def apply(self, x):
        """Return the scattering source for flux ``x`` (flat)."""
        x = np.asarray(x, dtype=np.float64)
        if x.size != self.size:
            raise ValueError(f"flux size {x.size} does not match operator size {self.size}")
        if self.coherent:
            return self.apply_coherent(x)
        return self.apply_full(x)

    def _sigma_s(self, i):
        """sigma_s of point i as [M, Gt, Gf, Dl] (moment degrees expanded)."""
        cs = self.spatial_discretization.point(i).material.sigma_s
        G = self.energy_discretization.number_of_groups
        Dm = _number_of_dimensional_moments(cs)
        Dl = self.number_of_dimensional_moments
        if Dl > Dm:
            raise ValueError(f"point {i}: sigma_s has {Dm} dimensional moments, need {Dl}")
        sigma = cs.data.reshape(-1, G, G, Dm)[..., :Dl]
        if cs.dependencies.angular == Angular.SCATTERING_MOMENTS:
            sigma = sigma[np.asarray(self.angular_discretization.scattering_indices)]
        return sigma

    def apply_full(self, x):
        y = np.asarray(x, dtype=np.float64).reshape(self.shape)
        result = np.empty_like(y)
        for i in range(self.shape[0]):
            result[i] = np.einsum('mabd,mbdn->madn', self._sigma_s(i), y[i])
        return result.ravel()

    def apply_coherent(self, x):
        y = np.asarray(x, dtype=np.float64).reshape(self.shape)
        result = np.empty_like(y)
        for i in range(self.shape[0]):
            diagonal = np.einsum('mggd->mgd', self._sigma_s(i))
            result[i] = diagonal[..., None] * y[i]
        return result.ravel()


class FullFission:
    """Fission source from basis-weighted (FULL) fission matrices.

    Only the scalar moment (m = 0) of the source is nonzero:

      x_to[i, 0, gt, d, n] = sum_j sum_gf sigma_f[i][j, gt, gf, d] * x_from[b_j, 0, gf, n]

    where b_j are the basis functions of weight i.  The input flux carries no
    dimensional moments: shape (N, M, G, Nn).
    """

    def __init__(self, spatial_discretization, angular_discretization,
                 energy_discretization):
        self.spatial_discretization = spatial_discretization
        self.angular_discretization = angular_discretization
        self.energy_discretization = energy_discretization
        self.check_class_invariants()

    def check_class_invariants(self):
        for i in range(self.spatial_discretization.number_of_points):
            dep = self.spatial_discretization.weight(i).material.sigma_f.dependencies
            if dep.angular != Angular.NONE:
                raise ValueError(f"point {i}: sigma_f must not depend on angle")
            if dep.energy != Energy.GROUP_TO_GROUP:
                raise ValueError(f"point {i}: sigma_f must be group-to-group")
            if dep.spatial != Spatial.BASIS_WEIGHT:
                raise ValueError(f"point {i}: sigma_f must be basis-weighted")

    def _sizes(self):
        sd = self.spatial_discretization
        return (sd.number_of_points,
                self.angular_discretization.number_of_moments,
                self.energy_discretization.number_of_groups,
                sd.number_of_dimensional_moments,
                sd.number_of_nodes)

    def apply(self, x):
        return self.apply_full(x)

    def apply_full(self, x):
        N, M, G, Dm, Nn = self._sizes()
        x = np.asarray(x, dtype=np.float64)
        if x.size != N * M * G * Nn:
            raise ValueError(f"flux size {x.size} does not match {N * M * G * Nn}")
        y = x.reshape(N, M, G, Nn)
        result = np.zeros((N, M, G, Dm, Nn))
        for i in range(N):
            weight = self.spatial_discretization.weight(i)
            B = weight.number_of_basis_functions
            sigma_f = weight.material.sigma_f.data.reshape(B, G, G, Dm)
            y_from = y[weight.basis_function_indices, 0]
            result[i, 0] = np.einsum('jabd,jbn->adn', sigma_f, y_from)
        return result.ravel()

    def apply_coherent(self, x):
        raise NotImplementedError("coherent scattering is not implemented for full fission")
