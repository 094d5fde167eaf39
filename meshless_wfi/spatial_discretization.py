"""
Weak (meshless) spatial discretization factory.

Builds one basis and one weight function per point, finds the boundary
planes each support touches and the basis functions each weight overlaps,
then integrates either on a background mesh or directly per weight.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy.spatial import cKDTree

from .discretizations import AngularDiscretization, DimensionalMoments, EnergyDiscretization
from .geometry import BoxGeometry
from .integration import WeightFunctionIntegration
from .meshless_functions import RBFFunction, ShepardFunction, get_rbf
from .options import (
    IdenticalBasisFunctions,
    WeakSpatialDiscretizationOptions,
    WeightFunctionOptions,
)
from .weight_function import BasisFunction, WeightFunction

logger = logging.getLogger(__name__)


def _per_point(value, number_of_points, name):
    values = np.broadcast_to(np.asarray(value, dtype=np.float64), (number_of_points,))
    if np.any(values <= 0):
        raise ValueError(f"{name} must be positive")
    return values.copy()


class WeakSpatialDiscretization:
    """Meshless discretization of a box geometry.

    Parameters
    ----------
    points : array_like [N, D]
        Centres of the basis/weight functions.
    solid_geometry : BoxGeometry
    angular_discretization : AngularDiscretization
    energy_discretization : EnergyDiscretization
    options : WeakSpatialDiscretizationOptions
        Copied; AUTO settings and mesh defaults are resolved on the copy.
        ``limits`` default to the geometry box; ``dimensional_cells`` default
        to about one cell per point.
    weight_options : WeightFunctionOptions or None
    basis_shape, weight_shape : float or array [N]
        RBF shape parameters (weight defaults to the basis shape).
    rbf : str
        Kernel name, see ``meshless_functions.RBF_KERNELS``.
    shepard : bool
        Shepard-normalize the basis functions.
    backend : IntegrationBackend or None
    """

    number_of_nodes = 1

    def __init__(self, points, solid_geometry: BoxGeometry,
                 angular_discretization: AngularDiscretization,
                 energy_discretization: EnergyDiscretization,
                 options: WeakSpatialDiscretizationOptions,
                 weight_options: Optional[WeightFunctionOptions] = None,
                 basis_shape: Union[float, Sequence[float]] = 1.0,
                 weight_shape: Union[float, Sequence[float], None] = None,
                 rbf: str = 'wendland_c2',
                 shepard: bool = False,
                 backend=None):
        self.points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        self.dimension = solid_geometry.dimension
        if self.points.shape[1] != self.dimension:
            raise ValueError(
                f"points have dimension {self.points.shape[1]}, geometry has {self.dimension}"
            )
        self.number_of_points = len(self.points)
        self.solid_geometry = solid_geometry
        self.angular_discretization = angular_discretization
        self.energy_discretization = energy_discretization
        self.options = options = dataclasses.replace(options)
        self.weight_options = weight_options or WeightFunctionOptions()
        self.dimensional_moments = DimensionalMoments(options.include_supg, self.dimension)

        basis_shape = _per_point(basis_shape, self.number_of_points, "basis_shape")
        weight_shape = (basis_shape.copy() if weight_shape is None
                        else _per_point(weight_shape, self.number_of_points, "weight_shape"))
        kernel = get_rbf(rbf)

        if options.identical_basis_functions == IdenticalBasisFunctions.AUTO:
            identical = not shepard and np.array_equal(basis_shape, weight_shape)
        else:
            identical = None
        self._fill_mesh_defaults()
        options.check_dimension(self.dimension)
        options.finalize_input(identical)

        basis_meshless = []
        weight_meshless = []
        for i, position in enumerate(self.points):
            basis = RBFFunction(basis_shape[i], position, kernel)
            basis_meshless.append(ShepardFunction(basis) if shepard else basis)
            weight_meshless.append(RBFFunction(weight_shape[i], position, kernel))

        self.bases: List[BasisFunction] = [
            BasisFunction(i, self.dimension, f, self._boundary_surfaces(f))
            for i, f in enumerate(basis_meshless)
        ]
        basis_lists = self._basis_lists(weight_meshless)

        self.weights: List[WeightFunction] = []
        for i, f in enumerate(weight_meshless):
            self.weights.append(WeightFunction(
                index=i,
                dimension=self.dimension,
                options=self.weight_options,
                weak_options=options,
                function=f,
                basis_functions=[self.bases[j] for j in basis_lists[i]],
                dimensional_moments=self.dimensional_moments,
                solid_geometry=solid_geometry,
                boundary_surfaces=self._boundary_surfaces(f),
            ))

        self.integration = None
        if options.external_integral_calculation and options.perform_integration:
            self.integration = WeightFunctionIntegration(
                self.number_of_points, options, self.bases, self.weights, backend)
            self.integration.perform_integration()

    def _fill_mesh_defaults(self):
        options = self.options
        if options.limits is None:
            options.limits = self.solid_geometry.limits.tolist()
        if options.dimensional_cells is None:
            per_dimension = int(np.ceil(self.number_of_points ** (1.0 / self.dimension)))
            options.dimensional_cells = [max(1, per_dimension)] * self.dimension

    def _boundary_surfaces(self, function):
        return [s for s in self.solid_geometry.boundary_surfaces()
                if s.intersects(function.position, function.radius)]

    def _basis_lists(self, weight_functions):
        """Sorted indices of the basis functions overlapping each weight.

        Supports overlap when the centre distance is below the sum of radii.
        """
        centres = np.array([b.position for b in self.bases])
        radii = np.array([b.radius for b in self.bases])
        tree = cKDTree(centres)
        lists = []
        for weight in weight_functions:
            candidates = tree.query_ball_point(weight.position, weight.radius + radii.max())
            candidates = np.array(sorted(candidates), dtype=np.int64)
            dist = np.linalg.norm(centres[candidates] - weight.position, axis=1)
            lists.append(candidates[dist < weight.radius + radii[candidates]])
        return lists

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def number_of_dimensional_moments(self) -> int:
        return self.dimensional_moments.number_of_dimensional_moments

    @property
    def identical_basis_functions(self) -> bool:
        return self.options.identical

    def weight(self, i: int) -> WeightFunction:
        return self.weights[i]

    def basis(self, i: int) -> BasisFunction:
        return self.bases[i]

    def point(self, i: int) -> WeightFunction:
        return self.weights[i]

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            'dimension': self.dimension,
            'number_of_points': self.number_of_points,
            'number_of_dimensional_moments': self.number_of_dimensional_moments,
            'identical_basis_functions': self.identical_basis_functions,
            'weighting': self.options.weighting.name.lower(),
            'weights': [w.to_dict() for w in self.weights],
        }
