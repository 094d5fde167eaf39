"""
Basis and weight functions of the meshless discretization.

A weight function owns its integrals and its weighted material.  They are
either pushed in by the mesh integration engine (``set_integrals``) or, when
mesh integration is disabled, computed here by integrating directly over
the function's own support intersected with the domain boundaries:

  1D  the interval [x - r, x + r] clipped to the boundary planes
  2D  the disk |x - x0| <= r (polar rule) or, near boundaries, the disk
      clipped to the boundary box (x-slice rule); basis pairs integrate
      over the lens of the two disks

The direct path supports POINT and FLAT weighting in 1D and 2D only.

Integral shapes (S boundary surfaces, B basis functions, D dimension):

  is_w [S]      is_b_w [S, B]
  iv_w [1]      iv_dw [D]
  iv_b_w [B]    iv_b_dw [B, D]    iv_db_w [B, D]    iv_db_dw [B, D_b, D_w]
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .constants import DOES_NOT_EXIST
from .conversion import point_type_to_string
from .geometry import BoundarySource, CartesianPlane, SolidGeometry
from .materials import CrossSection, Material, fission_matrix
from .meshless_functions import MeshlessFunction
from .options import (
    PointType,
    TauScaling,
    WeakSpatialDiscretizationOptions,
    Weighting,
    WeightFunctionOptions,
)
from .quadrature import (
    Rule,
    cylindrical_2d,
    disk_intersection_2d,
    empty_rule,
    interval_1d,
)
from .weighting import (
    FlatWeighting,
    build_weighted_material,
    dimensional_weights,
    normalize_dimensional,
)

logger = logging.getLogger(__name__)


# ===================================================================
# Integrals
# ===================================================================

@dataclass
class Integrals:
    """Surface and volume integrals of one weight function."""

    is_w: np.ndarray
    is_b_w: np.ndarray
    iv_w: np.ndarray
    iv_dw: np.ndarray
    iv_b_w: np.ndarray
    iv_b_dw: np.ndarray
    iv_db_w: np.ndarray
    iv_db_dw: np.ndarray

    @classmethod
    def zeros(cls, number_of_boundary_surfaces: int, number_of_basis_functions: int,
              dimension: int) -> "Integrals":
        S, B, D = number_of_boundary_surfaces, number_of_basis_functions, dimension
        return cls(
            is_w=np.zeros(S),
            is_b_w=np.zeros((S, B)),
            iv_w=np.zeros(1),
            iv_dw=np.zeros(D),
            iv_b_w=np.zeros(B),
            iv_b_dw=np.zeros((B, D)),
            iv_db_w=np.zeros((B, D)),
            iv_db_dw=np.zeros((B, D, D)),
        )

    def expected_shapes(self, S, B, D):
        return {
            'is_w': (S,),
            'is_b_w': (S, B),
            'iv_w': (1,),
            'iv_dw': (D,),
            'iv_b_w': (B,),
            'iv_b_dw': (B, D),
            'iv_db_w': (B, D),
            'iv_db_dw': (B, D, D),
        }

    def check_shapes(self, S, B, D):
        for key, shape in self.expected_shapes(S, B, D).items():
            actual = np.shape(getattr(self, key))
            if actual != shape:
                raise ValueError(f"{key} has shape {actual}, expected {shape}")

    def to_dict(self) -> Dict[str, list]:
        return {f.name: np.asarray(getattr(self, f.name)).tolist()
                for f in dataclasses.fields(self)}


# ===================================================================
# Basis function
# ===================================================================

class BasisFunction:
    """Trial function: a meshless function plus the boundary planes it touches."""

    def __init__(self, index: int, dimension: int, function: MeshlessFunction,
                 boundary_surfaces: Optional[List[CartesianPlane]] = None):
        self.index = index
        self.dimension = dimension
        self.function = function
        self.boundary_surfaces = list(boundary_surfaces or [])
        self.check_class_invariants()

    @property
    def position(self):
        return self.function.position

    @property
    def radius(self):
        return self.function.radius

    @property
    def number_of_boundary_surfaces(self):
        return len(self.boundary_surfaces)

    @property
    def point_type(self) -> PointType:
        return PointType.BOUNDARY if self.boundary_surfaces else PointType.INTERNAL

    def check_class_invariants(self):
        if len(self.position) != self.dimension:
            raise ValueError("basis function position does not match dimension")
        for surface in self.boundary_surfaces:
            if surface.distance(self.position) > self.radius:
                raise ValueError(
                    f"boundary surface {surface.index} does not intersect basis {self.index}"
                )

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'point_type': point_type_to_string(self.point_type),
            'dimension': self.dimension,
            'position': np.asarray(self.position).tolist(),
            'radius': float(self.radius),
            'boundary_surfaces': [s.index for s in self.boundary_surfaces],
            'function': self.function.to_dict(),
        }


# ===================================================================
# Weight function
# ===================================================================

class WeightFunction:
    """Test function of one point, owner of its integrals and material.

    Parameters
    ----------
    index : int
    dimension : int
    options : WeightFunctionOptions
        Copied; tau is rescaled per function near boundaries.
    weak_options : WeakSpatialDiscretizationOptions
    function : MeshlessFunction
    basis_functions : list of BasisFunction
        The basis functions whose support overlaps this weight function.
    dimensional_moments : DimensionalMoments
    solid_geometry : SolidGeometry
    boundary_surfaces : list of CartesianPlane
        Domain planes intersected by the support.
    """

    def __init__(self, index: int, dimension: int,
                 options: WeightFunctionOptions,
                 weak_options: WeakSpatialDiscretizationOptions,
                 function: MeshlessFunction,
                 basis_functions: List[BasisFunction],
                 dimensional_moments,
                 solid_geometry: SolidGeometry,
                 boundary_surfaces: Optional[List[CartesianPlane]] = None):
        self.index = index
        self.dimension = dimension
        self.options = dataclasses.replace(options)
        self.weak_options = weak_options
        self.function = function
        self.basis_functions = sorted(basis_functions, key=lambda b: b.index)
        self.dimensional_moments = dimensional_moments
        self.solid_geometry = solid_geometry
        self.boundary_surfaces = list(boundary_surfaces or [])

        self.integrals: Optional[Integrals] = None
        self.material: Optional[Material] = None
        self.boundary_sources: List[Optional[BoundarySource]] = []

        self.set_options_and_limits()
        self.calculate_values()
        if (not self.weak_options.external_integral_calculation
                and self.weak_options.perform_integration):
            self.calculate_integrals()
            self.calculate_material()
            self.calculate_boundary_source()
            self.check_class_invariants()

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def position(self) -> np.ndarray:
        return self.function.position

    @property
    def radius(self) -> float:
        return self.function.radius

    @property
    def number_of_basis_functions(self) -> int:
        return len(self.basis_functions)

    @property
    def number_of_boundary_surfaces(self) -> int:
        return len(self.boundary_surfaces)

    @property
    def basis_function_indices(self) -> np.ndarray:
        return self._basis_indices

    def basis_function(self, i: int) -> BasisFunction:
        return self.basis_functions[i]

    def local_basis_index(self, global_index: int) -> int:
        return self._basis_global_indices.get(int(global_index), DOES_NOT_EXIST)

    def local_surface_index(self, surface_dimension: int, normal: float) -> int:
        side = 0 if normal < 0 else 1
        return int(self.local_surface_indices[side + 2 * surface_dimension])

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_options_and_limits(self):
        self.point_type = (PointType.BOUNDARY if self.boundary_surfaces
                           else PointType.INTERNAL)

        if not self.weak_options.input_finalized:
            self.weak_options.finalize_input()

        D = self.dimension
        self.min_boundary_limits = np.full(D, -np.inf)
        self.max_boundary_limits = np.full(D, np.inf)
        self.local_surface_indices = np.full(2 * D, DOES_NOT_EXIST, dtype=np.int64)
        for i, surface in enumerate(self.boundary_surfaces):
            d = surface.surface_dimension
            if surface.normal < 0:
                self.min_boundary_limits[d] = max(self.min_boundary_limits[d], surface.position)
                self.local_surface_indices[2 * d] = i
            else:
                self.max_boundary_limits[d] = min(self.max_boundary_limits[d], surface.position)
                self.local_surface_indices[1 + 2 * d] = i

        if self.weak_options.include_supg:
            self._set_tau()

        self._basis_indices = np.array([b.index for b in self.basis_functions], dtype=np.int64)
        self._basis_global_indices = {int(g): i for i, g in enumerate(self._basis_indices)}

    def _set_tau(self):
        """Scale the SUPG constant near boundaries and set tau."""
        scaling = self.weak_options.tau_scaling
        if self.boundary_surfaces:
            closest = min(self.boundary_surfaces, key=lambda s: s.distance(self.position))
            if scaling in (TauScaling.NONE, TauScaling.CONSTANT):
                ratio = 1.0
            elif scaling == TauScaling.ABSOLUTE:
                ratio = 0.0
            elif scaling == TauScaling.LINEAR:
                ratio = closest.distance(self.position) / self.radius
            else:
                b_position = self.position.copy()
                b_position[closest.surface_dimension] = closest.position
                ratio = self.function.value(b_position) / self.function.value(self.position)
            self.options.tau_const *= min(max(ratio, 0.0), 1.0)

        if scaling == TauScaling.CONSTANT:
            self.options.tau = self.options.tau_const
        else:
            self.options.tau = self.options.tau_const / self.function.shape

    def calculate_values(self):
        """Basis values v_b [B] and gradients v_db [B, D] at the weight centre."""
        self.v_b = np.zeros(self.number_of_basis_functions)
        self.v_db = np.zeros((self.number_of_basis_functions, self.dimension))
        for i, basis in enumerate(self.basis_functions):
            self.v_b[i] = basis.function.value(self.position)
            self.v_db[i] = basis.function.gradient_value(self.position)

    # ------------------------------------------------------------------
    # Direct quadrature
    # ------------------------------------------------------------------

    def _check_direct(self):
        if self.dimension not in (1, 2):
            raise NotImplementedError("direct integration is only implemented in 1D and 2D")
        if self.function.depends_on_neighbors() or any(
                b.function.depends_on_neighbors() for b in self.basis_functions):
            raise NotImplementedError(
                "direct integration of neighbor-normalized functions is not implemented"
            )

    def _box(self, d):
        return self.min_boundary_limits[d], self.max_boundary_limits[d]

    def full_quadrature(self) -> Rule:
        """Rule over the weight support clipped to the boundaries."""
        n = self.weak_options.integration_ordinates
        x, r = self.position, self.radius
        if self.dimension == 1:
            return interval_1d(n, max(x[0] - r, self.min_boundary_limits[0]),
                               min(x[0] + r, self.max_boundary_limits[0]))
        if self.dimension == 2:
            if not self.boundary_surfaces:
                return cylindrical_2d(n, n, x, r)
            return disk_intersection_2d(n, n, [(x, r)], self._box(0), self._box(1))
        raise NotImplementedError("direct integration is only implemented in 1D and 2D")

    def basis_quadrature(self, i: int) -> Rule:
        """Rule over the overlap of the weight and basis ``i`` supports."""
        n = self.weak_options.integration_ordinates
        basis = self.basis_functions[i]
        x, r = self.position, self.radius
        xb, rb = basis.position, basis.radius
        if self.dimension == 1:
            lo = max(x[0] - r, xb[0] - rb, self.min_boundary_limits[0])
            hi = min(x[0] + r, xb[0] + rb, self.max_boundary_limits[0])
            return interval_1d(n, lo, hi)
        if self.dimension == 2:
            return disk_intersection_2d(n, n, [(x, r), (xb, rb)], self._box(0), self._box(1))
        raise NotImplementedError("direct integration is only implemented in 1D and 2D")

    def _chord_rule(self, s: int, s_lo: float, s_hi: float) -> Rule:
        surface = self.boundary_surfaces[s]
        other = 1 - surface.surface_dimension
        s_lo = max(s_lo, self.min_boundary_limits[other])
        s_hi = min(s_hi, self.max_boundary_limits[other])
        ordinates, weights = interval_1d(self.weak_options.integration_ordinates, s_lo, s_hi)
        if weights.size == 0:
            return empty_rule(2)
        ordinates = np.insert(ordinates, surface.surface_dimension, surface.position, axis=1)
        return ordinates, weights

    def full_surface_quadrature(self, s: int) -> Rule:
        surface = self.boundary_surfaces[s]
        if self.dimension == 1:
            return np.array([[surface.position]]), np.ones(1)
        if self.dimension == 2:
            other = 1 - surface.surface_dimension
            dist = surface.distance(self.position)
            half = np.sqrt(max(self.radius ** 2 - dist ** 2, 0.0))
            return self._chord_rule(s, self.position[other] - half,
                                    self.position[other] + half)
        raise NotImplementedError("direct integration is only implemented in 1D and 2D")

    def basis_surface_quadrature(self, i: int, s: int) -> Rule:
        surface = self.boundary_surfaces[s]
        if self.dimension == 1:
            return np.array([[surface.position]]), np.ones(1)
        if self.dimension != 2:
            raise NotImplementedError("direct integration is only implemented in 1D and 2D")

        basis = self.basis_functions[i]
        dist_b = surface.distance(basis.position)
        if not basis.boundary_surfaces or dist_b > basis.radius:
            return empty_rule(2)

        other = 1 - surface.surface_dimension
        half_b = np.sqrt(basis.radius ** 2 - dist_b ** 2)
        dist = surface.distance(self.position)
        half = np.sqrt(max(self.radius ** 2 - dist ** 2, 0.0))
        s_lo = max(self.position[other] - half, basis.position[other] - half_b)
        s_hi = min(self.position[other] + half, basis.position[other] + half_b)
        return self._chord_rule(s, s_lo, s_hi)

    def calculate_integrals(self):
        """Integrate weight and weight/basis products over their supports."""
        self._check_direct()
        S, B, D = self.number_of_boundary_surfaces, self.number_of_basis_functions, self.dimension
        integrals = Integrals.zeros(S, B, D)
        weight = self.function

        for i, basis in enumerate(self.basis_functions):
            for s in range(S):
                ordinates, qw = self.basis_surface_quadrature(i, s)
                if qw.size == 0:
                    continue
                w, _ = weight.evaluate(ordinates)
                b, _ = basis.function.evaluate(ordinates)
                integrals.is_b_w[s, i] = np.sum(qw * b * w)

            ordinates, qw = self.basis_quadrature(i)
            if qw.size == 0:
                logger.warning("weight %d and basis %d have an empty overlap quadrature",
                               self.index, basis.index)
                continue
            w, dw = weight.evaluate(ordinates)
            b, db = basis.function.evaluate(ordinates)
            integrals.iv_b_w[i] = np.sum(qw * b * w)
            integrals.iv_b_dw[i] = np.einsum('q,q,qd->d', qw, b, dw)
            integrals.iv_db_w[i] = np.einsum('q,qd,q->d', qw, db, w)
            integrals.iv_db_dw[i] = np.einsum('q,qa,qb->ab', qw, db, dw)

        for s in range(S):
            ordinates, qw = self.full_surface_quadrature(s)
            if qw.size:
                w, _ = weight.evaluate(ordinates)
                integrals.is_w[s] = np.sum(qw * w)

        ordinates, qw = self.full_quadrature()
        if qw.size:
            w, dw = weight.evaluate(ordinates)
            integrals.iv_w[0] = np.sum(qw * w)
            integrals.iv_dw[:] = qw @ dw

        self.integrals = integrals

    # ------------------------------------------------------------------
    # Direct material
    # ------------------------------------------------------------------

    def calculate_material(self):
        weighting = self.weak_options.weighting
        if weighting == Weighting.POINT:
            if self.weak_options.include_supg:
                self.material = self._supg_point_material()
            else:
                self.material = self._standard_point_material()
        elif weighting == Weighting.FLAT:
            self.material = self._flat_material()
        else:
            raise NotImplementedError(
                f"{weighting.name} weighting is not implemented for direct integration"
            )

    def _test_material(self) -> Material:
        return self.solid_geometry.material(self.position)

    def _standard_point_material(self) -> Material:
        test = self._test_material()
        source = CrossSection(test.internal_source.dependencies,
                              test.angular_discretization,
                              test.energy_discretization,
                              self.integrals.iv_w[0] * test.internal_source.data)
        return dataclasses.replace(test, index=self.index, internal_source=source, name="")

    def _supg_point_material(self) -> Material:
        test = self._test_material()
        angular, energy = test.angular_discretization, test.energy_discretization
        G = energy.number_of_groups
        w = np.concatenate([self.integrals.iv_w, self.integrals.iv_dw])

        sigma_t = test.sigma_t.data
        sigma_s = test.sigma_s.data.reshape(-1, G, G)
        fission = fission_matrix(test)
        source = test.internal_source.data.reshape(-1, G)

        # scaled by [iv_w, iv_dw] whether or not the discretization is normalized
        arrays = {
            'sigma_t': np.multiply.outer(sigma_t, w),
            'sigma_s': np.multiply.outer(sigma_s, w),
            'sigma_f': np.multiply.outer(fission, w),
            'internal_source': np.multiply.outer(source, w),
        }

        strategy = FlatWeighting(angular, energy, self.dimension + 1)
        return build_weighted_material(self.index, angular, energy,
                                       strategy.dependencies(), arrays)

    def _flat_material(self) -> Material:
        ordinates, qw = self.full_quadrature()
        geometry = self.solid_geometry
        test = self._test_material()
        angular, energy = test.angular_discretization, test.energy_discretization
        G = energy.number_of_groups
        Dm = self.dimension + 1 if self.weak_options.include_supg else 1

        table = geometry.materials()
        index = np.asarray(geometry.material_index(ordinates))
        sigma_t = np.array([table[k].sigma_t.data for k in index]).reshape(len(qw), G)
        sigma_s = np.array([table[k].sigma_s.data for k in index]).reshape(len(qw), -1, G, G)
        fission = np.array([fission_matrix(table[k]) for k in index]).reshape(len(qw), G, G)
        source = np.array([table[k].internal_source.data for k in index]).reshape(len(qw), -1, G)

        w, dw = self.function.evaluate(ordinates)
        wid = dimensional_weights(w, dw, Dm)
        arrays = {
            'sigma_t': np.einsum('q,qg,qd->gd', qw, sigma_t, wid),
            'sigma_s': np.einsum('q,qlab,qd->labd', qw, sigma_s, wid),
            'sigma_f': np.einsum('q,qab,qd->abd', qw, fission, wid),
            'internal_source': np.einsum('q,qmg,qd->mgd', qw, source, wid),
        }
        if self.weak_options.normalized:
            norm = np.einsum('q,qd->d', qw, wid)
            for key in ('sigma_t', 'sigma_s', 'sigma_f'):
                arrays[key] = normalize_dimensional(arrays[key], norm)

        strategy = FlatWeighting(angular, energy, Dm)
        return build_weighted_material(self.index, angular, energy,
                                       strategy.dependencies(), arrays)

    # ------------------------------------------------------------------
    # Boundary sources and results
    # ------------------------------------------------------------------

    def calculate_boundary_source(self):
        """Scale each boundary plane's source by the surface weight integral."""
        self.boundary_sources = []
        for s, surface in enumerate(self.boundary_surfaces):
            source = surface.boundary_source
            if source is None:
                self.boundary_sources.append(None)
                continue
            self.boundary_sources.append(
                BoundarySource(source.data * self.integrals.is_w[s], source.alpha))

    def set_integrals(self, integrals: Integrals, material: Material,
                      boundary_sources: Optional[List[Optional[BoundarySource]]] = None):
        """Receive results of the mesh integration and re-check invariants."""
        self.integrals = integrals
        self.material = material
        if boundary_sources is None:
            self.calculate_boundary_source()
        else:
            self.boundary_sources = list(boundary_sources)
        self.check_class_invariants()

    def check_class_invariants(self):
        for surface in self.boundary_surfaces:
            if surface.distance(self.position) > self.radius:
                raise ValueError(
                    f"boundary surface {surface.index} does not intersect weight {self.index}"
                )
        if self.dimension != self.solid_geometry.dimension:
            raise ValueError("weight function dimension differs from geometry")
        if len(self.position) != self.dimension:
            raise ValueError("weight function position does not match dimension")
        if self.material is None:
            raise ValueError(f"weight function {self.index} has no material")
        if self.integrals is None:
            raise ValueError(f"weight function {self.index} has no integrals")
        if len(self.boundary_sources) != self.number_of_boundary_surfaces:
            raise ValueError("boundary source count does not match boundary surfaces")
        if self.v_b.shape != (self.number_of_basis_functions,):
            raise ValueError("basis values have the wrong size")
        if self.v_db.shape != (self.number_of_basis_functions, self.dimension):
            raise ValueError("basis gradients have the wrong size")
        self.integrals.check_shapes(self.number_of_boundary_surfaces,
                                    self.number_of_basis_functions,
                                    self.dimension)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        out = {
            'index': self.index,
            'point_type': point_type_to_string(self.point_type),
            'dimension': self.dimension,
            'position': np.asarray(self.position).tolist(),
            'number_of_basis_functions': self.number_of_basis_functions,
            'radius': float(self.radius),
            'tau_const': self.options.tau_const,
            'tau': self.options.tau,
            'function': self.function.to_dict(),
            'basis_functions': self.basis_function_indices.tolist(),
            'boundary_surfaces': [s.index for s in self.boundary_surfaces],
            'min_boundary_limits': self.min_boundary_limits.tolist(),
            'max_boundary_limits': self.max_boundary_limits.tolist(),
        }
        if self.options.output_material and self.material is not None:
            out['material'] = self.material.to_dict()
        if self.options.output_integrals and self.integrals is not None:
            out['integrals'] = self.integrals.to_dict()
        return out
