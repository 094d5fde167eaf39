"""
Weight function integration on a background mesh.

Computes, for every weight function, its surface and volume integrals and
its weighted material by looping over background cells and boundary faces
instead of over the (overlapping) supports of the functions:

  1. build the background mesh and resolve which functions overlap which
     cells and faces (KD-tree radius queries at the inclusive radius)
  2. volume pass: per cell, evaluate every overlapping weight and basis
     function at the cell's Gauss-Legendre points, apply neighbour
     normalization, look up the material at each point and accumulate
     iv_w, iv_dw, the weight/basis pair integrals and the weighted
     cross sections of the active weighting scheme
  3. surface pass: per boundary face, accumulate is_w and is_b_w
  4. normalize the weighted cross sections and hand one Material plus one
     Integrals bundle to each weight function

Cells and faces are split into chunks by the backend; each chunk fills a
private ``IntegralAccumulator`` and the chunks are merged in order.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .accumulators import IntegralAccumulator
from .background_mesh import BackgroundMesh, Cell, Surface
from .backends.kernels import get_pair_kernel, weight_integrals
from .discretizations import DimensionalMoments
from .geometry import SolidGeometry
from .materials import Angular, Energy, Material, fission_matrix
from .options import WeakSpatialDiscretizationOptions
from .quadrature import surface_quadrature, volume_quadrature
from .weight_function import BasisFunction, Integrals, WeightFunction
from .weighting import PointData, WeightingStrategy, build_weighted_material, get_weighting

logger = logging.getLogger(__name__)


class IntegrationState(Enum):
    UNINTEGRATED = 0
    VOLUME_PASS = 1
    SURFACE_PASS = 2
    FINALIZED = 3


# ===================================================================
# Material lookup table
# ===================================================================

@dataclass
class MaterialTable:
    """Geometry materials packed as arrays for vectorized point lookup.

    sigma_t [R, G], sigma_s [R, L, G, G], fission [R, G, G] (chi nu sigma_f
    expanded unless stored group-to-group), internal_source [R, M, G].
    """

    geometry: SolidGeometry
    sigma_t: np.ndarray
    sigma_s: np.ndarray
    fission: np.ndarray
    internal_source: np.ndarray

    @classmethod
    def from_geometry(cls, geometry: SolidGeometry) -> "MaterialTable":
        materials = geometry.materials()
        for material in materials:
            material.check_class_invariants()
            if material.sigma_t.dependencies.energy != Energy.GROUP \
                    or material.sigma_t.dependencies.angular != Angular.NONE:
                raise ValueError(f"material {material.index}: sigma_t must be group-dependent")
            if material.sigma_s.dependencies.angular != Angular.SCATTERING_MOMENTS:
                raise ValueError(
                    f"material {material.index}: sigma_s must depend on scattering moments"
                )
            if material.internal_source.dependencies.angular != Angular.MOMENTS:
                raise ValueError(
                    f"material {material.index}: internal source must depend on moments"
                )

        return cls(
            geometry=geometry,
            sigma_t=np.array([m.sigma_t.as_array() for m in materials]),
            sigma_s=np.array([m.sigma_s.as_array() for m in materials]),
            fission=np.array([fission_matrix(m) for m in materials]),
            internal_source=np.array([m.internal_source.as_array() for m in materials]),
        )

    def lookup(self, positions):
        index = np.asarray(self.geometry.material_index(positions))
        return (self.sigma_t[index], self.sigma_s[index],
                self.fission[index], self.internal_source[index])


# ===================================================================
# Cell and surface integration (executed inside backend workers)
# ===================================================================

@dataclass
class IntegrationContext:
    """Picklable inputs shared by every cell and surface task."""

    dimension: int
    integration_ordinates: int
    identical: bool
    weight_functions: List
    basis_functions: List
    basis_lists: List[np.ndarray]
    local_surface_indices: np.ndarray
    cells: List[Cell]
    surfaces: List[Surface]
    material_table: MaterialTable
    strategy: WeightingStrategy
    number_of_basis_functions: List[int]
    number_of_boundary_surfaces: List[int]
    material_shapes: List[dict]

    def new_accumulator(self) -> IntegralAccumulator:
        return IntegralAccumulator(self.dimension,
                                   self.number_of_basis_functions,
                                   self.number_of_boundary_surfaces,
                                   self.material_shapes)

    def local_basis_table(self, weight_indices, basis_indices) -> np.ndarray:
        """[nw, nb] position of each cell basis in each weight's own list, or -1."""
        table = np.full((len(weight_indices), len(basis_indices)), -1, dtype=np.int64)
        for i, p in enumerate(weight_indices):
            own = self.basis_lists[p]
            if own.size == 0:
                continue
            k = np.searchsorted(own, basis_indices)
            k_clipped = np.minimum(k, own.size - 1)
            found = own[k_clipped] == basis_indices
            table[i] = np.where(found, k_clipped, -1)
        return table


def evaluate_functions(functions, indices, ordinates) -> Tuple[np.ndarray, np.ndarray]:
    """Values [q, n] and gradients [q, n, D], neighbour-normalized where needed."""
    n_q, dim = ordinates.shape
    values = np.zeros((n_q, len(indices)))
    gradients = np.zeros((n_q, len(indices), dim))
    dependent = np.zeros(len(indices), dtype=bool)
    for k, index in enumerate(indices):
        function = functions[index].function
        values[:, k], gradients[:, k] = function.evaluate(ordinates)
        dependent[k] = function.depends_on_neighbors()

    if np.any(dependent):
        first = functions[indices[np.argmax(dependent)]].function
        positions = np.array([functions[i].position for i in np.asarray(indices)[dependent]])
        values[:, dependent], gradients[:, dependent] = first.normalize(
            ordinates, positions, values[:, dependent], gradients[:, dependent])
    return values, gradients


def _evaluate_cell(context, ordinates, weight_indices, basis_indices):
    w_val, w_grad = evaluate_functions(context.weight_functions, weight_indices, ordinates)
    if context.identical:
        b_val, b_grad = w_val, w_grad
    else:
        b_val, b_grad = evaluate_functions(context.basis_functions, basis_indices, ordinates)
    return w_val, w_grad, b_val, b_grad


def integrate_cell(context: IntegrationContext, cell: Cell,
                   store: IntegralAccumulator, pair_kernel):
    """Volume pass contribution of one background cell."""
    if cell.weight_indices.size == 0:
        return
    ordinates, qw = volume_quadrature(cell, context.integration_ordinates)
    if qw.size == 0:
        return

    weight_indices, basis_indices = cell.weight_indices, cell.basis_indices
    w_val, w_grad, b_val, b_grad = _evaluate_cell(context, ordinates,
                                                  weight_indices, basis_indices)
    local_basis = context.local_basis_table(weight_indices, basis_indices)

    iv_w, iv_dw = weight_integrals(qw, w_val, w_grad)
    store.score_weights(weight_indices, iv_w, iv_dw)

    if basis_indices.size:
        pairs = pair_kernel(np.ascontiguousarray(qw),
                            np.ascontiguousarray(w_val),
                            np.ascontiguousarray(w_grad),
                            np.ascontiguousarray(b_val),
                            np.ascontiguousarray(b_grad),
                            local_basis)
        store.score_pairs(weight_indices, local_basis, *pairs)

    sigma_t, sigma_s, fission, source = context.material_table.lookup(ordinates)
    context.strategy.accumulate(PointData(
        quad_weights=qw,
        sigma_t=sigma_t,
        sigma_s=sigma_s,
        fission=fission,
        internal_source=source,
        weight_indices=weight_indices,
        weight_values=w_val,
        weight_gradients=w_grad,
        basis_indices=basis_indices,
        basis_values=b_val,
        basis_gradients=b_grad,
        local_basis=local_basis,
    ), store)


def integrate_surface(context: IntegrationContext, surface: Surface,
                      store: IntegralAccumulator):
    """Surface pass contribution of one boundary face: is_w and is_b_w."""
    if surface.weight_indices.size == 0:
        return
    ordinates, qw = surface_quadrature(surface, context.integration_ordinates)
    if qw.size == 0:
        return

    weight_indices, basis_indices = surface.weight_indices, surface.basis_indices
    w_val, _, b_val, _ = _evaluate_cell(context, ordinates, weight_indices, basis_indices)
    local_basis = context.local_basis_table(weight_indices, basis_indices)

    side = 0 if surface.normal < 0 else 1
    local_surfaces = context.local_surface_indices[weight_indices,
                                                   side + 2 * surface.surface_dimension]
    s_w = qw @ w_val
    s_b_w = np.einsum('q,qi,qj->ij', qw, w_val, b_val)
    store.score_surface(weight_indices, local_surfaces, local_basis, s_w, s_b_w)


def integrate_chunk(context: IntegrationContext, cell_indices: Sequence[int],
                    surface_indices: Sequence[int], use_numba: bool) -> IntegralAccumulator:
    """Integrate a chunk of cells and faces into a fresh accumulator."""
    store = context.new_accumulator()
    pair_kernel = get_pair_kernel(use_numba)
    for c in cell_indices:
        integrate_cell(context, context.cells[c], store, pair_kernel)
    for s in surface_indices:
        integrate_surface(context, context.surfaces[s], store)
    return store


# ===================================================================
# Engine
# ===================================================================

class WeightFunctionIntegration:
    """Mesh-based integration of all weight functions of a discretization.

    Parameters
    ----------
    number_of_points : int
    weak_options : WeakSpatialDiscretizationOptions
        Must carry ``limits`` and ``dimensional_cells``; finalized here if needed.
    bases : list of BasisFunction
    weights : list of WeightFunction
    backend : IntegrationBackend or None
        ``None`` -> single-process CPU backend.
    """

    def __init__(self, number_of_points: int,
                 weak_options: WeakSpatialDiscretizationOptions,
                 bases: List[BasisFunction],
                 weights: List[WeightFunction],
                 backend=None):
        if len(bases) != number_of_points or len(weights) != number_of_points:
            raise ValueError(
                f"need {number_of_points} basis and weight functions, "
                f"got {len(bases)} and {len(weights)}"
            )
        if number_of_points == 0:
            raise ValueError("no points to integrate")

        self.number_of_points = number_of_points
        self.weak_options = weak_options
        self.bases = bases
        self.weights = weights
        self.dimension = weights[0].dimension
        self.state = IntegrationState.UNINTEGRATED

        if not weak_options.input_finalized:
            weak_options.finalize_input()
        weak_options.check_dimension(self.dimension)
        if weak_options.limits is None or weak_options.dimensional_cells is None:
            raise ValueError("mesh integration requires limits and dimensional_cells")

        if backend is None:
            from .backends.cpu import CPUBackend
            backend = CPUBackend(n_workers=1)
        self.backend = backend

        self.mesh = BackgroundMesh(self.dimension, weak_options.limits,
                                   weak_options.dimensional_cells)
        if self.mesh.number_of_cells < number_of_points:
            logger.warning("fewer background cells (%d) than points (%d)",
                           self.mesh.number_of_cells, number_of_points)
        self.mesh.initialize_connectivity(weights, bases, identical=weak_options.identical)

        geometry = weights[0].solid_geometry
        test_material = geometry.materials()[0]
        self.angular = test_material.angular_discretization
        self.energy = test_material.energy_discretization
        self.dimensional_moments = DimensionalMoments(weak_options.include_supg, self.dimension)
        self.strategy = get_weighting(
            weak_options.weighting, self.angular, self.energy,
            self.dimensional_moments.number_of_dimensional_moments,
            weak_options.flux_coefficients)
        self.material_table = MaterialTable.from_geometry(geometry)

    def _context(self) -> IntegrationContext:
        accumulated = self.strategy.accumulated
        shapes = []
        for weight in self.weights:
            full = self.strategy.shapes(weight.number_of_basis_functions)
            shapes.append({k: v for k, v in full.items() if k in accumulated})
        return IntegrationContext(
            dimension=self.dimension,
            integration_ordinates=self.weak_options.integration_ordinates,
            identical=self.weak_options.identical,
            weight_functions=self.weights,
            basis_functions=self.bases,
            basis_lists=[w.basis_function_indices for w in self.weights],
            local_surface_indices=np.array([w.local_surface_indices for w in self.weights]),
            cells=self.mesh.cells,
            surfaces=self.mesh.surfaces,
            material_table=self.material_table,
            strategy=self.strategy,
            number_of_basis_functions=[w.number_of_basis_functions for w in self.weights],
            number_of_boundary_surfaces=[w.number_of_boundary_surfaces for w in self.weights],
            material_shapes=shapes,
        )

    def integrate(self) -> Tuple[List[Integrals], List[Material]]:
        """Run both passes and return per-point integrals and materials."""
        if self.state != IntegrationState.UNINTEGRATED:
            raise ValueError(f"integration already run (state {self.state.name})")
        context = self._context()

        t0 = time.perf_counter()
        self.state = IntegrationState.VOLUME_PASS
        store = self.backend.integrate_cells(context)
        logger.debug("volume pass: %d cells in %.3f s",
                     self.mesh.number_of_cells, time.perf_counter() - t0)

        t0 = time.perf_counter()
        self.state = IntegrationState.SURFACE_PASS
        store.merge(self.backend.integrate_surfaces(context))
        logger.debug("surface pass: %d surfaces in %.3f s",
                     self.mesh.number_of_surfaces, time.perf_counter() - t0)

        materials = self._finalize_materials(store)
        self.state = IntegrationState.FINALIZED
        return store.integrals, materials

    def _finalize_materials(self, store: IntegralAccumulator) -> List[Material]:
        dependencies = self.strategy.dependencies()
        materials = []
        for i, weight in enumerate(self.weights):
            arrays = dict(store.materials[i])
            arrays.setdefault('norm', np.ones(1))
            if self.weak_options.normalized:
                self.strategy.normalize(arrays)
            materials.append(build_weighted_material(
                i, self.angular, self.energy, dependencies, arrays,
                number_of_basis_functions=weight.number_of_basis_functions))
        return materials

    def perform_integration(self):
        """Integrate and push the results into every weight function."""
        integrals, materials = self.integrate()
        for weight, integral, material in zip(self.weights, integrals, materials):
            weight.set_integrals(integral, material)
