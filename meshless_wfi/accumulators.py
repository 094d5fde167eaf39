"""
Per-point integral accumulators filled during the mesh integration passes.

One accumulator holds, for every point, the surface/volume integrals of its
weight function and the weighted-material sums of its weighting scheme.
Workers fill private accumulators for their chunk of cells; the parent
merges them in chunk order, so no array is ever written concurrently.
"""
from typing import Dict, List, Sequence

import numpy as np

from .weight_function import Integrals


class IntegralAccumulator:
    """Accumulates integrals and material sums for all points.

    Args:
        dimension: spatial dimension D
        number_of_basis_functions: B for each point
        number_of_boundary_surfaces: S for each point
        material_shapes: accumulator shapes {name: shape} for each point
    """

    def __init__(self, dimension: int,
                 number_of_basis_functions: Sequence[int],
                 number_of_boundary_surfaces: Sequence[int],
                 material_shapes: Sequence[Dict[str, tuple]]):
        self.dimension = dimension
        self.number_of_points = len(number_of_basis_functions)
        self.number_of_basis_functions = list(number_of_basis_functions)
        self.number_of_boundary_surfaces = list(number_of_boundary_surfaces)
        self.material_shapes = list(material_shapes)
        self.reset()

    def reset(self):
        """Zero all accumulators."""
        D = self.dimension
        self.integrals: List[Integrals] = [
            Integrals.zeros(S, B, D)
            for S, B in zip(self.number_of_boundary_surfaces,
                            self.number_of_basis_functions)
        ]
        self.materials: List[Dict[str, np.ndarray]] = [
            {name: np.zeros(shape) for name, shape in shapes.items()}
            for shapes in self.material_shapes
        ]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_weights(self, weight_indices, iv_w, iv_dw):
        """Add weight-only volume integrals iv_w [nw] and iv_dw [nw, D]."""
        for i, p in enumerate(weight_indices):
            self.integrals[p].iv_w[0] += iv_w[i]
            self.integrals[p].iv_dw += iv_dw[i]

    def score_pairs(self, weight_indices, local_basis, b_w, b_dw, db_w, db_dw):
        """Add weight/basis volume integrals for every related pair.

        ``local_basis[i, j]`` is basis j's position in weight i's own basis
        list, or negative where the pair is unrelated.
        """
        for i, p in enumerate(weight_indices):
            integrals = self.integrals[p]
            for j, k in enumerate(local_basis[i]):
                if k < 0:
                    continue
                integrals.iv_b_w[k] += b_w[i, j]
                integrals.iv_b_dw[k] += b_dw[i, j]
                integrals.iv_db_w[k] += db_w[i, j]
                integrals.iv_db_dw[k] += db_dw[i, j]

    def score_surface(self, weight_indices, local_surfaces, local_basis, s_w, s_b_w):
        """Add surface integrals; weights with no matching local surface are skipped."""
        for i, p in enumerate(weight_indices):
            ls = local_surfaces[i]
            if ls < 0:
                continue
            integrals = self.integrals[p]
            integrals.is_w[ls] += s_w[i]
            for j, k in enumerate(local_basis[i]):
                if k >= 0:
                    integrals.is_b_w[ls, k] += s_b_w[i, j]

    def add_material(self, point: int, name: str, value, local_index=None):
        if local_index is None:
            self.materials[point][name] += value
        else:
            self.materials[point][name][local_index] += value

    # ------------------------------------------------------------------
    # Reduction
    # ------------------------------------------------------------------

    def merge(self, other: "IntegralAccumulator"):
        """Add another accumulator (e.g. from a worker) into this one."""
        if other.number_of_points != self.number_of_points:
            raise ValueError("cannot merge accumulators of different sizes")
        for mine, theirs in zip(self.integrals, other.integrals):
            for key in ('is_w', 'is_b_w', 'iv_w', 'iv_dw', 'iv_b_w',
                        'iv_b_dw', 'iv_db_w', 'iv_db_dw'):
                getattr(mine, key)[...] += getattr(theirs, key)
        for mine, theirs in zip(self.materials, other.materials):
            for name, value in theirs.items():
                mine[name] += value
