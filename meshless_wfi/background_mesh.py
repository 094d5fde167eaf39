"""
Structured Cartesian background mesh used as an integration scaffold.

The mesh is independent of the meshless points: it only bounds the
quadrature regions and answers "which functions overlap this cell /
boundary face" through a KD-tree over its nodes.

Layout (row-major, last dimension fastest):
  nodes     prod(cells[d] + 1)   flat index sum_d i[d] * prod_{d'>d} (cells[d'] + 1)
  cells     prod(cells[d])       flat index sum_d i[d] * prod_{d'>d} cells[d']
  surfaces  2*D slabs ordered (d=0,-), (d=0,+), (d=1,-), ...; slab (d, sign)
            holds one face per cell with i[d] == 0 (sign -) or cells[d]-1 (sign +)

Connectivity: a function of radius r is queried at the inclusive radius

  1D  r' = r
  2D  r' = sqrt(r^2 + h^2 / 4)
  3D  r' = sqrt(r^2 + h^2 / 2)

(h = largest interval).  Every returned node contributes its adjacent
cells and boundary faces; the cell containing the centre is always a
candidate.  Candidates are kept when their box lies strictly closer than
r to the centre, so cells that only touch the support at a point (zero
measure) are not listed.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
from scipy.spatial import cKDTree

from .constants import DIMENSIONS

logger = logging.getLogger(__name__)


def _empty_indices():
    return np.zeros(0, dtype=np.int64)


@dataclass
class Node:
    index: int
    position: np.ndarray
    neighboring_cells: List[int] = field(default_factory=list)
    neighboring_surfaces: List[int] = field(default_factory=list)


@dataclass
class Cell:
    """Axis-aligned box limits[d] = [min, max] with its overlap lists."""

    index: int
    limits: np.ndarray
    neighboring_nodes: List[int] = field(default_factory=list)
    neighboring_surfaces: List[int] = field(default_factory=list)
    weight_indices: np.ndarray = field(default_factory=_empty_indices)
    basis_indices: np.ndarray = field(default_factory=_empty_indices)

    @property
    def number_of_weight_functions(self):
        return len(self.weight_indices)

    @property
    def number_of_basis_functions(self):
        return len(self.basis_indices)


@dataclass
class Surface:
    """Boundary face of the domain adjoining exactly one cell.

    ``limits`` are the adjoining cell's limits; the face is that box with
    coordinate ``surface_dimension`` fixed at ``position``.
    """

    index: int
    surface_dimension: int
    normal: float
    position: float
    cell: int
    limits: np.ndarray
    weight_indices: np.ndarray = field(default_factory=_empty_indices)
    basis_indices: np.ndarray = field(default_factory=_empty_indices)


def box_distance(position, limits) -> float:
    """Euclidean distance from a point to an axis-aligned box (0 inside)."""
    limits = np.asarray(limits)
    below = limits[:, 0] - position
    above = position - limits[:, 1]
    gap = np.maximum(np.maximum(below, above), 0.0)
    return float(np.sqrt(np.sum(gap * gap)))


class BackgroundMesh:
    """Cartesian grid of nodes, cells and boundary faces over a box.

    Parameters
    ----------
    dimension : 1, 2 or 3
    limits : [[min, max]] per dimension
    dimensional_cells : number of cells per dimension (>= 1)
    """

    def __init__(self, dimension: int, limits: Sequence[Sequence[float]],
                 dimensional_cells: Sequence[int]):
        if dimension not in DIMENSIONS:
            raise ValueError(f"dimension ({dimension}) not found")
        if len(limits) != dimension:
            raise ValueError(f"limits size ({len(limits)}) does not match dimension ({dimension})")
        if len(dimensional_cells) != dimension:
            raise ValueError(
                f"dimensional_cells size ({len(dimensional_cells)}) "
                f"does not match dimension ({dimension})"
            )
        if any(int(n) < 1 for n in dimensional_cells):
            raise ValueError(f"need at least one cell per dimension: {list(dimensional_cells)}")

        self.dimension = dimension
        self.limits = np.asarray(limits, dtype=np.float64).reshape(dimension, 2)
        if np.any(self.limits[:, 1] <= self.limits[:, 0]):
            raise ValueError(f"mesh limits must be increasing: {self.limits.tolist()}")
        self.dimensional_cells = np.array([int(n) for n in dimensional_cells], dtype=np.int64)
        self.dimensional_nodes = self.dimensional_cells + 1
        self.intervals = (self.limits[:, 1] - self.limits[:, 0]) / self.dimensional_cells

        self._build_nodes()
        self._build_cells()
        self._build_surfaces()
        self.kd_tree = cKDTree(self.node_positions)

        logger.debug("background mesh: %d nodes, %d cells, %d surfaces",
                     self.number_of_nodes, self.number_of_cells, self.number_of_surfaces)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _node_flat_index(self, index) -> int:
        return int(np.ravel_multi_index(tuple(index), tuple(self.dimensional_nodes)))

    def _cell_flat_index(self, index) -> int:
        return int(np.ravel_multi_index(tuple(index), tuple(self.dimensional_cells)))

    def _build_nodes(self):
        self.nodes = []
        positions = []
        for index in np.ndindex(*self.dimensional_nodes):
            position = self.limits[:, 0] + np.array(index) * self.intervals
            self.nodes.append(Node(index=len(self.nodes), position=position))
            positions.append(position)
        self.node_positions = np.array(positions)

    def _build_cells(self):
        self.cells = []
        offsets = list(itertools.product((0, 1), repeat=self.dimension))
        for index in np.ndindex(*self.dimensional_cells):
            index = np.array(index)
            lower = self.limits[:, 0] + index * self.intervals
            upper = self.limits[:, 0] + (index + 1) * self.intervals
            cell = Cell(index=len(self.cells), limits=np.stack([lower, upper], axis=1))
            for offset in offsets:
                node = self._node_flat_index(index + np.array(offset))
                cell.neighboring_nodes.append(node)
                self.nodes[node].neighboring_cells.append(cell.index)
            self.cells.append(cell)

    def _build_surfaces(self):
        self.surfaces = []
        for d in range(self.dimension):
            for normal in (-1.0, 1.0):
                boundary_index = 0 if normal < 0 else self.dimensional_cells[d] - 1
                boundary_node = 0 if normal < 0 else self.dimensional_cells[d]
                position = self.limits[d, 0] if normal < 0 else self.limits[d, 1]
                for cell_index in np.ndindex(*self.dimensional_cells):
                    if cell_index[d] != boundary_index:
                        continue
                    cell = self.cells[self._cell_flat_index(cell_index)]
                    surface = Surface(index=len(self.surfaces),
                                      surface_dimension=d,
                                      normal=normal,
                                      position=float(position),
                                      cell=cell.index,
                                      limits=cell.limits.copy())
                    cell.neighboring_surfaces.append(surface.index)
                    for node in cell.neighboring_nodes:
                        node_index = np.unravel_index(node, tuple(self.dimensional_nodes))
                        if node_index[d] == boundary_node:
                            self.nodes[node].neighboring_surfaces.append(surface.index)
                    self.surfaces.append(surface)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def number_of_nodes(self) -> int:
        return len(self.nodes)

    @property
    def number_of_cells(self) -> int:
        return len(self.cells)

    @property
    def number_of_surfaces(self) -> int:
        return len(self.surfaces)

    @property
    def max_interval(self) -> float:
        return float(np.max(self.intervals))

    def radius_search(self, radius: float, center) -> List[int]:
        """Indices of all nodes within ``radius`` of ``center`` (inclusive)."""
        center = np.asarray(center, dtype=np.float64).reshape(self.dimension)
        return sorted(self.kd_tree.query_ball_point(center, radius))

    def inclusive_radius(self, radius: float) -> float:
        h = self.max_interval
        if self.dimension == 1:
            return radius
        elif self.dimension == 2:
            return float(np.sqrt(radius * radius + 0.25 * h * h))
        return float(np.sqrt(radius * radius + 0.5 * h * h))

    def cell_containing(self, position) -> int:
        """Flat index of the cell holding ``position`` (clamped to the mesh)."""
        position = np.asarray(position, dtype=np.float64).reshape(self.dimension)
        index = np.floor((position - self.limits[:, 0]) / self.intervals).astype(np.int64)
        index = np.clip(index, 0, self.dimensional_cells - 1)
        return self._cell_flat_index(index)

    def surface_face_limits(self, surface: Surface) -> np.ndarray:
        limits = surface.limits.copy()
        limits[surface.surface_dimension] = surface.position
        return limits

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def _overlapping(self, position, radius):
        """Cells and surfaces whose box lies strictly within ``radius``."""
        position = np.asarray(position, dtype=np.float64).reshape(self.dimension)
        candidate_cells = {self.cell_containing(position)}
        candidate_surfaces = set(self.cells[next(iter(candidate_cells))].neighboring_surfaces)
        for node in self.radius_search(self.inclusive_radius(radius), position):
            candidate_cells.update(self.nodes[node].neighboring_cells)
            candidate_surfaces.update(self.nodes[node].neighboring_surfaces)

        cells = [c for c in candidate_cells
                 if box_distance(position, self.cells[c].limits) < radius]
        surfaces = [s for s in candidate_surfaces
                    if box_distance(position, self.surface_face_limits(self.surfaces[s])) < radius]
        return cells, surfaces

    def _resolve(self, functions):
        cell_lists = [[] for _ in range(self.number_of_cells)]
        surface_lists = [[] for _ in range(self.number_of_surfaces)]
        for i, function in enumerate(functions):
            cells, surfaces = self._overlapping(function.position, function.radius)
            for c in cells:
                cell_lists[c].append(i)
            for s in surfaces:
                surface_lists[s].append(i)

        def finish(values):
            return np.unique(np.array(values, dtype=np.int64))

        return [finish(v) for v in cell_lists], [finish(v) for v in surface_lists]

    def initialize_connectivity(self, weight_functions, basis_functions=None,
                                identical: bool = False):
        """Fill the weight/basis index lists of every cell and surface.

        Functions only need ``position`` and ``radius``.  With ``identical``
        set (Galerkin) the basis pass is skipped and the basis lists are the
        weight lists.
        """
        cell_weights, surface_weights = self._resolve(weight_functions)
        if identical:
            cell_bases, surface_bases = cell_weights, surface_weights
        else:
            if basis_functions is None:
                raise ValueError("basis functions required when not identical")
            cell_bases, surface_bases = self._resolve(basis_functions)

        for cell, weights, bases in zip(self.cells, cell_weights, cell_bases):
            cell.weight_indices = weights
            cell.basis_indices = bases
        for surface, weights, bases in zip(self.surfaces, surface_weights, surface_bases):
            surface.weight_indices = weights
            surface.basis_indices = bases
