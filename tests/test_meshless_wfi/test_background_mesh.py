"""
Tests for meshless_wfi.background_mesh module.
"""
from types import SimpleNamespace

import numpy as np
import pytest

from meshless_wfi.background_mesh import BackgroundMesh, box_distance


def support(position, radius):
    return SimpleNamespace(position=np.asarray(position, dtype=float), radius=radius)


class TestConstruction:
    def test_counts_1d(self):
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        assert mesh.number_of_nodes == 5
        assert mesh.number_of_cells == 4
        assert mesh.number_of_surfaces == 2

    def test_counts_2d(self):
        mesh = BackgroundMesh(2, [[0.0, 3.0], [0.0, 2.0]], [3, 2])
        assert mesh.number_of_nodes == 12
        assert mesh.number_of_cells == 6
        assert mesh.number_of_surfaces == 2 * 2 + 2 * 3

    def test_counts_3d(self):
        mesh = BackgroundMesh(3, [[0.0, 1.0]] * 3, [2, 3, 4])
        assert mesh.number_of_cells == 24
        assert mesh.number_of_surfaces == 2 * (12 + 8 + 6)

    def test_cell_limits_row_major(self):
        mesh = BackgroundMesh(2, [[0.0, 3.0], [0.0, 2.0]], [3, 2])
        # flat index 3 -> (1, 1)
        np.testing.assert_allclose(mesh.cells[3].limits, [[1.0, 2.0], [1.0, 2.0]])

    def test_cell_nodes(self):
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        assert sorted(mesh.cells[1].neighboring_nodes) == [1, 2]

    def test_surface_ordering(self):
        mesh = BackgroundMesh(2, [[0.0, 2.0], [0.0, 2.0]], [2, 2])
        keys = [(s.surface_dimension, s.normal) for s in mesh.surfaces]
        assert keys == [(0, -1.0)] * 2 + [(0, 1.0)] * 2 + [(1, -1.0)] * 2 + [(1, 1.0)] * 2
        assert mesh.surfaces[2].position == 2.0
        assert mesh.surfaces[2].cell == 2

    @pytest.mark.parametrize("limits,cells", [
        ([[0.0, 1.0]], [0]),
        ([[1.0, 0.0]], [2]),
        ([[0.0, 1.0]], [2, 2]),
        ([[0.0, 1.0], [0.0, 1.0]], [2]),
    ])
    def test_invalid_input(self, limits, cells):
        with pytest.raises(ValueError):
            BackgroundMesh(len(cells), limits, cells)


class TestQueries:
    def test_radius_search_inclusive(self):
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        assert mesh.radius_search(1.0, [0.0]) == [1, 2, 3]

    def test_inclusive_radius(self):
        mesh = BackgroundMesh(2, [[0.0, 2.0], [0.0, 4.0]], [2, 2])
        assert mesh.inclusive_radius(1.0) == pytest.approx(np.sqrt(1.0 + 0.25 * 4.0))
        mesh_1d = BackgroundMesh(1, [[0.0, 1.0]], [4])
        assert mesh_1d.inclusive_radius(0.3) == 0.3

    def test_cell_containing_clamps(self):
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        assert mesh.cell_containing([-0.5]) == 1
        assert mesh.cell_containing([2.0]) == 3
        assert mesh.cell_containing([-5.0]) == 0

    def test_box_distance(self):
        limits = np.array([[0.0, 1.0], [0.0, 1.0]])
        assert box_distance(np.array([0.5, 0.5]), limits) == 0.0
        assert box_distance(np.array([4.0, 5.0]), limits) == pytest.approx(5.0)


class TestConnectivity:
    def test_unit_support_at_centre_of_slab(self):
        """Support [-1, 1] overlaps cells [-1, 0] and [0, 1] only."""
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        mesh.initialize_connectivity([support([0.0], 1.0)], identical=True)
        listed = [c.index for c in mesh.cells if c.number_of_weight_functions]
        assert listed == [1, 2]
        assert all(s.weight_indices.size == 0 for s in mesh.surfaces)

    def test_boundary_support_reaches_surface(self):
        mesh = BackgroundMesh(1, [[-2.0, 2.0]], [4])
        mesh.initialize_connectivity([support([-1.8], 0.5)], identical=True)
        np.testing.assert_array_equal(mesh.surfaces[0].weight_indices, [0])
        assert mesh.surfaces[1].weight_indices.size == 0

    def test_identical_aliases_basis_lists(self):
        mesh = BackgroundMesh(1, [[0.0, 1.0]], [2])
        mesh.initialize_connectivity([support([0.2], 0.4)], identical=True)
        for cell in mesh.cells:
            np.testing.assert_array_equal(cell.basis_indices, cell.weight_indices)

    def test_separate_basis_lists(self):
        mesh = BackgroundMesh(1, [[0.0, 1.0]], [2])
        mesh.initialize_connectivity([support([0.2], 0.2)], [support([0.8], 0.2)])
        np.testing.assert_array_equal(mesh.cells[0].weight_indices, [0])
        assert mesh.cells[0].basis_indices.size == 0
        np.testing.assert_array_equal(mesh.cells[1].basis_indices, [0])

    def test_missing_basis_raises(self):
        mesh = BackgroundMesh(1, [[0.0, 1.0]], [2])
        with pytest.raises(ValueError):
            mesh.initialize_connectivity([support([0.2], 0.2)])

    def test_lists_sorted_and_unique(self, rng):
        mesh = BackgroundMesh(2, [[0.0, 1.0], [0.0, 1.0]], [4, 4])
        functions = [support(p, 0.3) for p in rng.uniform(0, 1, size=(20, 2))]
        mesh.initialize_connectivity(functions, identical=True)
        for cell in mesh.cells:
            assert np.all(np.diff(cell.weight_indices) > 0)

    def test_every_overlap_found_2d(self, rng):
        """Brute force: a cell is listed iff its box lies within the radius."""
        mesh = BackgroundMesh(2, [[0.0, 1.0], [0.0, 1.0]], [5, 5])
        functions = [support(p, 0.27) for p in rng.uniform(0, 1, size=(15, 2))]
        mesh.initialize_connectivity(functions, identical=True)
        for cell in mesh.cells:
            expected = [i for i, f in enumerate(functions)
                        if box_distance(f.position, cell.limits) < f.radius]
            np.testing.assert_array_equal(cell.weight_indices, expected)
