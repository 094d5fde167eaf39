"""
Tests for meshless_wfi.backends.kernels and meshless_wfi.accumulators.
"""
import numpy as np
import pytest

from meshless_wfi.accumulators import IntegralAccumulator
from meshless_wfi.backends.kernels import (
    get_pair_kernel,
    pair_integrals_jit,
    pair_integrals_numpy,
    weight_integrals,
)


@pytest.fixture
def cell_values(rng):
    nq, nw, nb, dim = 9, 3, 4, 2
    local_basis = np.array([[0, 1, -1, 2],
                            [-1, 0, 1, -1],
                            [0, -1, -1, 1]], dtype=np.int64)
    return (rng.uniform(0.1, 1.0, nq),
            rng.uniform(size=(nq, nw)),
            rng.normal(size=(nq, nw, dim)),
            rng.uniform(size=(nq, nb)),
            rng.normal(size=(nq, nb, dim)),
            local_basis)


class TestPairKernels:
    def test_numba_matches_numpy(self, cell_values):
        for a, b in zip(pair_integrals_jit(*cell_values), pair_integrals_numpy(*cell_values)):
            np.testing.assert_allclose(a, b, rtol=1e-12, atol=1e-14)

    def test_unrelated_pairs_are_zero(self, cell_values):
        b_w, b_dw, db_w, db_dw = pair_integrals_numpy(*cell_values)
        assert b_w[0, 2] == 0.0
        np.testing.assert_allclose(db_dw[1, 0], 0.0)

    def test_b_w_definition(self, cell_values):
        qw, w_val, _, b_val, b_grad, local_basis = cell_values
        b_w, _, db_w, _ = pair_integrals_numpy(*cell_values)
        assert b_w[0, 1] == pytest.approx(np.sum(qw * b_val[:, 1] * w_val[:, 0]))
        np.testing.assert_allclose(db_w[2, 3],
                                   np.einsum('q,qd,q->d', qw, b_grad[:, 3], w_val[:, 2]))

    def test_db_dw_orientation(self, cell_values):
        """db_dw[i, j, d1, d2] pairs the basis derivative d1 with the weight derivative d2."""
        qw, _, w_grad, _, b_grad, _ = cell_values
        _, _, _, db_dw = pair_integrals_jit(*cell_values)
        expected = np.sum(qw * b_grad[:, 0, 0] * w_grad[:, 0, 1])
        assert db_dw[0, 0, 0, 1] == pytest.approx(expected)

    def test_get_pair_kernel(self):
        assert get_pair_kernel(True) is pair_integrals_jit
        assert get_pair_kernel(False) is pair_integrals_numpy

    def test_weight_integrals(self, cell_values):
        qw, w_val, w_grad = cell_values[:3]
        iv_w, iv_dw = weight_integrals(qw, w_val, w_grad)
        assert iv_w.shape == (3,)
        assert iv_dw.shape == (3, 2)
        assert iv_w[1] == pytest.approx(np.sum(qw * w_val[:, 1]))


class TestIntegralAccumulator:
    def make(self):
        shapes = {'sigma_t': (2, 1), 'norm': (1,)}
        return IntegralAccumulator(1, [2, 1], [1, 0], [shapes, shapes])

    def test_zero_initialized(self):
        acc = self.make()
        assert acc.integrals[0].is_b_w.shape == (1, 2)
        assert acc.integrals[1].is_w.shape == (0,)
        np.testing.assert_allclose(acc.materials[0]['sigma_t'], 0.0)

    def test_score_pairs_maps_local_indices(self):
        acc = self.make()
        local_basis = np.array([[1, -1], [-1, 0]])
        b_w = np.array([[3.0, 7.0], [5.0, 2.0]])
        zeros = np.zeros((2, 2, 1))
        acc.score_pairs([0, 1], local_basis, b_w, zeros, zeros, np.zeros((2, 2, 1, 1)))
        np.testing.assert_allclose(acc.integrals[0].iv_b_w, [0.0, 3.0])
        np.testing.assert_allclose(acc.integrals[1].iv_b_w, [2.0])

    def test_score_surface_skips_missing(self):
        acc = self.make()
        acc.score_surface([0, 1], np.array([0, -1]), np.array([[0], [0]]),
                          np.array([1.5, 9.0]), np.array([[0.5], [9.0]]))
        np.testing.assert_allclose(acc.integrals[0].is_w, [1.5])
        np.testing.assert_allclose(acc.integrals[0].is_b_w, [[0.5, 0.0]])

    def test_add_material_local_index(self):
        acc = self.make()
        acc.add_material(0, 'sigma_t', np.array([1.0]), local_index=1)
        np.testing.assert_allclose(acc.materials[0]['sigma_t'][:, 0], [0.0, 1.0])

    def test_merge_sums(self):
        a, b = self.make(), self.make()
        a.score_weights([0], [1.0], np.array([[2.0]]))
        b.score_weights([0, 1], [3.0, 4.0], np.array([[1.0], [1.0]]))
        b.add_material(1, 'norm', np.array([2.0]))
        a.merge(b)
        assert a.integrals[0].iv_w[0] == 4.0
        assert a.integrals[0].iv_dw[0] == 3.0
        assert a.integrals[1].iv_w[0] == 4.0
        assert a.materials[1]['norm'][0] == 2.0

    def test_merge_size_mismatch(self):
        a = self.make()
        b = IntegralAccumulator(1, [1], [0], [{}])
        with pytest.raises(ValueError):
            a.merge(b)

    def test_reset(self):
        acc = self.make()
        acc.score_weights([0], [1.0], np.array([[2.0]]))
        acc.reset()
        assert acc.integrals[0].iv_w[0] == 0.0
