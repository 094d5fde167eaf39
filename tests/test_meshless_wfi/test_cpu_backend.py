"""
Tests for meshless_wfi.backends (CPUBackend and the registry).
"""
import numpy as np
import pytest

from meshless_wfi.backends import get_backend, list_backends
from meshless_wfi.backends.cpu import CPUBackend
from meshless_wfi.options import WeakSpatialDiscretizationOptions
from meshless_wfi.spatial_discretization import WeakSpatialDiscretization
from meshless_wfi.validation.compare import INTEGRAL_KEYS


def run(problem, backend, **kwargs):
    options = WeakSpatialDiscretizationOptions(integration_ordinates=4, **kwargs)
    return WeakSpatialDiscretization(problem.points, problem.geometry, problem.angular,
                                     problem.energy, options, basis_shape=0.7,
                                     backend=backend)


def assert_same(a, b, rtol=1e-12):
    for i in range(a.number_of_points):
        ia, ib = a.weight(i).integrals, b.weight(i).integrals
        for key in INTEGRAL_KEYS:
            np.testing.assert_allclose(getattr(ia, key), getattr(ib, key),
                                       rtol=rtol, atol=1e-14, err_msg=f"{key} of weight {i}")
        np.testing.assert_allclose(a.weight(i).material.sigma_t.data,
                                   b.weight(i).material.sigma_t.data, rtol=rtol)


class TestCPUBackendAvailability:
    def test_is_available_returns_true(self, cpu_backend):
        assert cpu_backend.is_available() is True

    def test_get_name_contains_cpu(self, cpu_backend):
        name = cpu_backend.get_name()
        assert "CPU" in name, f"get_name() '{name}' does not contain 'CPU'"

    def test_get_name_mode(self):
        assert "numpy" in CPUBackend(n_workers=1, use_numba=False).get_name()
        assert "Numba" in CPUBackend(n_workers=2).get_name()

    def test_default_workers(self):
        assert CPUBackend().n_workers >= 1
        assert CPUBackend(n_workers=0).n_workers == 1


class TestSplit:
    def test_contiguous_cover(self):
        chunks = CPUBackend(n_workers=3)._split(10)
        assert len(chunks) == 3
        assert sum(chunks, []) == list(range(10))

    def test_fewer_items_than_workers(self):
        chunks = CPUBackend(n_workers=8)._split(3)
        assert chunks == [[0], [1], [2]]

    def test_no_items(self):
        assert CPUBackend(n_workers=4)._split(0) == [[]]


class TestMultiWorkerConsistency:
    def test_single_vs_two_workers(self, square_problem):
        """Worker count only changes the summation order."""
        one = run(square_problem, CPUBackend(n_workers=1, use_numba=False))
        two = run(square_problem, CPUBackend(n_workers=2, use_numba=False))
        assert_same(one, two, rtol=1e-10)

    def test_numba_vs_numpy(self, square_problem):
        numpy_run = run(square_problem, CPUBackend(n_workers=1, use_numba=False))
        numba_run = run(square_problem, CPUBackend(n_workers=1, use_numba=True))
        assert_same(numpy_run, numba_run, rtol=1e-10)

    def test_supg_two_workers(self, slab_problem):
        one = run(slab_problem, CPUBackend(n_workers=1, use_numba=False), include_supg=True)
        two = run(slab_problem, CPUBackend(n_workers=2, use_numba=False), include_supg=True)
        assert_same(one, two, rtol=1e-10)


class TestRegistry:
    def test_get_cpu(self):
        backend = get_backend('cpu', n_workers=2, use_numba=False)
        assert isinstance(backend, CPUBackend)
        assert backend.n_workers == 2
        assert backend.use_numba is False

    def test_auto_is_cpu(self):
        assert isinstance(get_backend('AUTO'), CPUBackend)

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            get_backend('cuda')

    def test_list_backends(self):
        backends = list_backends()
        assert backends[0][0] == 'CPU'
        assert backends[0][2] is True
