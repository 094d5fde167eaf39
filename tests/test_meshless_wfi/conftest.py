"""
Shared pytest fixtures for meshless_wfi test suite.
"""
import numpy as np
import pytest

from meshless_wfi.backends.cpu import CPUBackend
from meshless_wfi.discretizations import AngularDiscretization, EnergyDiscretization
from meshless_wfi.geometry import BoxGeometry, Region
from meshless_wfi.options import WeakSpatialDiscretizationOptions, Weighting
from meshless_wfi.problems import build_fuel, build_problem, build_reflector


@pytest.fixture
def rng():
    """Numpy Generator with fixed seed for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def angular_1d():
    return AngularDiscretization(1, 2)


@pytest.fixture
def angular_2d():
    return AngularDiscretization(2, 2)


@pytest.fixture
def energy():
    """Two energy groups."""
    return EnergyDiscretization(2)


@pytest.fixture
def fuel_1d(angular_1d, energy):
    return build_fuel(1, angular_1d, energy)


@pytest.fixture
def reflector_1d(angular_1d, energy):
    return build_reflector(0, angular_1d, energy)


@pytest.fixture
def slab(reflector_1d, fuel_1d):
    """Slab [-2, 2] with fuel in [-1, 1]."""
    return BoxGeometry(limits=[[-2.0, 2.0]], default_material=reflector_1d,
                       regions=[Region([-1.0], [1.0], fuel_1d)])


@pytest.fixture
def homogeneous_slab(reflector_1d):
    """Slab [-2, 2] filled with the reflector."""
    return BoxGeometry(limits=[[-2.0, 2.0]], default_material=reflector_1d)


@pytest.fixture
def slab_problem():
    """Two-region slab with 9 points (spacing 0.5)."""
    return build_problem(dimension=1, points_per_dimension=9)


@pytest.fixture
def square_problem():
    """Two-region square with 5 x 5 points (spacing 1.0)."""
    return build_problem(dimension=2, points_per_dimension=5)


@pytest.fixture
def flat_options():
    """Mesh integration with flat weighting (mesh defaults filled later)."""
    return WeakSpatialDiscretizationOptions(weighting=Weighting.FLAT,
                                            integration_ordinates=6)


@pytest.fixture
def cpu_backend():
    """CPUBackend with 1 worker (no Numba to keep tests fast)."""
    return CPUBackend(n_workers=1, use_numba=False)
