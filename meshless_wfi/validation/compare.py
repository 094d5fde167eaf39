"""
Compare background-mesh integration against direct per-weight quadrature.

Both paths integrate the same 1D slab: Gaussian weight and basis functions
on a uniform lattice, homogeneous material so FLAT-weighted cross sections
do not depend on where material interfaces fall.  Mesh cells and direct
supports are integrated with Gauss-Legendre rules of the same order.

Key agreement:
  integrals (is_w, iv_w, iv_dw, iv_b_w, ...) to 1e-6 relative
  FLAT sigma_t, sigma_s to 1e-6 relative
"""
import json
import os

import numpy as np

from ..options import IdenticalBasisFunctions, WeakSpatialDiscretizationOptions, Weighting
from ..problems import build_problem
from ..spatial_discretization import WeakSpatialDiscretization


INTEGRAL_KEYS = ('is_w', 'is_b_w', 'iv_w', 'iv_dw', 'iv_b_w', 'iv_b_dw', 'iv_db_w', 'iv_db_dw')
MATERIAL_KEYS = ('sigma_t', 'sigma_s')


def relative_difference(a, b, floor=1e-12):
    """Largest |a - b| relative to the largest |b| of the array."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.size == 0:
        return 0.0
    scale = max(np.max(np.abs(b)), floor)
    return float(np.max(np.abs(a - b)) / scale)


def build_pair(n_points=11, cells=40, ordinates=32, include_supg=False,
               backend=None):
    """Build the mesh-integrated and directly integrated discretizations."""
    problem = build_problem(dimension=1, points_per_dimension=n_points,
                            fuel_fraction=1.0)
    shape = 2.0 / problem.spacing

    def discretization(external):
        options = WeakSpatialDiscretizationOptions(
            weighting=Weighting.FLAT,
            include_supg=include_supg,
            identical_basis_functions=IdenticalBasisFunctions.AUTO,
            external_integral_calculation=external,
            integration_ordinates=ordinates,
            dimensional_cells=[cells] if external else None,
        )
        return WeakSpatialDiscretization(
            problem.points, problem.geometry, problem.angular, problem.energy,
            options, basis_shape=shape, rbf='gaussian',
            backend=backend if external else None)

    return discretization(True), discretization(False)


def _stacked(weights, get):
    return np.concatenate([np.ravel(get(w)) for w in weights])


def compare_discretizations(mesh, direct):
    """Maximum relative difference per integral and material key.

    Each quantity is scaled by its largest magnitude over all points, so
    integrals that vanish for interior points (iv_dw) are not compared
    against round-off.
    """
    differences = {}
    for key in INTEGRAL_KEYS:
        def get(w, key=key):
            return getattr(w.integrals, key)
        differences[key] = relative_difference(_stacked(mesh.weights, get),
                                               _stacked(direct.weights, get))
    for key in MATERIAL_KEYS:
        def get(w, key=key):
            return getattr(w.material, key).data
        differences[key] = relative_difference(_stacked(mesh.weights, get),
                                               _stacked(direct.weights, get))
    return differences


def run_validation(backend_name='auto', n_workers=None, use_numba=True,
                   n_points=11, cells=40, ordinates=32, tolerance=1e-6,
                   output=None):
    """Run mesh vs direct integration comparison.

    Parameters
    ----------
    backend_name : str
        Backend to use for the mesh path: 'auto' or 'cpu'.
    n_workers : int or None
        Worker processes for the mesh path.
    n_points : int
        Lattice points on the slab.
    cells : int
        Background mesh cells.
    ordinates : int
        Gauss-Legendre points per cell (mesh) and per support (direct).
    tolerance : float
        Largest accepted relative difference.
    output : str or None
        Report path (default results/meshless_wfi_validation.json).

    Returns
    -------
    int
        Exit status: 0 for pass, 1 for fail.
    """
    from ..backends import get_backend

    print("=" * 70)
    print("  Mesh vs Direct Weight Function Integration")
    print("=" * 70)

    backend = get_backend(backend_name, n_workers=n_workers, use_numba=use_numba)
    print(f"\n  Backend: {backend.get_name()}")
    print(f"  Points: {n_points}, Cells: {cells}, Ordinates: {ordinates}")

    mesh, direct = build_pair(n_points, cells, ordinates, backend=backend)
    differences = compare_discretizations(mesh, direct)

    print()
    print(f"  {'Quantity':<12} {'Max rel. diff':>14}")
    print(f"  {'-'*12} {'-'*14}")
    for key, value in differences.items():
        print(f"  {key:<12} {value:>14.3e}")

    worst = max(differences.values())
    print()
    if worst < tolerance:
        print(f"  RESULT: PASS - all quantities agree within {tolerance:.0e}")
        status = 0
    else:
        print(f"  RESULT: FAIL - largest difference {worst:.3e} exceeds {tolerance:.0e}")
        status = 1
    print("=" * 70)

    report = {
        'backend': backend.get_name(),
        'n_points': n_points,
        'cells': cells,
        'ordinates': ordinates,
        'tolerance': tolerance,
        'differences': differences,
        'passed': status == 0,
    }
    report_path = output or os.path.join(os.getcwd(), 'results', 'meshless_wfi_validation.json')
    os.makedirs(os.path.dirname(os.path.abspath(report_path)), exist_ok=True)
    with open(report_path, 'w') as f:
        json.dump(report, f, indent=2)
    print(f"\n  Validation report saved to {report_path}")

    return status
