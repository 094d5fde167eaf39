"""
CLI entry point for meshless weight function integration.

Usage:
    python -m meshless_wfi                           # 1D slab, flat weighting
    python -m meshless_wfi --dimension 2 --points 9 --weighting full
    python -m meshless_wfi --supg --tau-scaling linear
    python -m meshless_wfi --direct --weighting point
    python -m meshless_wfi --list-backends           # Show available backends
    python -m meshless_wfi --validate                # Compare mesh and direct integration
"""
import argparse
import json
import logging
import os
import sys
import time

import numpy as np


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Meshless RBF weight function integration on a two-region box',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m meshless_wfi --points 21 --cells 40      Slab with a finer mesh
  python -m meshless_wfi --dimension 2 --workers 4   Square on four processes
  python -m meshless_wfi --weighting flux            Flux-weighted materials
  python -m meshless_wfi --list-backends             Show available backends
  python -m meshless_wfi --validate                  Mesh vs direct integration
        """,
    )

    parser.add_argument('--dimension', '-d', type=int, choices=[1, 2, 3], default=1,
                        help='Spatial dimension (default: 1)')
    parser.add_argument('--points', '-n', type=int, default=11,
                        help='Points per dimension (default: 11)')
    parser.add_argument('--cells', '-c', type=int, default=None,
                        help='Background mesh cells per dimension (default: one per point)')
    parser.add_argument('--ordinates', type=int, default=None,
                        help='Gauss-Legendre points per cell and dimension')
    parser.add_argument('--weighting', choices=['point', 'flat', 'flux', 'full', 'basis'],
                        default='flat', help='Cross-section weighting (default: flat)')
    parser.add_argument('--supg', action='store_true', help='Include SUPG dimensional moments')
    parser.add_argument('--tau-scaling', choices=['none', 'constant', 'absolute', 'linear', 'functional'],
                        default='none', help='SUPG tau scaling near boundaries')
    parser.add_argument('--tau', type=float, default=1.0, help='SUPG tau constant')
    parser.add_argument('--rbf', default='wendland_c2', help='RBF kernel (default: wendland_c2)')
    parser.add_argument('--shape-factor', type=float, default=0.3,
                        help='Support radius is point spacing / shape_factor (default: 0.3)')
    parser.add_argument('--shepard', action='store_true', help='Shepard-normalize basis functions')
    parser.add_argument('--unnormalized', action='store_true', help='Skip material normalization')
    parser.add_argument('--direct', action='store_true',
                        help='Integrate per weight function instead of on the background mesh')
    parser.add_argument('--backend', choices=['cpu', 'auto'], default='auto',
                        help='Backend selection (default: auto)')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Worker processes (default: all cores)')
    parser.add_argument('--no-numba', action='store_true', help='Use numpy kernels only')
    parser.add_argument('--output', '-o', type=str, default=None, help='Output JSON file')
    parser.add_argument('--list-backends', action='store_true', help='List available backends')
    parser.add_argument('--validate', action='store_true',
                        help='Run mesh vs direct integration validation')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Minimal output')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    # List backends
    if args.list_backends:
        from .backends import list_backends
        print("Available backends:")
        print(f"  {'Name':<10} {'Description':<40} {'Available'}")
        print(f"  {'-'*10} {'-'*40} {'-'*9}")
        for name, desc, avail in list_backends():
            status = "YES" if avail else "NO"
            print(f"  {name:<10} {desc:<40} {status}")
        return 0

    # Validate mode
    if args.validate:
        from .validation.compare import run_validation
        return run_validation(
            backend_name=args.backend,
            n_workers=args.workers,
            use_numba=not args.no_numba,
            output=args.output,
        )

    from .backends import get_backend
    from .constants import DEFAULT_INTEGRATION_ORDINATES
    from .conversion import tau_scaling_from_string, weighting_from_string
    from .meshless_functions import get_rbf
    from .options import WeakSpatialDiscretizationOptions, WeightFunctionOptions, Weighting
    from .problems import build_problem
    from .spatial_discretization import WeakSpatialDiscretization

    problem = build_problem(dimension=args.dimension, points_per_dimension=args.points)
    n_points = len(problem.points)
    weighting = weighting_from_string(args.weighting)

    flux_coefficients = None
    if weighting == Weighting.FLUX:
        flux_coefficients = np.ones((n_points,
                                     problem.energy.number_of_groups,
                                     problem.angular.number_of_moments))

    options = WeakSpatialDiscretizationOptions(
        weighting=weighting,
        normalized=not args.unnormalized,
        include_supg=args.supg,
        tau_scaling=tau_scaling_from_string(args.tau_scaling),
        external_integral_calculation=not args.direct,
        integration_ordinates=args.ordinates or DEFAULT_INTEGRATION_ORDINATES,
        dimensional_cells=[args.cells] * args.dimension if args.cells else None,
        flux_coefficients=flux_coefficients,
    )
    shape = get_rbf(args.rbf).radius_factor * args.shape_factor / problem.spacing
    backend = get_backend(args.backend, n_workers=args.workers, use_numba=not args.no_numba)

    if not args.quiet:
        print(f"Problem: {args.dimension}D box, {n_points} points, {args.rbf} kernel")
        print(f"Weighting: {weighting.name.lower()}, SUPG: {args.supg}, "
              f"integration: {'direct' if args.direct else backend.get_name()}")

    t0 = time.perf_counter()
    discretization = WeakSpatialDiscretization(
        problem.points, problem.geometry, problem.angular, problem.energy, options,
        weight_options=WeightFunctionOptions(tau_const=args.tau, output_material=True),
        basis_shape=shape, rbf=args.rbf, shepard=args.shepard, backend=backend,
    )
    elapsed = time.perf_counter() - t0

    if not args.quiet:
        print(f"Integrated {n_points} weight functions in {elapsed:.3f} s")

    result = discretization.to_dict()
    result['elapsed_seconds'] = elapsed

    # Save output
    if args.output:
        output_path = args.output
    else:
        # Default output path
        output_path = os.path.join(os.getcwd(), 'results', 'meshless_wfi_results.json')
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
    with open(output_path, 'w') as f:
        json.dump(result, f, indent=2)
    if not args.quiet:
        print(f"\nResults saved to {output_path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
