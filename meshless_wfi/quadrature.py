"""
Gauss-Legendre quadrature rules for background cells, boundary faces and
single meshless supports.

n points integrate polynomials up to degree 2n-1 exactly.  Standard
points on [-1, 1] are mapped to [a, b] by x = (b-a)/2 * xi + (a+b)/2 with
weights scaled by (b-a)/2; tensor products multiply the 1D weights.

Ordinate ordering is deterministic: last dimension fastest.

Rules return (ordinates [n, D], weights [n]).  A degenerate region
(zero or negative width) yields an empty rule, never an error.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Sequence, Tuple

import numpy as np

from .constants import MAX_CACHED_RULES


Rule = Tuple[np.ndarray, np.ndarray]


def empty_rule(dimension: int) -> Rule:
    return np.zeros((0, dimension)), np.zeros(0)


@lru_cache(maxsize=MAX_CACHED_RULES)
def _gauss_legendre_reference(n: int) -> Tuple[np.ndarray, np.ndarray]:
    if n < 1:
        raise ValueError("Need at least 1 quadrature point")
    points, weights = np.polynomial.legendre.leggauss(n)
    points.flags.writeable = False
    weights.flags.writeable = False
    return points, weights


def gauss_legendre_1d(n: int, a: float, b: float) -> Tuple[np.ndarray, np.ndarray]:
    """n-point Gauss-Legendre points and weights on [a, b]."""
    if not b > a:
        return np.zeros(0), np.zeros(0)
    xi, w = _gauss_legendre_reference(n)
    half = 0.5 * (b - a)
    return half * xi + 0.5 * (a + b), half * w


def cartesian(n: int, limits: Sequence[Sequence[float]]) -> Rule:
    """Tensor-product rule on the box limits[d] = [min, max]."""
    dimension = len(limits)
    points_1d = []
    weights_1d = []
    for lo, hi in limits:
        x, w = gauss_legendre_1d(n, lo, hi)
        if x.size == 0:
            return empty_rule(dimension)
        points_1d.append(x)
        weights_1d.append(w)

    grids = np.meshgrid(*points_1d, indexing='ij')
    ordinates = np.stack([g.ravel() for g in grids], axis=-1)
    weight_grids = np.meshgrid(*weights_1d, indexing='ij')
    weights = np.prod(np.stack([g.ravel() for g in weight_grids], axis=-1), axis=-1)
    return ordinates, weights


# ===================================================================
# Background mesh rules
# ===================================================================

def volume_quadrature(cell, n: int) -> Rule:
    """Tensor Gauss-Legendre rule over a background cell's box."""
    return cartesian(n, cell.limits)


def surface_quadrature(surface, n: int) -> Rule:
    """Rule over a boundary face of the domain.

    The face is the (D-1)-dimensional box of the adjoining cell with the
    surface coordinate fixed at the plane position.  In 1D the face is a
    single point with unit weight.
    """
    dimension = len(surface.limits)
    if dimension == 1:
        return np.array([[surface.position]]), np.ones(1)

    face_limits = [surface.limits[d] for d in range(dimension)
                   if d != surface.surface_dimension]
    face_ordinates, weights = cartesian(n, face_limits)
    if weights.size == 0:
        return empty_rule(dimension)

    ordinates = np.insert(face_ordinates, surface.surface_dimension,
                          surface.position, axis=1)
    return ordinates, weights


# ===================================================================
# Single-support rules (direct integration path)
# ===================================================================

def cylindrical_2d(n_r: int, n_t: int, center, radius: float) -> Rule:
    """Polar rule on the full disk |x - center| <= radius."""
    r, w_r = gauss_legendre_1d(n_r, 0.0, radius)
    t, w_t = gauss_legendre_1d(n_t, 0.0, 2.0 * np.pi)
    if r.size == 0:
        return empty_rule(2)

    rr, tt = np.meshgrid(r, t, indexing='ij')
    wr, wt = np.meshgrid(w_r, w_t, indexing='ij')
    ordinates = np.stack([center[0] + (rr * np.cos(tt)).ravel(),
                          center[1] + (rr * np.sin(tt)).ravel()], axis=-1)
    weights = (wr * wt * rr).ravel()
    return ordinates, weights


def _chord(x, center, radius):
    """y-interval of the disk at abscissa x (NaN-free; empty if outside)."""
    dx = x - center[0]
    h2 = radius * radius - dx * dx
    h = np.sqrt(np.maximum(h2, 0.0))
    return center[1] - h, center[1] + h


def disk_intersection_2d(n_x: int, n_y: int, disks: List[Tuple[Sequence[float], float]],
                         x_limits=(-np.inf, np.inf), y_limits=(-np.inf, np.inf)) -> Rule:
    """Rule on the intersection of disks with an axis-aligned box.

    Integrates in x-slices: the outer x-range is the intersection of the
    disks' x-extents with the box, and for each outer ordinate the inner
    y-range is the intersection of the disk chords with the box.
    """
    x_lo = max([c[0] - r for c, r in disks] + [x_limits[0]])
    x_hi = min([c[0] + r for c, r in disks] + [x_limits[1]])
    x, w_x = gauss_legendre_1d(n_x, x_lo, x_hi)
    if x.size == 0:
        return empty_rule(2)

    ordinates = []
    weights = []
    for xi, wxi in zip(x, w_x):
        y_lo, y_hi = y_limits
        for c, r in disks:
            lo, hi = _chord(xi, c, r)
            y_lo = max(y_lo, lo)
            y_hi = min(y_hi, hi)
        y, w_y = gauss_legendre_1d(n_y, y_lo, y_hi)
        for yj, wyj in zip(y, w_y):
            ordinates.append((xi, yj))
            weights.append(wxi * wyj)

    if not weights:
        return empty_rule(2)
    return np.array(ordinates), np.array(weights)


def interval_1d(n: int, x_lo: float, x_hi: float) -> Rule:
    """Rule on [x_lo, x_hi] as [n, 1] ordinates."""
    x, w = gauss_legendre_1d(n, x_lo, x_hi)
    return x[:, None], w
