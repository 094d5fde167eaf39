"""
Radial basis functions and meshless function evaluators.

A meshless function is an RBF kernel phi evaluated at the scaled distance
s * |x - x0| (s = shape parameter) from its centre x0:

  value     = phi(s d)
  gradient  = phi'(s d) * s * (x - x0) / d
  laplacian = phi''(s d) * s^2 + phi'(s d) * s * (D - 1) / d

Every function has a finite support radius (radius_factor / s); values
outside the radius are truncated to zero so that the background mesh
connectivity captures the whole support.

Functions whose normalization depends on their neighbours (Shepard
partition of unity) expose ``normalize`` and are rescaled by the
integration engine with all other functions overlapping the same cell.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np

from .constants import (
    GAUSSIAN_RADIUS_FACTOR,
    MULTIQUADRIC_RADIUS_FACTOR,
    WENDLAND_RADIUS_FACTOR,
)


# ===================================================================
# RBF kernels (functions of the scaled distance r >= 0)
# ===================================================================

class RBF(ABC):
    """Radial kernel phi(r) with first and second derivatives."""

    radius_factor = 1.0

    @abstractmethod
    def value(self, r):
        pass

    @abstractmethod
    def d_value(self, r):
        pass

    @abstractmethod
    def dd_value(self, r):
        pass


class GaussianRBF(RBF):
    radius_factor = GAUSSIAN_RADIUS_FACTOR

    def value(self, r):
        return np.exp(-r * r)

    def d_value(self, r):
        return -2 * r * np.exp(-r * r)

    def dd_value(self, r):
        return (-2 + 4 * r * r) * np.exp(-r * r)


class MultiquadricRBF(RBF):
    radius_factor = MULTIQUADRIC_RADIUS_FACTOR

    def value(self, r):
        return np.sqrt(1 + r * r)

    def d_value(self, r):
        return r / np.sqrt(1 + r * r)

    def dd_value(self, r):
        return 1 / (1 + r * r) ** 1.5


class InverseMultiquadricRBF(RBF):
    radius_factor = MULTIQUADRIC_RADIUS_FACTOR

    def value(self, r):
        return 1 / np.sqrt(1 + r * r)

    def d_value(self, r):
        return -r / (1 + r * r) ** 1.5

    def dd_value(self, r):
        return (2 * r * r - 1) / (1 + r * r) ** 2.5


class WendlandC2RBF(RBF):
    """Compact Wendland phi_{3,1}(r) = (1-r)^4 (4r+1), zero for r >= 1."""

    radius_factor = WENDLAND_RADIUS_FACTOR

    def value(self, r):
        t = np.maximum(1 - r, 0)
        return t ** 4 * (4 * r + 1)

    def d_value(self, r):
        t = np.maximum(1 - r, 0)
        return -20 * r * t ** 3

    def dd_value(self, r):
        t = np.maximum(1 - r, 0)
        return 20 * t ** 2 * (4 * r - 1)


class WendlandC4RBF(RBF):
    """Compact Wendland phi_{3,2}(r) = (1-r)^6 (35r^2+18r+3), zero for r >= 1."""

    radius_factor = WENDLAND_RADIUS_FACTOR

    def value(self, r):
        t = np.maximum(1 - r, 0)
        return t ** 6 * (35 * r * r + 18 * r + 3)

    def d_value(self, r):
        t = np.maximum(1 - r, 0)
        return -56 * r * (5 * r + 1) * t ** 5

    def dd_value(self, r):
        t = np.maximum(1 - r, 0)
        return 56 * t ** 4 * (35 * r * r - 4 * r - 1)


RBF_KERNELS = {
    'gaussian': GaussianRBF,
    'multiquadric': MultiquadricRBF,
    'inverse_multiquadric': InverseMultiquadricRBF,
    'wendland_c2': WendlandC2RBF,
    'wendland_c4': WendlandC4RBF,
}


def get_rbf(name: str) -> RBF:
    """Get an RBF kernel by name."""
    try:
        return RBF_KERNELS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown RBF: {name}. Choose from: {', '.join(RBF_KERNELS)}"
        ) from None


# ===================================================================
# Distance
# ===================================================================

class CartesianDistance:
    """Euclidean distance and its derivatives with respect to x."""

    def __init__(self, dimension: int):
        self.dimension = dimension

    def distance(self, r, r0):
        diff = np.asarray(r, dtype=np.float64) - r0
        return np.sqrt(np.sum(diff * diff, axis=-1))

    def d_distance(self, dim, r, r0):
        diff = np.asarray(r, dtype=np.float64) - r0
        dist = np.sqrt(np.sum(diff * diff, axis=-1))
        return diff[..., dim] / dist

    def dd_distance(self, dim, r, r0):
        diff = np.asarray(r, dtype=np.float64) - r0
        dist = np.sqrt(np.sum(diff * diff, axis=-1))
        return 1 / dist - diff[..., dim] ** 2 / dist ** 3


# ===================================================================
# Meshless functions
# ===================================================================

class MeshlessFunction(ABC):
    """Evaluator interface consumed by weight functions and integration."""

    @property
    @abstractmethod
    def position(self) -> np.ndarray:
        pass

    @property
    @abstractmethod
    def radius(self) -> float:
        pass

    @property
    @abstractmethod
    def shape(self) -> float:
        pass

    @abstractmethod
    def value(self, position) -> float:
        pass

    @abstractmethod
    def gradient_value(self, position) -> np.ndarray:
        pass

    @abstractmethod
    def evaluate(self, positions) -> Tuple[np.ndarray, np.ndarray]:
        """Values [n] and gradients [n, D] at positions [n, D]."""
        pass

    def depends_on_neighbors(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            'type': type(self).__name__,
            'position': np.asarray(self.position).tolist(),
            'radius': float(self.radius),
            'shape': float(self.shape),
        }


class RBFFunction(MeshlessFunction):
    """RBF kernel centred at ``position`` with shape parameter ``shape``."""

    def __init__(self, shape: float, position, rbf: RBF,
                 distance: CartesianDistance = None, radius: float = None):
        if shape <= 0:
            raise ValueError(f"shape must be positive, got {shape}")
        self._shape = float(shape)
        self._position = np.asarray(position, dtype=np.float64).ravel()
        self.rbf = rbf
        self.distance = distance or CartesianDistance(self._position.size)
        self._radius = (float(radius) if radius is not None
                        else rbf.radius_factor / self._shape)

    @property
    def position(self) -> np.ndarray:
        return self._position

    @property
    def radius(self) -> float:
        return self._radius

    @property
    def shape(self) -> float:
        return self._shape

    @property
    def dimension(self) -> int:
        return self._position.size

    def value(self, position) -> float:
        dist = self.distance.distance(position, self._position)
        if dist >= self._radius:
            return 0.0
        return float(self.rbf.value(self._shape * dist))

    def d_value(self, dim: int, position) -> float:
        dist = self.distance.distance(position, self._position)
        if dist >= self._radius or dist == 0.0:
            return 0.0
        return float(self.rbf.d_value(self._shape * dist) * self._shape
                     * self.distance.d_distance(dim, position, self._position))

    def gradient_value(self, position) -> np.ndarray:
        return np.array([self.d_value(d, position) for d in range(self.dimension)])

    def dd_value(self, dim: int, position) -> float:
        dist = self.distance.distance(position, self._position)
        if dist >= self._radius:
            return 0.0
        r = self._shape * dist
        if dist == 0.0:
            return float(self.rbf.dd_value(r) * self._shape ** 2)
        dd = self.distance.d_distance(dim, position, self._position)
        return float(self.rbf.dd_value(r) * self._shape ** 2 * dd * dd
                     + self.rbf.d_value(r) * self._shape
                     * self.distance.dd_distance(dim, position, self._position))

    def laplacian_value(self, position) -> float:
        return sum(self.dd_value(d, position) for d in range(self.dimension))

    def evaluate(self, positions):
        positions = np.atleast_2d(np.asarray(positions, dtype=np.float64))
        diff = positions - self._position
        dist = np.sqrt(np.sum(diff * diff, axis=1))
        inside = dist < self._radius
        r = self._shape * dist

        values = np.where(inside, self.rbf.value(r), 0.0)

        # phi'(0) = 0 for all kernels, so the gradient vanishes at the centre
        scale = np.zeros_like(dist)
        mask = inside & (dist > 0)
        scale[mask] = self.rbf.d_value(r[mask]) * self._shape / dist[mask]
        gradients = diff * scale[:, None]
        return values, gradients


class ShepardFunction(MeshlessFunction):
    """Shepard (partition of unity) normalization of an RBF function.

    Standalone evaluation returns the raw kernel; the normalized value
    needs the neighbours overlapping the evaluation point:

      w_i = phi_i / sum_j phi_j
      grad w_i = (grad phi_i - w_i * sum_j grad phi_j) / sum_j phi_j
    """

    def __init__(self, function: RBFFunction):
        self.function = function

    @property
    def position(self):
        return self.function.position

    @property
    def radius(self):
        return self.function.radius

    @property
    def shape(self):
        return self.function.shape

    def value(self, position):
        return self.function.value(position)

    def gradient_value(self, position):
        return self.function.gradient_value(position)

    def evaluate(self, positions):
        return self.function.evaluate(positions)

    def depends_on_neighbors(self) -> bool:
        return True

    @staticmethod
    def normalize(position, neighbor_positions, values, gradients):
        """Normalize raw values [..., n] and gradients [..., n, D].

        ``neighbor_positions`` [n, D] are the centres of the functions in
        ``values``; the Shepard sum only needs the values themselves.
        """
        values = np.asarray(values, dtype=np.float64)
        gradients = np.asarray(gradients, dtype=np.float64)
        if values.shape[-1] != len(neighbor_positions):
            raise ValueError("number of values does not match neighbor positions")

        total = np.sum(values, axis=-1, keepdims=True)
        total_grad = np.sum(gradients, axis=-2, keepdims=True)
        safe = np.where(total > 0, total, 1.0)

        norm_values = np.where(total > 0, values / safe, 0.0)
        norm_grads = (gradients - norm_values[..., None] * total_grad) / safe[..., None]
        norm_grads = np.where((total > 0)[..., None], norm_grads, 0.0)
        return norm_values, norm_grads

    def to_dict(self):
        out = self.function.to_dict()
        out['type'] = type(self).__name__
        return out
