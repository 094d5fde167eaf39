"""
meshless_wfi - Meshless Weight Function Integration for deterministic transport

Radial-basis-function weighted-residual spatial discretization:
  - Background Cartesian mesh used only as an integration scaffold
  - KD-tree connectivity between meshless functions and mesh cells/surfaces
  - Tensor-product Gauss-Legendre quadrature per cell and boundary face
  - Point, flat, flux, full and basis weighting of material cross sections

Integration runs on the CPU backend (multiprocessing + optional Numba JIT).
"""
__version__ = "0.1.0"
