"""
Options for the weak (meshless) spatial discretization.

All choices that shape the integration are fixed here once, before any
weight function is built:

  weighting                  POINT, FLAT, FLUX, FULL or BASIS
  normalized                 divide weighted cross sections by their norm
  include_supg               add D gradient (dimensional) moments
  identical_basis_functions  Galerkin (basis == weight) or Petrov-Galerkin
  external_integral_calculation
                             integrate on the background mesh instead of
                             per weight function
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from .constants import DEFAULT_INTEGRATION_ORDINATES, DIMENSIONS


class Weighting(Enum):
    POINT = 0
    FLAT = 1
    FLUX = 2
    FULL = 3
    BASIS = 4


class TauScaling(Enum):
    NONE = 0
    CONSTANT = 1
    ABSOLUTE = 2
    LINEAR = 3
    FUNCTIONAL = 4


class IdenticalBasisFunctions(Enum):
    AUTO = 0
    TRUE = 1
    FALSE = 2


class PointType(Enum):
    INTERNAL = 0
    BOUNDARY = 1


@dataclass
class WeightFunctionOptions:
    """Per-weight-function SUPG options (copied and edited per function)."""

    tau_const: float = 1.0
    tau: float = 1.0
    output_material: bool = False
    output_integrals: bool = True


@dataclass
class WeakSpatialDiscretizationOptions:
    """Discretization-wide integration options.

    ``limits`` and ``dimensional_cells`` describe the background mesh and
    are required when ``external_integral_calculation`` is set.
    ``flux_coefficients`` ([N, G, M], one expansion coefficient per basis
    function) are required for FLUX weighting.
    """

    weighting: Weighting = Weighting.FLAT
    normalized: bool = True
    include_supg: bool = False
    identical_basis_functions: IdenticalBasisFunctions = IdenticalBasisFunctions.AUTO
    tau_scaling: TauScaling = TauScaling.NONE
    external_integral_calculation: bool = True
    perform_integration: bool = True
    integration_ordinates: int = DEFAULT_INTEGRATION_ORDINATES
    limits: Optional[List[List[float]]] = None
    dimensional_cells: Optional[List[int]] = None
    flux_coefficients: Optional[np.ndarray] = None
    input_finalized: bool = field(default=False, repr=False)

    def finalize_input(self, identical: Optional[bool] = None):
        """Resolve AUTO settings and check option compatibility.

        Parameters
        ----------
        identical : bool or None
            Whether the basis and weight functions turned out identical;
            used only when ``identical_basis_functions`` is AUTO.
        """
        if self.identical_basis_functions == IdenticalBasisFunctions.AUTO:
            if identical is None:
                raise ValueError("identical_basis_functions is AUTO and cannot be resolved")
            self.identical_basis_functions = (IdenticalBasisFunctions.TRUE if identical
                                              else IdenticalBasisFunctions.FALSE)

        if self.integration_ordinates < 1:
            raise ValueError(
                f"integration_ordinates must be >= 1, got {self.integration_ordinates}"
            )

        if self.external_integral_calculation and self.perform_integration:
            if self.weighting == Weighting.POINT:
                raise ValueError("POINT weighting is not valid with mesh integration")
            if self.limits is None or self.dimensional_cells is None:
                raise ValueError("mesh integration requires limits and dimensional_cells")
        elif self.weighting not in (Weighting.POINT, Weighting.FLAT):
            raise NotImplementedError(
                f"{self.weighting.name} weighting requires mesh integration"
            )

        if self.weighting == Weighting.FLUX and self.flux_coefficients is None:
            raise ValueError("FLUX weighting requires flux_coefficients")

        self.input_finalized = True

    @property
    def identical(self) -> bool:
        return self.identical_basis_functions == IdenticalBasisFunctions.TRUE

    def check_dimension(self, dimension: int):
        if dimension not in DIMENSIONS:
            raise ValueError(f"dimension ({dimension}) not found")
        if self.limits is not None and len(self.limits) != dimension:
            raise ValueError("limits size does not match dimension")
        if self.dimensional_cells is not None and len(self.dimensional_cells) != dimension:
            raise ValueError("dimensional_cells size does not match dimension")
