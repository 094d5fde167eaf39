"""
Tests for meshless_wfi.discretizations, options and conversion modules.
"""
import numpy as np
import pytest

from meshless_wfi.conversion import (
    dependencies_to_dict,
    point_type_to_string,
    tau_scaling_from_string,
    weighting_from_string,
)
from meshless_wfi.discretizations import (
    AngularDiscretization,
    DimensionalMoments,
    EnergyDiscretization,
)
from meshless_wfi.materials import Dependencies, Energy
from meshless_wfi.options import (
    IdenticalBasisFunctions,
    PointType,
    TauScaling,
    WeakSpatialDiscretizationOptions,
    Weighting,
)


class TestAngularDiscretization:
    @pytest.mark.parametrize("dimension,expected", [(1, 3), (2, 6), (3, 9)])
    def test_number_of_moments(self, dimension, expected):
        assert AngularDiscretization(dimension, 3).number_of_moments == expected

    def test_scattering_indices_2d(self):
        angular = AngularDiscretization(2, 3)
        assert angular.scattering_indices == [0, 1, 1, 2, 2, 2]

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            AngularDiscretization(4, 1)

    def test_needs_a_moment(self):
        with pytest.raises(ValueError):
            AngularDiscretization(1, 0)


class TestEnergyDiscretization:
    def test_needs_a_group(self):
        with pytest.raises(ValueError):
            EnergyDiscretization(0)


class TestDimensionalMoments:
    def test_without_supg(self):
        assert DimensionalMoments(False, 3).number_of_dimensional_moments == 1

    def test_with_supg(self):
        assert DimensionalMoments(True, 2).number_of_dimensional_moments == 3


class TestFinalizeInput:
    def test_auto_resolves_identical(self):
        options = WeakSpatialDiscretizationOptions(limits=[[0, 1]], dimensional_cells=[2])
        options.finalize_input(identical=True)
        assert options.identical is True
        assert options.input_finalized is True

    def test_auto_unresolved_raises(self):
        options = WeakSpatialDiscretizationOptions(limits=[[0, 1]], dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.finalize_input()

    def test_explicit_identical_ignores_argument(self):
        options = WeakSpatialDiscretizationOptions(
            identical_basis_functions=IdenticalBasisFunctions.FALSE,
            limits=[[0, 1]], dimensional_cells=[2])
        options.finalize_input(identical=True)
        assert options.identical is False

    def test_point_weighting_invalid_with_mesh(self):
        options = WeakSpatialDiscretizationOptions(
            weighting=Weighting.POINT, limits=[[0, 1]], dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.finalize_input(identical=True)

    def test_point_weighting_valid_without_mesh(self):
        options = WeakSpatialDiscretizationOptions(
            weighting=Weighting.POINT, external_integral_calculation=False)
        options.finalize_input(identical=True)
        assert options.input_finalized

    def test_mesh_needs_limits(self):
        options = WeakSpatialDiscretizationOptions()
        with pytest.raises(ValueError):
            options.finalize_input(identical=True)

    @pytest.mark.parametrize("weighting", [Weighting.FULL, Weighting.BASIS])
    def test_direct_rejects_mesh_only_weighting(self, weighting):
        options = WeakSpatialDiscretizationOptions(
            weighting=weighting, external_integral_calculation=False)
        with pytest.raises(NotImplementedError):
            options.finalize_input(identical=True)

    def test_flux_needs_coefficients(self):
        options = WeakSpatialDiscretizationOptions(
            weighting=Weighting.FLUX, limits=[[0, 1]], dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.finalize_input(identical=True)

    def test_bad_ordinates(self):
        options = WeakSpatialDiscretizationOptions(
            integration_ordinates=0, limits=[[0, 1]], dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.finalize_input(identical=True)


class TestCheckDimension:
    def test_limits_mismatch(self):
        options = WeakSpatialDiscretizationOptions(limits=[[0, 1]], dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.check_dimension(2)

    def test_cells_mismatch(self):
        options = WeakSpatialDiscretizationOptions(limits=[[0, 1], [0, 1]],
                                                   dimensional_cells=[2])
        with pytest.raises(ValueError):
            options.check_dimension(2)


class TestConversion:
    def test_point_type(self):
        assert point_type_to_string(PointType.BOUNDARY) == "boundary"

    def test_weighting_from_string(self):
        assert weighting_from_string("FLUX") is Weighting.FLUX

    def test_tau_scaling_from_string(self):
        assert tau_scaling_from_string("functional") is TauScaling.FUNCTIONAL

    def test_unknown_string_raises(self):
        with pytest.raises(ValueError):
            weighting_from_string("lumped")

    def test_dependencies_to_dict(self):
        out = dependencies_to_dict(Dependencies(energy=Energy.GROUP_TO_GROUP))
        assert out == {'angular': 'none', 'energy': 'group_to_group',
                       'spatial': 'point', 'dimensional': 'none'}
