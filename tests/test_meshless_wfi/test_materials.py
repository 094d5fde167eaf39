"""
Tests for meshless_wfi.materials module.
"""
import json

import numpy as np
import pytest

from meshless_wfi.materials import (
    Angular,
    CrossSection,
    Dependencies,
    Dimensional,
    Energy,
    Material,
    Spatial,
    build_material,
    fission_matrix,
)


class TestCrossSectionSize:
    def test_group_dependent(self, angular_1d, energy):
        cs = CrossSection(Dependencies(energy=Energy.GROUP), angular_1d, energy, [1.0, 2.0])
        assert cs.shape == (2,)
        assert cs.size == 2

    def test_wrong_size_raises(self, angular_1d, energy):
        with pytest.raises(ValueError):
            CrossSection(Dependencies(energy=Energy.GROUP), angular_1d, energy, [1.0, 2.0, 3.0])

    def test_scattering_moments(self, angular_2d, energy):
        dep = Dependencies(angular=Angular.SCATTERING_MOMENTS, energy=Energy.GROUP_TO_GROUP)
        cs = CrossSection(dep, angular_2d, energy, np.zeros(2 * 2 * 2))
        assert cs.shape == (2, 2, 2)

    def test_moments_in_2d(self, angular_2d, energy):
        dep = Dependencies(angular=Angular.MOMENTS, energy=Energy.GROUP)
        cs = CrossSection(dep, angular_2d, energy, np.zeros(3 * 2))
        assert cs.shape == (3, 2)

    def test_basis_weight_supg(self, angular_2d, energy):
        """Shape (B, L, Gt, Gf, Dm): dimensional moment fastest."""
        dep = Dependencies(angular=Angular.SCATTERING_MOMENTS,
                           energy=Energy.GROUP_TO_GROUP,
                           spatial=Spatial.BASIS_WEIGHT,
                           dimensional=Dimensional.SUPG)
        data = np.arange(4 * 2 * 2 * 2 * 3, dtype=float)
        cs = CrossSection(dep, angular_2d, energy, data, number_of_basis_functions=4)
        assert cs.shape == (4, 2, 2, 2, 3)
        # k = d + Dm*(gf + G*(gt + G*(l + L*j)))
        j, l, gt, gf, d = 3, 1, 0, 1, 2
        k = d + 3 * (gf + 2 * (gt + 2 * (l + 2 * j)))
        assert cs.as_array()[j, l, gt, gf, d] == data[k]

    def test_as_array_is_read_only(self, angular_1d, energy):
        cs = CrossSection(Dependencies(energy=Energy.GROUP), angular_1d, energy, [1.0, 2.0])
        with pytest.raises(ValueError):
            cs.as_array()[0] = 5.0


class TestBuildMaterial:
    def test_returns_material(self, fuel_1d):
        assert isinstance(fuel_1d, Material)

    def test_fuel_is_fissile(self, fuel_1d, reflector_1d):
        assert fuel_1d.is_fissile is True
        assert reflector_1d.is_fissile is False

    def test_isotropic_scattering_padded(self, fuel_1d):
        sigma_s = fuel_1d.sigma_s.as_array()
        assert sigma_s.shape == (2, 2, 2)
        np.testing.assert_allclose(sigma_s[0], [[0.30, 0.00], [0.15, 0.90]])
        np.testing.assert_allclose(sigma_s[1], 0.0)

    def test_default_source_is_zero(self, fuel_1d):
        np.testing.assert_allclose(fuel_1d.internal_source.data, 0.0)

    def test_reflector_source(self, reflector_1d):
        source = reflector_1d.internal_source.as_array()
        assert source.shape == (2, 2)
        assert source[0, 0] == 1.0
        assert np.sum(source) == 1.0

    def test_check_class_invariants_passes(self, fuel_1d):
        fuel_1d.check_class_invariants()

    def test_to_dict_is_json_serializable(self, fuel_1d):
        out = fuel_1d.to_dict()
        json.dumps(out)
        assert out['name'] == "fuel"
        assert out['sigma_t']['data'] == [0.5, 1.2]
        assert out['sigma_s']['dependencies']['angular'] == 'scattering_moments'


class TestFissionMatrix:
    def test_expands_chi_nu_sigma_f(self, fuel_1d):
        expected = np.outer([1.0, 0.0], np.array([2.4, 2.4]) * np.array([0.01, 0.12]))
        np.testing.assert_allclose(fission_matrix(fuel_1d), expected)

    def test_non_fissile_is_zero(self, reflector_1d):
        np.testing.assert_allclose(fission_matrix(reflector_1d), 0.0)

    def test_group_to_group_passthrough(self, angular_1d, energy):
        material = build_material(0, angular_1d, energy, [1.0, 1.0], np.zeros((2, 2)))
        matrix = np.array([[0.1, 0.2], [0.3, 0.4]])
        sigma_f = CrossSection(Dependencies(energy=Energy.GROUP_TO_GROUP),
                               angular_1d, energy, matrix)
        material = Material(material.index, angular_1d, energy, material.sigma_t,
                            material.sigma_s, material.nu, sigma_f, material.chi,
                            material.internal_source)
        np.testing.assert_allclose(fission_matrix(material), matrix)
