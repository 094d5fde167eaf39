"""
Tests for meshless_wfi.meshless_functions module.
"""
import numpy as np
import pytest

from meshless_wfi.meshless_functions import (
    RBF_KERNELS,
    CartesianDistance,
    MultiquadricRBF,
    RBFFunction,
    ShepardFunction,
    get_rbf,
)


@pytest.fixture
def multiquadric():
    """Multiquadric with shape 2 centred at (-2, 7), wide enough to cover the test point."""
    return RBFFunction(2.0, [-2.0, 7.0], MultiquadricRBF(), radius=100.0)


class TestMultiquadric:
    r = np.array([4.0, -3.0])

    def test_value(self, multiquadric):
        assert multiquadric.value(self.r) == pytest.approx(np.sqrt(545.0), rel=1e-12)

    def test_gradient(self, multiquadric):
        expected = [24.0 / np.sqrt(545.0), -8.0 * np.sqrt(5.0 / 109.0)]
        np.testing.assert_allclose(multiquadric.gradient_value(self.r), expected, rtol=1e-12)

    def test_second_derivative(self, multiquadric):
        expected = 1604.0 / (545.0 * np.sqrt(545.0))
        assert multiquadric.dd_value(0, self.r) == pytest.approx(expected, rel=1e-12)

    def test_evaluate_matches_pointwise(self, multiquadric):
        values, grads = multiquadric.evaluate(self.r[None, :])
        assert values[0] == pytest.approx(multiquadric.value(self.r), rel=1e-14)
        np.testing.assert_allclose(grads[0], multiquadric.gradient_value(self.r), rtol=1e-14)


class TestKernels:
    @pytest.mark.parametrize("name", sorted(RBF_KERNELS))
    def test_derivative_matches_finite_difference(self, name):
        kernel = get_rbf(name)
        r = np.linspace(0.1, 0.9, 9)
        h = 1e-6
        fd = (kernel.value(r + h) - kernel.value(r - h)) / (2 * h)
        np.testing.assert_allclose(kernel.d_value(r), fd, rtol=1e-6, atol=1e-8)

    @pytest.mark.parametrize("name", sorted(RBF_KERNELS))
    def test_second_derivative_matches_finite_difference(self, name):
        kernel = get_rbf(name)
        r = np.linspace(0.1, 0.9, 9)
        h = 1e-5
        fd = (kernel.d_value(r + h) - kernel.d_value(r - h)) / (2 * h)
        np.testing.assert_allclose(kernel.dd_value(r), fd, rtol=1e-5, atol=1e-7)

    def test_wendland_compact(self):
        kernel = get_rbf('wendland_c2')
        assert kernel.value(1.0) == 0.0
        assert kernel.value(1.5) == 0.0
        assert kernel.value(0.0) == 1.0

    def test_unknown_kernel(self):
        with pytest.raises(ValueError):
            get_rbf('thin_plate')


class TestRBFFunction:
    def test_radius_from_shape(self):
        f = RBFFunction(4.0, [0.0], get_rbf('gaussian'))
        assert f.radius == pytest.approx(6.0 / 4.0)

    def test_zero_outside_radius(self):
        f = RBFFunction(1.0, [0.0, 0.0], get_rbf('wendland_c2'))
        assert f.value([1.0, 0.0]) == 0.0
        values, grads = f.evaluate([[0.8, 0.8], [0.1, 0.0]])
        assert values[0] == 0.0
        np.testing.assert_allclose(grads[0], 0.0)
        assert values[1] > 0.0

    def test_gradient_zero_at_centre(self):
        f = RBFFunction(1.0, [0.5, -0.5], get_rbf('wendland_c4'))
        np.testing.assert_allclose(f.gradient_value([0.5, -0.5]), 0.0)
        _, grads = f.evaluate([[0.5, -0.5]])
        np.testing.assert_allclose(grads, 0.0)

    def test_evaluate_gradient_matches_finite_difference(self, rng):
        f = RBFFunction(1.5, [0.1, 0.2], get_rbf('wendland_c2'))
        x = rng.uniform(-0.3, 0.5, size=(5, 2))
        h = 1e-6
        _, grads = f.evaluate(x)
        for d in range(2):
            step = np.zeros(2)
            step[d] = h
            fd = (f.evaluate(x + step)[0] - f.evaluate(x - step)[0]) / (2 * h)
            np.testing.assert_allclose(grads[:, d], fd, rtol=1e-5, atol=1e-8)

    def test_laplacian_1d_is_second_derivative(self):
        f = RBFFunction(1.0, [0.0], get_rbf('gaussian'))
        assert f.laplacian_value([0.3]) == pytest.approx(f.dd_value(0, [0.3]))

    def test_nonpositive_shape_raises(self):
        with pytest.raises(ValueError):
            RBFFunction(0.0, [0.0], get_rbf('gaussian'))


class TestCartesianDistance:
    def test_distance(self):
        assert CartesianDistance(2).distance([3.0, 4.0], np.zeros(2)) == pytest.approx(5.0)

    def test_d_distance(self):
        assert CartesianDistance(2).d_distance(1, [3.0, 4.0], np.zeros(2)) == pytest.approx(0.8)


class TestShepardFunction:
    def test_depends_on_neighbors(self):
        f = ShepardFunction(RBFFunction(1.0, [0.0], get_rbf('gaussian')))
        assert f.depends_on_neighbors() is True

    def test_partition_of_unity(self, rng):
        centres = np.array([[0.0], [0.4], [0.8]])
        functions = [RBFFunction(1.0, c, get_rbf('wendland_c2')) for c in centres]
        x = rng.uniform(0.0, 0.8, size=(7, 1))
        values = np.stack([f.evaluate(x)[0] for f in functions], axis=-1)
        grads = np.stack([f.evaluate(x)[1] for f in functions], axis=-2)
        norm_values, norm_grads = ShepardFunction.normalize(x, centres, values, grads)
        np.testing.assert_allclose(np.sum(norm_values, axis=-1), 1.0, rtol=1e-12)
        np.testing.assert_allclose(np.sum(norm_grads, axis=-2), 0.0, atol=1e-10)

    def test_zero_sum_gives_zero(self):
        values = np.zeros((1, 2))
        grads = np.zeros((1, 2, 1))
        norm_values, norm_grads = ShepardFunction.normalize(
            np.zeros((1, 1)), np.zeros((2, 1)), values, grads)
        np.testing.assert_allclose(norm_values, 0.0)
        np.testing.assert_allclose(norm_grads, 0.0)

    def test_size_mismatch_raises(self):
        with pytest.raises(ValueError):
            ShepardFunction.normalize(np.zeros((1, 1)), np.zeros((3, 1)),
                                      np.zeros((1, 2)), np.zeros((1, 2, 1)))
