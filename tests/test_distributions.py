# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for the distribution kernels."""

import numpy as np
import pytest

from scipy import stats

from bayesgraph import defaults
from bayesgraph.exceptions import (
    ConstructionError,
    DomainError,
    NumericError,
    ShapeMismatchError,
)
from bayesgraph.model.components import parameters
from bayesgraph.model.components.distributions import continuous, discrete
from bayesgraph.rng import RandomSource

# (kernel class, parameters, evaluation points)
GRADIENT_CASES = [
    (continuous.Gaussian, {"mu": 0.5, "sigma": 1.3}, np.array([-1.0, 0.2, 2.5])),
    (continuous.Uniform, {"x_min": -1.0, "x_max": 2.0}, np.array([-0.5, 0.3, 1.5])),
    (
        continuous.Exponential,
        {"location": 0.5, "scale": 2.0},
        np.array([0.7, 1.5, 4.0]),
    ),
    (
        continuous.Gamma,
        {"location": 0.1, "scale": 1.5, "alpha": 2.5},
        np.array([0.5, 1.2, 3.0]),
    ),
    (continuous.Gamma, {"location": 0.0, "scale": 0.7, "alpha": 0.6}, np.array([0.3, 2.0])),
    (continuous.Beta, {"alpha": 2.0, "beta": 3.0}, np.array([0.2, 0.5, 0.7])),
    (discrete.Bernoulli, {"p": 0.3}, np.array([True, False, True])),
    (discrete.Binomial, {"p": 0.4, "n": 10}, np.array([0, 3, 10])),
    (
        continuous.KernelDensity,
        {"samples": np.array([-1.0, 0.0, 0.4, 2.0]), "bandwidth": 0.5},
        np.array([-0.3, 0.1, 1.7]),
    ),
]


def _finite_difference(kernel_cls, params, x, name):
    step = defaults.DEFAULT_FINITE_DIFFERENCE_STEP
    if name == "x":
        kernel = kernel_cls(**params)
        return (kernel.log_prob(x + step) - kernel.log_prob(x - step)) / (2 * step)
    up = kernel_cls(**dict(params, **{name: params[name] + step}))
    down = kernel_cls(**dict(params, **{name: params[name] - step}))
    return (up.log_prob(x) - down.log_prob(x)) / (2 * step)


class TestGradients:
    @pytest.mark.parametrize("kernel_cls, params, x", GRADIENT_CASES)
    def test_matches_finite_differences(self, kernel_cls, params, x):
        gradients = kernel_cls(**params).dlog_prob(x)
        assert gradients, "kernel reported no gradient"
        for name, gradient in gradients.items():
            expected = _finite_difference(kernel_cls, params, x, name)
            np.testing.assert_allclose(
                gradient, expected, rtol=1e-4, atol=1e-5, err_msg=name
            )

    @pytest.mark.parametrize(
        "kernel_cls, params, x",
        [(kernel_cls, params, x[1]) for kernel_cls, params, x in GRADIENT_CASES],
    )
    def test_scalar_values(self, kernel_cls, params, x):
        gradients = kernel_cls(**params).dlog_prob(x)
        for name, gradient in gradients.items():
            assert gradient.shape == (), name
            expected = _finite_difference(kernel_cls, params, x, name)
            np.testing.assert_allclose(
                gradient, expected, rtol=1e-4, atol=1e-5, err_msg=name
            )

    def test_continuous_kernels_report_x(self):
        assert "x" in continuous.Gaussian(mu=0.0, sigma=1.0).dlog_prob(0.3)
        assert "x" not in discrete.Bernoulli(p=0.5).dlog_prob(True)

    def test_gradients_are_zero_outside_support(self):
        gradients = continuous.Gamma(location=1.0, scale=1.0, alpha=2.0).dlog_prob(
            np.array([0.5, 1.0])
        )
        for gradient in gradients.values():
            np.testing.assert_array_equal(gradient, 0.0)

    def test_uniform_x_gradient_points_into_support(self):
        dx = continuous.Uniform(x_min=0.0, x_max=1.0).dlog_prob(
            np.array([-1.0, 0.5, 1.0, 2.0])
        )["x"]
        np.testing.assert_array_equal(dx, [np.inf, 0.0, -np.inf, -np.inf])


class TestContinuousKernels:
    def test_gaussian_log_prob(self):
        log_prob = continuous.Gaussian(mu=1.0, sigma=2.0).log_prob(np.array([1.0, 3.0]))
        expected = -np.log(2.0) - 0.5 * np.log(2 * np.pi) - np.array([0.0, 0.5])
        np.testing.assert_allclose(log_prob, expected)

    def test_uniform_support_is_half_open(self):
        log_prob = continuous.Uniform(x_min=0.0, x_max=2.0).log_prob(
            np.array([0.0, 1.0, 2.0, -0.1])
        )
        np.testing.assert_allclose(log_prob, [-np.log(2.0), -np.log(2.0), -np.inf, -np.inf])

    def test_uniform_requires_ordered_bounds(self):
        with pytest.raises(ConstructionError):
            continuous.Uniform(x_min=1.0, x_max=1.0)

    def test_exponential_samples(self):
        kernel = continuous.Exponential(location=1.0, scale=2.0)
        draws = kernel.sample((20000,), RandomSource(3))
        assert np.all(draws >= 1.0)
        assert abs(draws.mean() - 3.0) < 0.1

    def test_exponential_support_includes_location(self):
        kernel = continuous.Exponential(location=1.0, scale=2.0)
        assert np.isfinite(kernel.log_prob(1.0))
        assert kernel.log_prob(0.999) == -np.inf

    def test_parameters_broadcast_to_sample_shape(self):
        kernel = continuous.Gaussian(mu=np.array([0.0, 10.0, 20.0]), sigma=0.01)
        draws = kernel.sample((4, 3), RandomSource(0))
        assert draws.shape == (4, 3)
        np.testing.assert_allclose(draws.mean(axis=0), [0.0, 10.0, 20.0], atol=0.05)

    def test_incompatible_sample_shape(self):
        kernel = continuous.Gaussian(mu=np.zeros(3), sigma=1.0)
        with pytest.raises(ShapeMismatchError):
            kernel.sample((2,), RandomSource(0))

    def test_incompatible_parameter_shapes(self):
        with pytest.raises(ConstructionError):
            continuous.Gaussian(mu=np.zeros(3), sigma=np.ones(2))

    def test_missing_parameter(self):
        with pytest.raises(ConstructionError):
            continuous.Gaussian(mu=0.0)

    def test_nonpositive_scale(self):
        with pytest.raises(ConstructionError):
            continuous.Gaussian(mu=0.0, sigma=0.0)

    def test_beta_samples(self):
        draws = continuous.Beta(alpha=2.0, beta=6.0).sample((20000,), RandomSource(8))
        assert np.all((draws > 0) & (draws < 1))
        assert abs(draws.mean() - 0.25) < 0.01

    def test_scott_bandwidth(self):
        samples = np.array([0.0, 1.0, 2.0, 3.0])
        expected = np.std(samples, ddof=1) * 4 ** (-0.2)
        assert continuous.KernelDensity.scott_bandwidth(samples) == pytest.approx(expected)

    def test_kernel_density_rejects_matrix_samples(self):
        with pytest.raises(ConstructionError):
            continuous.KernelDensity(samples=np.ones((2, 2)), bandwidth=1.0)


class TestGamma:
    @pytest.mark.parametrize("alpha", [0.4, 1.0, 2.5, 30.0])
    def test_sample_moments(self, alpha):
        kernel = continuous.Gamma(location=0.5, scale=2.0, alpha=alpha)
        draws = kernel.sample((40000,), RandomSource(11))
        assert np.all(draws > 0.5)
        mean = 0.5 + 2.0 * alpha
        variance = 4.0 * alpha
        assert abs(draws.mean() - mean) < 0.05 * mean
        assert abs(draws.var() - variance) < 0.1 * variance

    def test_sub_unit_shape_large_sample(self):
        kernel = continuous.Gamma(location=0.0, scale=1.0, alpha=0.5)
        draws = kernel.sample((100000,), RandomSource(21))
        assert np.all(draws > 0.0)
        assert draws.mean() == pytest.approx(0.5, abs=0.01)
        assert draws.var() == pytest.approx(0.5, abs=0.03)

    def test_support_excludes_location(self):
        kernel = continuous.Gamma(location=1.0, scale=1.0, alpha=2.0)
        log_prob = kernel.log_prob(np.array([0.5, 1.0, 2.0]))
        assert log_prob[0] == -np.inf
        assert log_prob[1] == -np.inf
        assert np.isfinite(log_prob[2])

    @pytest.mark.parametrize(
        "params",
        [
            {"location": 0.0, "scale": 1.0, "alpha": 0.0},
            {"location": 0.0, "scale": -1.0, "alpha": 2.0},
            {"location": np.nan, "scale": 1.0, "alpha": 2.0},
        ],
    )
    def test_construction_errors(self, params):
        with pytest.raises(ConstructionError):
            continuous.Gamma(**params)

    def test_rejection_cap(self):
        with pytest.raises(NumericError):
            continuous.sample_standard_gamma(np.array([2.5]), RandomSource(0), max_rounds=0)

    def test_matches_scipy_density(self):
        x = np.array([0.3, 1.0, 4.0])
        log_prob = continuous.Gamma(location=0.1, scale=1.5, alpha=2.5).log_prob(x)
        np.testing.assert_allclose(
            log_prob, stats.gamma(a=2.5, loc=0.1, scale=1.5).logpdf(x)
        )


class TestBernoulli:
    def test_sample_mean(self):
        draws = discrete.Bernoulli(p=0.3).sample((20000,), RandomSource(5))
        assert draws.dtype == np.bool_
        assert abs(draws.mean() - 0.3) < 0.02

    def test_vertex_kernel_sample_mean(self):
        kernel = parameters.Bernoulli(p=0.4).distribution()
        draws = kernel.sample((100000,), RandomSource(13))
        assert draws.shape == (100000,)
        assert abs(draws.mean() - 0.4) < 0.01

    def test_log_prob(self):
        log_prob = discrete.Bernoulli(p=0.3).log_prob(np.array([True, False]))
        np.testing.assert_allclose(log_prob, np.log([0.3, 0.7]))

    def test_degenerate_probability(self):
        kernel = discrete.Bernoulli(p=0.0)
        assert kernel.log_prob(True) == -np.inf
        assert kernel.log_prob(False) == 0.0
        assert not np.any(kernel.sample((100,), RandomSource(0)))

    def test_probability_outside_unit_interval(self):
        with pytest.raises(ConstructionError):
            discrete.Bernoulli(p=1.5)


class TestBinomial:
    def test_sample_moments(self):
        draws = discrete.Binomial(p=0.3, n=20).sample((20000,), RandomSource(2))
        assert np.all((draws >= 0) & (draws <= 20))
        assert abs(draws.mean() - 6.0) < 0.1

    def test_log_prob_matches_scipy(self):
        k = np.array([0, 4, 10])
        np.testing.assert_allclose(
            discrete.Binomial(p=0.4, n=10).log_prob(k), stats.binom(10, 0.4).logpmf(k)
        )

    def test_rejects_more_successes_than_trials(self):
        with pytest.raises(DomainError):
            discrete.Binomial(p=0.4, n=3).log_prob(4)

    def test_rejects_fractional_trials(self):
        with pytest.raises(ConstructionError):
            discrete.Binomial(p=0.4, n=2.5)


class TestCategorical:
    def test_first_nonzero_category_for_zero_uniform(self):
        index = discrete.categorical_indices(np.array([0.0, 0.5, 0.5]), np.array(0.0))
        assert index == 1

    def test_round_off_clipped_to_last_nonzero_category(self):
        index = discrete.categorical_indices(
            np.array([0.5, 0.5, 0.0]), np.array(1.0 - 1e-12)
        )
        assert index == 1

    def test_sample_frequencies(self):
        p = np.array([0.2, 0.0, 0.8])
        draws = discrete.Categorical(p=p).sample((20000,), RandomSource(4))
        frequencies = np.bincount(draws, minlength=3) / draws.size
        assert frequencies[1] == 0.0
        np.testing.assert_allclose(frequencies, p, atol=0.02)

    def test_log_prob_and_gradient(self):
        kernel = discrete.Categorical(p=np.array([0.2, 0.3, 0.5]))
        np.testing.assert_allclose(kernel.log_prob(np.array([2, 0])), np.log([0.5, 0.2]))
        np.testing.assert_allclose(kernel.dlog_prob(1)["p"], [0.0, 1 / 0.3, 0.0])

    def test_out_of_range_value(self):
        with pytest.raises(DomainError):
            discrete.Categorical(p=np.array([0.5, 0.5])).log_prob(2)

    def test_probabilities_must_sum_to_one(self):
        with pytest.raises(ConstructionError):
            discrete.Categorical(p=np.array([0.5, 0.6]))


class TestMultinomial:
    P = np.array([[[0.1, 0.1, 0.8], [0.8, 0.1, 0.1]], [[0.25, 0.5, 0.25], [0.2, 0.3, 0.5]]])
    N = np.array([[1, 10], [100, 1000]])
    X = np.array([[[0, 0, 1], [10, 0, 0]], [[25, 50, 25], [200, 300, 500]]])

    def test_known_log_prob(self):
        log_prob = discrete.Multinomial(n=self.N, p=self.P).log_prob(self.X)
        assert log_prob.shape == (2, 2)
        assert log_prob.sum() == pytest.approx(-14.165389164658901, rel=1e-10)

    def test_samples_sum_to_trials(self):
        kernel = discrete.Multinomial(n=self.N, p=self.P)
        draws = kernel.sample((2, 2, 3), RandomSource(6))
        assert draws.shape == (2, 2, 3)
        np.testing.assert_array_equal(draws.sum(axis=-1), self.N)

    def test_sample_means(self):
        kernel = discrete.Multinomial(n=50, p=np.array([0.2, 0.3, 0.5]))
        draws = np.stack([kernel.sample((3,), RandomSource(seed)) for seed in range(400)])
        np.testing.assert_allclose(draws.mean(axis=0), [10.0, 15.0, 25.0], rtol=0.05)

    def test_counts_must_sum_to_trials(self):
        with pytest.raises(DomainError):
            discrete.Multinomial(n=3, p=np.array([0.5, 0.5])).log_prob(np.array([1, 1]))

    def test_negative_counts(self):
        with pytest.raises(DomainError):
            discrete.Multinomial(n=1, p=np.array([0.5, 0.5])).log_prob(np.array([2, -1]))

    def test_wrong_category_axis(self):
        kernel = discrete.Multinomial(n=2, p=np.array([0.5, 0.5]))
        with pytest.raises(ShapeMismatchError):
            kernel.log_prob(np.array([1, 1, 0]))
        with pytest.raises(ShapeMismatchError):
            kernel.sample((3,), RandomSource(0))

    def test_probabilities_must_be_simplex(self):
        with pytest.raises(ConstructionError):
            discrete.Multinomial(n=2, p=np.array([0.5, 0.4]))

    def test_groups_must_broadcast(self):
        with pytest.raises(ConstructionError):
            discrete.Multinomial(n=np.array([1, 2, 3]), p=self.P)
