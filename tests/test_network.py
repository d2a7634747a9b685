# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for Bayesian networks."""

import numpy as np
import pytest

from bayesgraph import operations
from bayesgraph.exceptions import (
    CyclicGraphError,
    DomainError,
    NoFeasibleStateError,
)
from bayesgraph.model.components import parameters
from bayesgraph.model.network import BayesianNetwork
from bayesgraph.rng import RandomSource


def _gaussian_model():
    """``mu ~ N(0, 1)`` with three observations ``y ~ N(mu, 2)``."""
    mu = parameters.Gaussian(mu=0.0, sigma=1.0, label="mu")
    y = parameters.Gaussian(mu=mu, sigma=2.0, shape=(3,), label="y")
    y.observe([1.0, 2.0, 3.0])
    mu.set_value(0.5)
    return mu, y, BayesianNetwork([y])


class TestStructure:
    def test_empty_network(self):
        with pytest.raises(DomainError):
            BayesianNetwork([])

    def test_ancestors_are_included(self):
        mu, y, network = _gaussian_model()
        assert mu in network
        assert y in network
        assert network.vertices.index(mu) < network.vertices.index(y)
        assert network.get_vertex(mu.id) is mu
        with pytest.raises(KeyError):
            network.get_vertex(-1)

    def test_partition_follows_observations(self):
        mu, y, network = _gaussian_model()
        assert network.latent_vertices == [mu]
        assert network.observed_vertices == [y]
        assert set(network.probabilistic_vertices) == {mu, y}
        assert all(
            vertex not in network.probabilistic_vertices
            for vertex in network.deterministic_vertices
        )

        y.unobserve()
        assert network.latent_vertices == [mu, y]
        assert network.observed_vertices == []
        assert "2 latent, 0 observed" in str(network)

    def test_cycles_are_rejected(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0)
        b = parameters.Gaussian(mu=a, sigma=1.0)
        a._parents["mu"] = b  # pylint: disable=protected-access
        with pytest.raises(CyclicGraphError):
            BayesianNetwork([b])


class TestJointLogProb:
    def test_sum_of_vertex_log_probs(self):
        mu, y, network = _gaussian_model()
        expected = mu.log_prob() + y.log_prob()
        assert network.joint_log_prob() == pytest.approx(expected)
        assert network.log_of_master_p() == pytest.approx(expected)
        assert not network.is_in_impossible_state()

    def test_impossible_state(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        x.set_value(0.0)
        y = parameters.Uniform(x_min=0.0, x_max=1.0)
        y.observe(2.0)
        network = BayesianNetwork([x, y])
        assert network.joint_log_prob() == -np.inf
        assert network.is_in_impossible_state()

    def test_cascade(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0)
        a.set_value(1.0)
        b = a * 2.0
        c = b + 1.0
        network = BayesianNetwork([c])
        assert c.get_value() == 3.0
        a.set_value(3.0)
        network.cascade([a])
        assert b.get_value() == 6.0
        assert c.get_value() == 7.0

    def test_cascade_stays_inside_network(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0)
        a.set_value(1.0)
        inside = a * 2.0
        outside = a + parameters.Gaussian(mu=0.0, sigma=1.0)
        network = BayesianNetwork([inside])
        a.set_value(2.0)
        network.cascade([a])
        assert inside.get_value() == 4.0
        assert not outside.has_value()

    def test_observed_bernoullis(self):
        first = parameters.Bernoulli(p=0.5)
        second = parameters.Bernoulli(p=0.5)
        first.observe(True)
        second.observe(True)
        network = BayesianNetwork([first, second])
        assert network.joint_log_prob() == pytest.approx(np.log(0.5) + np.log(0.5))

    def test_discrete_value_outside_support_is_impossible(self):
        count = parameters.Binomial(p=0.5, n=3)
        count.observe(5)
        network = BayesianNetwork([count])
        with pytest.raises(DomainError):
            count.log_prob()
        assert network.joint_log_prob() == -np.inf
        assert network.is_in_impossible_state()


class TestFeasibleStateSearch:
    def test_sample_latent_from_prior_keeps_observations(self):
        mu, y, network = _gaussian_model()
        shifted = mu + 1.0
        network = BayesianNetwork([y, shifted])
        network.sample_latent_from_prior(RandomSource(0))
        np.testing.assert_array_equal(y.get_value(), [1.0, 2.0, 3.0])
        assert shifted.get_value() == mu.get_value() + 1.0

    def test_current_feasible_state_is_kept(self):
        mu, _, network = _gaussian_model()
        network.probe_for_non_zero_probability(rng=RandomSource(0))
        assert mu.get_value() == 0.5

    def test_search_finds_feasible_state(self):
        x = parameters.Uniform(x_min=0.0, x_max=10.0)
        observation = parameters.Uniform(x_min=0.0, x_max=x)
        observation.observe(5.0)
        network = BayesianNetwork([observation])
        network.probe_for_non_zero_probability(rng=RandomSource(4))
        assert x.get_value() > 5.0
        assert network.joint_log_prob() > -np.inf

    def test_search_gives_up(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        y = parameters.Uniform(x_min=0.0, x_max=1.0)
        y.observe(2.0)
        network = BayesianNetwork([x, y])
        with pytest.raises(NoFeasibleStateError):
            network.probe_for_non_zero_probability(max_attempts=5, rng=RandomSource(0))

    def test_search_skips_draws_outside_a_kernel_domain(self):
        sigma = parameters.Uniform(x_min=-1.0, x_max=1.0)
        x = parameters.Gaussian(mu=0.0, sigma=sigma)
        y = parameters.Gaussian(mu=x, sigma=1.0)
        y.observe(0.3)
        network = BayesianNetwork([y])
        network.probe_for_non_zero_probability(max_attempts=50, rng=RandomSource(0))
        assert sigma.get_value() > 0.0
        assert x.has_value()
        assert network.joint_log_prob() > -np.inf

    def test_search_gives_up_when_every_draw_leaves_a_kernel_domain(self):
        sigma = parameters.Uniform(x_min=-2.0, x_max=-1.0)
        x = parameters.Gaussian(mu=0.0, sigma=sigma)
        network = BayesianNetwork([x])
        with pytest.raises(NoFeasibleStateError):
            network.probe_for_non_zero_probability(max_attempts=5, rng=RandomSource(1))


class TestGradient:
    def test_analytic_gradient(self):
        mu, _, network = _gaussian_model()
        gradient = network.log_prob_gradient()
        expected = -0.5 + ((1.0 - 0.5) + (2.0 - 0.5) + (3.0 - 0.5)) / 4.0
        assert set(gradient) == {mu.id}
        assert gradient[mu.id] == pytest.approx(expected)

    def test_requested_vertices_without_dependence_get_zeros(self):
        mu, y, _ = _gaussian_model()
        count = parameters.Binomial(p=0.5, n=4, shape=(2,))
        count.set_value([1, 3])
        network = BayesianNetwork([y, count])
        gradient = network.log_prob_gradient(with_respect_to=[mu, count])
        assert set(gradient) == {mu.id, count.id}
        np.testing.assert_array_equal(gradient[count.id], np.zeros(2))

    def test_gradient_matches_finite_differences(self):
        a = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(2,))
        s = parameters.Gaussian(mu=0.0, sigma=1.0)
        y = parameters.Gaussian(mu=a * 2.0, sigma=operations.exp(s), shape=(2,))
        y.observe([1.3, -0.4])
        a.set_value([0.2, -0.7])
        s.set_value(0.3)
        network = BayesianNetwork([y])
        network.cascade([a, s])
        gradient = network.log_prob_gradient()

        step = 1e-6
        for vertex in (a, s):
            start = np.array(vertex.get_value())
            estimate = np.zeros(start.shape)
            for index in np.ndindex(start.shape):
                offset = np.zeros(start.shape)
                offset[index] = step
                vertex.set_and_cascade(start + offset)
                upper = network.joint_log_prob()
                vertex.set_and_cascade(start - offset)
                lower = network.joint_log_prob()
                estimate[index] = (upper - lower) / (2 * step)
            vertex.set_and_cascade(start)
            np.testing.assert_allclose(gradient[vertex.id], estimate, rtol=1e-5, atol=1e-6)
