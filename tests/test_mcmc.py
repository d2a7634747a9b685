# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for Metropolis-Hastings sampling."""

import numpy as np
import pytest

from bayesgraph import operations
from bayesgraph.exceptions import DomainError, NoFeasibleStateError
from bayesgraph.model import mcmc
from bayesgraph.model.components import parameters
from bayesgraph.model.network import BayesianNetwork
from bayesgraph.rng import RandomSource


def _conjugate_model():
    """``mu ~ N(0, 1)`` with ten observations of 1.0 from ``N(mu, 1)``.

    The posterior of ``mu`` is ``N(10 / 11, 1 / 11)``.
    """
    mu = parameters.Gaussian(mu=0.0, sigma=1.0, label="mu")
    y = parameters.Gaussian(mu=mu, sigma=1.0, shape=(10,))
    y.observe(np.ones(10))
    mu.set_value(0.0)
    return mu, BayesianNetwork([y])


class TestProposals:
    def test_gaussian_sigma_must_be_positive(self):
        with pytest.raises(DomainError):
            mcmc.GaussianProposal(sigma=0.0)

    def test_variables_per_step(self):
        with pytest.raises(DomainError):
            mcmc.MetropolisHastings(variables_per_step=0)

    def test_prior_proposal_correction(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        x.set_value(0.3)
        old_log_prob = x.log_prob()
        correction = mcmc.PriorProposal().propose([x], RandomSource(5))
        assert correction == pytest.approx(old_log_prob - x.log_prob())

    def test_gaussian_proposal_cascades(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3,))
        x.set_value(np.zeros(3))
        doubled = x * 2.0
        doubled.calculate()
        correction = mcmc.GaussianProposal(0.1).propose([x], RandomSource(6))
        assert correction == 0.0
        np.testing.assert_allclose(doubled.get_value(), 2 * x.get_value())


class TestMetropolisHastings:
    def test_conjugate_gaussian_posterior(self):
        mu, network = _conjugate_model()
        sampler = mcmc.MetropolisHastings(proposal=mcmc.GaussianProposal(0.5))
        samples = sampler.get_posterior_samples(
            network, [mu], 20000, rng=RandomSource(42)
        ).drop(2000)
        assert samples.get(mu).mean() == pytest.approx(10 / 11, abs=0.05)
        assert samples.get(mu).variance() == pytest.approx(1 / 11, abs=0.03)

    def test_run_bookkeeping(self):
        mu, network = _conjugate_model()
        sampler = mcmc.MetropolisHastings(proposal=mcmc.GaussianProposal(0.5))
        samples = sampler.get_posterior_samples(network, [mu], 300, rng=RandomSource(7))
        assert sampler.state is mcmc.ChainState.TERMINAL
        assert sampler.n_steps == 300
        assert 0 < sampler.n_accepted < 300
        assert sampler.acceptance_rate == sampler.n_accepted / 300
        assert len(samples) == 300
        assert len(samples.log_probs) == 300
        assert samples.log_probs[-1] == pytest.approx(network.joint_log_prob())
        assert samples.get(mu).as_list()[-1] == mu.get_value()

    def test_drop_burn_in(self):
        mu, network = _conjugate_model()
        samples = mcmc.MetropolisHastings(
            proposal=mcmc.GaussianProposal(0.5)
        ).get_posterior_samples(network, [mu], 1000, rng=RandomSource(14))

        kept = samples.drop(200)
        assert len(kept) == 800
        assert len(kept.get(mu)) == 800
        assert len(kept.log_probs) == 800
        np.testing.assert_array_equal(
            kept.get(mu).as_array(), samples.get(mu).as_array()[200:]
        )

        unchanged = samples.drop(0)
        assert len(unchanged) == 1000
        np.testing.assert_array_equal(
            unchanged.get(mu).as_array(), samples.get(mu).as_array()
        )
        np.testing.assert_array_equal(unchanged.log_probs, samples.log_probs)

    def test_should_stop_ends_the_run(self):
        mu, network = _conjugate_model()
        calls = []

        def should_stop():
            calls.append(None)
            return len(calls) > 10

        samples = mcmc.MetropolisHastings().get_posterior_samples(
            network, [mu], 100, rng=RandomSource(8), should_stop=should_stop
        )
        assert len(samples) == 10

    def test_invalid_runs(self):
        mu, network = _conjugate_model()
        with pytest.raises(DomainError):
            mcmc.MetropolisHastings().get_posterior_samples(network, [mu], -1)

        observed = parameters.Gaussian(mu=0.0, sigma=1.0)
        observed.observe(0.0)
        with pytest.raises(DomainError):
            mcmc.MetropolisHastings().get_posterior_samples(
                BayesianNetwork([observed]), [observed], 10
            )

    def test_impossible_start(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        x.set_value(0.0)
        y = parameters.Uniform(x_min=0.0, x_max=1.0)
        y.observe(2.0)
        with pytest.raises(NoFeasibleStateError):
            mcmc.MetropolisHastings().get_posterior_samples(
                BayesianNetwork([x, y]), [x], 10
            )

    def test_deterministic_descendants_stay_consistent(self):
        mu = parameters.Gaussian(mu=0.0, sigma=1.0)
        mu.set_value(0.0)
        shifted = mu * 2.0 + 1.0
        y = parameters.Gaussian(mu=shifted, sigma=1.0)
        y.observe(3.0)
        network = BayesianNetwork([y])
        samples = mcmc.MetropolisHastings(
            proposal=mcmc.GaussianProposal(0.3)
        ).get_posterior_samples(network, [mu, shifted], 200, rng=RandomSource(9))

        np.testing.assert_allclose(
            samples.get(shifted).as_array(), samples.get(mu).as_array() * 2.0 + 1.0
        )
        assert shifted.get_value() == pytest.approx(mu.get_value() * 2.0 + 1.0)

    def test_low_acceptance_warns(self):
        x = parameters.Gaussian(mu=0.0, sigma=1.0)
        x.set_value(0.0)
        y = parameters.Gaussian(mu=x, sigma=0.01, shape=(100,))
        y.observe(np.zeros(100))
        sampler = mcmc.MetropolisHastings(proposal=mcmc.PriorProposal())
        with pytest.warns(UserWarning):
            sampler.get_posterior_samples(
                BayesianNetwork([y]), [x], 2000, rng=RandomSource(10)
            )
        assert sampler.acceptance_rate < 0.01

    def test_sample_finds_a_feasible_start(self):
        mu = parameters.Gaussian(mu=0.0, sigma=1.0)
        y = parameters.Gaussian(mu=mu, sigma=1.0)
        y.observe(0.5)
        samples = mcmc.sample(BayesianNetwork([y]), [mu], 200, rng=RandomSource(11))
        assert len(samples) == 200
        assert mu.has_value()

    def test_vertices_outside_the_network_are_ignored(self):
        mu = parameters.Gaussian(mu=0.0, sigma=1.0)
        y = parameters.Gaussian(mu=mu, sigma=1.0)
        y.observe(0.5)
        unrelated = parameters.Gaussian(mu=mu, sigma=1.0)
        shifted = mu + parameters.Gaussian(mu=0.0, sigma=1.0)

        samples = mcmc.sample(BayesianNetwork([y]), [mu], 100, rng=RandomSource(13))
        assert len(samples) == 100
        assert not unrelated.has_value()
        assert not shifted.has_value()

    def test_proposals_outside_a_kernel_domain_are_rejected(self):
        sigma = parameters.Gaussian(mu=1.0, sigma=1.0)
        x = parameters.Gaussian(mu=0.0, sigma=sigma)
        y = parameters.Gaussian(mu=x, sigma=1.0)
        y.observe(0.2)
        sigma.set_value(1.0)
        x.set_value(0.0)

        sampler = mcmc.MetropolisHastings(variables_per_step=2)
        samples = sampler.get_posterior_samples(
            BayesianNetwork([y]), [sigma, x], 500, rng=RandomSource(15)
        )
        assert len(samples) == 500
        assert np.all(samples.get(sigma).as_array() > 0.0)
        assert np.all(np.isfinite(samples.log_probs))

    def test_food_poisoning(self):
        n_people = 50
        generator = np.random.default_rng(1)
        ate_oysters = generator.random(n_people) < 0.4
        ate_lamb = generator.random(n_people) < 0.4
        used_toilet = generator.random(n_people) < 0.4

        infected_oysters = parameters.Bernoulli(p=0.4, label="oysters")
        infected_lamb = parameters.Bernoulli(p=0.4, label="lamb")
        infected_toilet = parameters.Bernoulli(p=0.4, label="toilet")
        exposed = (
            (infected_oysters & ate_oysters)
            | (infected_lamb & ate_lamb)
            | (infected_toilet & used_toilet)
        )
        sick = parameters.Bernoulli(p=operations.where(exposed, 0.9, 0.01))
        sick.observe(ate_oysters)

        samples = mcmc.sample(
            BayesianNetwork([sick]),
            [infected_oysters, infected_lamb, infected_toilet],
            2000,
            rng=RandomSource(12),
        ).drop(500)

        assert samples.get(infected_oysters).probability(bool) > 0.9
        assert samples.get(infected_lamb).probability(bool) < 0.1
        assert samples.get(infected_toilet).probability(bool) < 0.1
