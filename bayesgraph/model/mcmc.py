# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Metropolis-Hastings sampling of Bayesian networks.

Every iteration of :py:class:`MetropolisHastings` proposes new values for a few
latent vertices chosen uniformly at random, recalculates their deterministic
descendants and evaluates the change in joint log-probability over the affected
probabilistic vertices only. The proposal is accepted when ``u < exp(min(delta,
0))`` for a uniform ``u``, which is drawn on every iteration so that the random
stream does not depend on the outcome. Rejected proposals restore the values held
before the proposal. A proposal that draws from a kernel whose parents left their
domain is rejected. Only vertices of the sampled network are cascaded to and
scored. Exactly one trace entry is recorded per iteration.

Two proposals are provided:

    - :py:class:`PriorProposal` draws from the prior of the vertex given its
      parents and carries the matching Hastings correction.
    - :py:class:`GaussianProposal` takes a symmetric random-walk step for
      continuous vertices and falls back to the prior for discrete ones.

Example:
    >>> from bayesgraph.model import mcmc
    >>> from bayesgraph.rng import RandomSource
    >>> samples = mcmc.sample(network, [mu], 5000, rng=RandomSource(1))
    >>> samples.drop(1000).get(mu).mean()
"""

from __future__ import annotations

import enum
import logging
import warnings

from abc import ABC, abstractmethod
from typing import Callable, Container, Optional, Sequence, TYPE_CHECKING

import numpy as np

from tqdm import tqdm

from bayesgraph import defaults, utils
from bayesgraph.exceptions import DomainError, NoFeasibleStateError
from bayesgraph.model.components.abstract_model_component import VertexKind
from bayesgraph.model.results.samples import NetworkSamples
from bayesgraph.rng import RandomSource

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.model.components.abstract_model_component import Vertex
    from bayesgraph.model.components.parameters import ProbabilisticVertex
    from bayesgraph.model.network import BayesianNetwork

logger = logging.getLogger(__name__)


class ChainState(enum.Enum):
    """Position of a Metropolis-Hastings chain within its run."""

    INITIALIZED = "initialized"
    PROPOSING = "proposing"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TERMINAL = "terminal"


class Proposal(ABC):
    """Proposal distribution of a Metropolis-Hastings step."""

    @abstractmethod
    def propose(
        self,
        vertices: Sequence["ProbabilisticVertex"],
        rng: RandomSource,
        within: Optional[Container["Vertex"]] = None,
    ) -> float:
        """Give new values to ``vertices`` and cascade them to their deterministic
        descendants.

        :param vertices: Latent vertices to move
        :type vertices: Sequence[ProbabilisticVertex]
        :param rng: Random source
        :type rng: RandomSource
        :param within: If given, only descendants contained in it are cascaded to.
            Defaults to None.
        :type within: Optional[Container[Vertex]]

        :returns: The log Hastings correction, ``log q(old | new) - log q(new |
            old)``. Zero for symmetric proposals.
        :rtype: float
        """


class PriorProposal(Proposal):
    """Draws every vertex from its prior given the current values of its parents.

    Vertices are moved in the given order, so a vertex proposed after one of its
    ancestors sees the ancestor's new value.
    """

    def _propose_one(
        self,
        vertex: "ProbabilisticVertex",
        rng: RandomSource,
        within: Optional[Container["Vertex"]],
    ) -> float:
        old_value = vertex.get_value()
        new_value = vertex.sample(rng)
        correction = vertex.log_prob(old_value) - vertex.log_prob(new_value)
        vertex.set_and_cascade(new_value, within)
        return correction

    def propose(self, vertices, rng, within=None):
        return float(
            sum(self._propose_one(vertex, rng, within) for vertex in vertices)
        )


class GaussianProposal(PriorProposal):
    """Symmetric Gaussian random walk for continuous vertices.

    :param sigma: Standard deviation of the step. Defaults to
        :py:data:`~bayesgraph.defaults.DEFAULT_PROPOSAL_SIGMA`.
    :type sigma: custom_types.Float

    :raises DomainError: If ``sigma`` is not positive
    """

    def __init__(self, sigma: "custom_types.Float" = defaults.DEFAULT_PROPOSAL_SIGMA):
        if not sigma > 0:
            raise DomainError(f"Proposal sigma must be positive, got {sigma}")
        self.sigma = sigma

    def propose(self, vertices, rng, within=None):
        correction = 0.0
        for vertex in vertices:
            if not np.issubdtype(vertex.dtype, np.floating):
                correction += self._propose_one(vertex, rng, within)
                continue
            vertex.set_and_cascade(
                vertex.get_value() + self.sigma * rng.next_gaussian(vertex.shape),
                within,
            )
        return float(correction)


def _log_prob_of(vertices: Sequence["ProbabilisticVertex"]) -> float:
    """Summed log-probability of ``vertices``. Discrete values outside their
    support give ``-inf``.
    """
    total = 0.0
    for vertex in vertices:
        try:
            log_prob = vertex.log_prob()
        except DomainError as error:
            logger.debug("Vertex %d left its support: %s", vertex.id, error)
            return -np.inf
        if log_prob == -np.inf:
            return -np.inf
        total += log_prob
    return total


class MetropolisHastings:
    """Metropolis-Hastings sampler.

    :param proposal: Proposal used for every step. Defaults to None, which uses a
        :py:class:`PriorProposal`.
    :type proposal: Optional[Proposal]
    :param variables_per_step: Number of latent vertices moved per iteration.
        Defaults to :py:data:`~bayesgraph.defaults.DEFAULT_VARIABLES_PER_STEP`.
    :type variables_per_step: custom_types.Integer

    :ivar state: Position of the chain within the current run
    :ivar n_steps: Iterations run by the last call
    :ivar n_accepted: Accepted proposals of the last call
    """

    def __init__(
        self,
        proposal: Optional[Proposal] = None,
        variables_per_step: "custom_types.Integer" = defaults.DEFAULT_VARIABLES_PER_STEP,
    ):
        if variables_per_step < 1:
            raise DomainError(
                f"variables_per_step must be at least 1, got {variables_per_step}"
            )
        self.proposal = proposal or PriorProposal()
        self.variables_per_step = int(variables_per_step)
        self.state = ChainState.INITIALIZED
        self.n_steps = 0
        self.n_accepted = 0

    @property
    def acceptance_rate(self) -> float:
        """Fraction of accepted proposals in the last run. Zero before any step."""
        return self.n_accepted / self.n_steps if self.n_steps else 0.0

    @staticmethod
    def _build_affected_cache(
        network: "BayesianNetwork",
    ) -> dict["ProbabilisticVertex", tuple[list["Vertex"], list["ProbabilisticVertex"]]]:
        """For every latent vertex, get its deterministic descendants and the
        probabilistic vertices whose log-probability depends on its value.

        Only vertices of the network are considered. Children built on the same
        vertices but left out of the network are ignored.
        """
        cache = {}
        for vertex in network.latent_vertices:
            descendants = vertex.get_deterministic_descendants(network)
            affected = {vertex}
            for source in [vertex] + descendants:
                affected.update(
                    child
                    for child in source.children
                    if child.KIND is VertexKind.PROBABILISTIC and child in network
                )
            cache[vertex] = (descendants, utils.topological_sort(affected))
        return cache

    def get_posterior_samples(
        self,
        network: "BayesianNetwork",
        vertices_to_record: Sequence["Vertex"],
        n: "custom_types.Integer",
        rng: Optional[RandomSource] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        progress: bool = False,
    ) -> NetworkSamples:
        """Run the chain for ``n`` iterations from the current network state.

        :param network: Network to sample. Every latent vertex must hold a value.
        :type network: BayesianNetwork
        :param vertices_to_record: Vertices whose values are recorded after every
            iteration
        :type vertices_to_record: Sequence[Vertex]
        :param n: Number of iterations
        :type n: custom_types.Integer
        :param rng: Random source. Defaults to None, which creates a fresh one.
        :type rng: Optional[RandomSource]
        :param should_stop: Polled before every iteration. The run ends with the
            entries recorded so far once it returns True. Defaults to None.
        :type should_stop: Optional[Callable[[], bool]]
        :param progress: Whether to display a progress bar. Defaults to False.
        :type progress: bool

        :returns: One entry per completed iteration
        :rtype: NetworkSamples

        :raises DomainError: If ``n`` is negative or the network has no latent
            vertex
        :raises NoFeasibleStateError: If the starting state is impossible
        """
        if n < 0:
            raise DomainError(f"Number of iterations must be non-negative, got {n}")
        rng = rng or RandomSource()
        latent = network.latent_vertices
        if not latent:
            raise DomainError("The network has no latent vertex to sample")

        log_prob = network.joint_log_prob()
        if not log_prob > -np.inf:
            raise NoFeasibleStateError(
                "Metropolis-Hastings cannot start from a state of zero probability"
            )

        cache = self._build_affected_cache(network)
        n_moved = min(self.variables_per_step, len(latent))
        trace = {vertex.id: [] for vertex in vertices_to_record}
        log_probs = []

        self.state = ChainState.INITIALIZED
        self.n_steps = 0
        self.n_accepted = 0
        for _ in tqdm(range(n), desc="Metropolis-Hastings", disable=not progress):
            if should_stop is not None and should_stop():
                logger.info("Sampling stopped after %d iterations", self.n_steps)
                break

            # Choose vertices and gather everything they touch
            self.state = ChainState.PROPOSING
            chosen = [latent[index] for index in rng.choice(len(latent), n_moved)]
            descendants, affected = set(), set()
            for vertex in chosen:
                vertex_descendants, vertex_affected = cache[vertex]
                descendants.update(vertex_descendants)
                affected.update(vertex_affected)
            affected = utils.topological_sort(affected)
            snapshot = {
                vertex: vertex.get_value()
                for vertex in chosen + utils.topological_sort(descendants)
            }

            before = _log_prob_of(affected)
            try:
                log_correction = self.proposal.propose(chosen, rng, within=network)
            except DomainError as error:
                # Parents moved outside the domain of a kernel being sampled
                logger.debug("Proposal failed: %s", error)
                log_correction = -np.inf

            self.state = ChainState.EVALUATING
            after = _log_prob_of(affected) if log_correction > -np.inf else -np.inf
            u = rng.next_double()
            if after > -np.inf and u < np.exp(
                min(after - before + log_correction, 0.0)
            ):
                self.state = ChainState.ACCEPTED
                self.n_accepted += 1
                log_prob += after - before
            else:
                self.state = ChainState.REJECTED
                for vertex, value in snapshot.items():
                    vertex.set_value(value)

            for vertex in vertices_to_record:
                trace[vertex.id].append(np.array(vertex.get_value()))
            log_probs.append(float(log_prob))
            self.n_steps += 1

        self.state = ChainState.TERMINAL
        logger.info(
            "Ran %d Metropolis-Hastings iterations, acceptance rate %.3f",
            self.n_steps,
            self.acceptance_rate,
        )
        if self.n_steps and self.acceptance_rate < defaults.DEFAULT_LOW_ACCEPTANCE_WARNING:
            warnings.warn(
                f"Metropolis-Hastings accepted {self.acceptance_rate:.2%} of "
                "proposals. The chain has barely moved; consider another proposal."
            )

        return NetworkSamples(
            trace,
            log_probs=log_probs,
            labels={vertex.id: vertex.label for vertex in vertices_to_record},
        )


def sample(
    network: "BayesianNetwork",
    target_vertices: Sequence["Vertex"],
    iteration_count: "custom_types.Integer",
    rng: Optional[RandomSource] = None,
) -> NetworkSamples:
    """Sample ``target_vertices`` with a default Metropolis-Hastings sampler.

    Latent vertices that hold no value, or a starting state of zero probability,
    are first fixed by
    :py:meth:`~bayesgraph.model.network.BayesianNetwork.probe_for_non_zero_probability`.

    :param network: Network to sample
    :type network: BayesianNetwork
    :param target_vertices: Vertices to record
    :type target_vertices: Sequence[Vertex]
    :param iteration_count: Number of iterations
    :type iteration_count: custom_types.Integer
    :param rng: Random source. Defaults to None, which creates a fresh one.
    :type rng: Optional[RandomSource]

    :returns: The recorded trace
    :rtype: NetworkSamples
    """
    rng = rng or RandomSource()
    network.probe_for_non_zero_probability(rng=rng)
    return MetropolisHastings().get_posterior_samples(
        network, target_vertices, iteration_count, rng=rng
    )
