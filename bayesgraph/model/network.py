# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Bayesian networks built from connected vertices.

A :py:class:`BayesianNetwork` is the collection of every vertex reachable from a
set of root vertices through parent edges. It is topologically sorted once at
construction (which also rejects cyclic graphs) and partitions its vertices into:

    - **Latent vertices**: probabilistic vertices whose values are inferred
    - **Observed vertices**: probabilistic vertices holding data
    - **Deterministic vertices**: constants and transformations

The partition follows the observed flags of the probabilistic vertices and is
recomputed whenever they change. The network exposes the joint log-probability
of its current state, its gradient with respect to latent vertices, and helpers
to move the network into a state of non-zero probability before sampling.

Example:
    >>> from bayesgraph.model.components import parameters
    >>> from bayesgraph.model.network import BayesianNetwork
    >>> mu = parameters.Gaussian(mu=0.0, sigma=1.0)
    >>> y = parameters.Gaussian(mu=mu, sigma=0.5)
    >>> y.observe(1.2)
    >>> network = BayesianNetwork([y])
    >>> network.probe_for_non_zero_probability()
    >>> network.joint_log_prob()
"""

from __future__ import annotations

import logging

from typing import Iterable, Iterator, Optional, TYPE_CHECKING

import numpy as np

from bayesgraph import defaults, utils
from bayesgraph.exceptions import DomainError, NoFeasibleStateError
from bayesgraph.model.autodiff.differentiator import Differentiator
from bayesgraph.model.components.abstract_model_component import Vertex, VertexKind
from bayesgraph.rng import RandomSource

if TYPE_CHECKING:
    from bayesgraph.model.components.parameters import ProbabilisticVertex

logger = logging.getLogger(__name__)


class BayesianNetwork:
    """A directed acyclic graph of vertices with a joint probability.

    :param root_vertices: Vertices the network is built from. Every ancestor of
        these vertices is included.
    :type root_vertices: Iterable[Vertex]

    :raises DomainError: If no root vertex is given
    :raises CyclicGraphError: If the parent relation contains a cycle
    """

    def __init__(self, root_vertices: Iterable[Vertex]):
        roots = list(root_vertices)
        if not roots:
            raise DomainError("A BayesianNetwork needs at least one vertex")

        # Gather ancestors and sort them once
        self._vertices: list[Vertex] = utils.topological_sort(
            utils.collect_vertices(roots, lambda vertex: vertex.parents)
        )
        self._vertex_by_id: dict[int, Vertex] = {
            vertex.id: vertex for vertex in self._vertices
        }
        self._probabilistic: list["ProbabilisticVertex"] = [
            vertex
            for vertex in self._vertices
            if vertex.KIND is VertexKind.PROBABILISTIC
        ]

        # Partition cache keyed by the observed flags
        self._partition_signature: Optional[tuple[bool, ...]] = None
        self._latent: list["ProbabilisticVertex"] = []
        self._observed: list["ProbabilisticVertex"] = []

        logger.debug(
            "Built network of %d vertices (%d probabilistic)",
            len(self._vertices),
            len(self._probabilistic),
        )

    def _partition(self) -> None:
        """Recompute the latent/observed split if any observed flag changed."""
        signature = tuple(vertex.is_observed for vertex in self._probabilistic)
        if signature == self._partition_signature:
            return
        self._latent = [
            vertex for vertex in self._probabilistic if not vertex.is_observed
        ]
        self._observed = [vertex for vertex in self._probabilistic if vertex.is_observed]
        self._partition_signature = signature

    @property
    def vertices(self) -> list[Vertex]:
        """Every vertex of the network in topological order."""
        return list(self._vertices)

    @property
    def latent_vertices(self) -> list["ProbabilisticVertex"]:
        """Probabilistic vertices that are not observed, in topological order."""
        self._partition()
        return list(self._latent)

    @property
    def observed_vertices(self) -> list["ProbabilisticVertex"]:
        """Observed probabilistic vertices, in topological order."""
        self._partition()
        return list(self._observed)

    @property
    def probabilistic_vertices(self) -> list["ProbabilisticVertex"]:
        """Every probabilistic vertex, latent or observed."""
        return list(self._probabilistic)

    @property
    def deterministic_vertices(self) -> list[Vertex]:
        """Constants and transformations, in topological order."""
        return [
            vertex
            for vertex in self._vertices
            if vertex.KIND is VertexKind.DETERMINISTIC
        ]

    def get_vertex(self, vertex_id: int) -> Vertex:
        """Look up a vertex of the network by id.

        :raises KeyError: If no vertex of the network has the id
        """
        try:
            return self._vertex_by_id[vertex_id]
        except KeyError as error:
            raise KeyError(f"No vertex with id {vertex_id} in the network") from error

    def joint_log_prob(self) -> float:
        """Log of the joint probability of the current state.

        Sums the log-densities of every probabilistic vertex, latent and
        observed, given the current values of their parents. Evaluation stops at
        the first impossible vertex. A discrete value outside its support, or
        parent values outside the domain of a kernel, make the state impossible.

        :returns: The joint log-probability. ``-inf`` for an impossible state.
        :rtype: float

        :raises ValueNotSetError: If a probabilistic vertex has no value
        """
        total = 0.0
        for vertex in self._probabilistic:
            try:
                log_prob = vertex.log_prob()
            except DomainError as error:
                logger.debug("%s is outside its domain: %s", vertex.describe(), error)
                return -np.inf
            if log_prob == -np.inf:
                return -np.inf
            total += log_prob
        return total

    def log_of_master_p(self) -> float:
        """Alias of :py:meth:`joint_log_prob`."""
        return self.joint_log_prob()

    def is_in_impossible_state(self) -> bool:
        """Whether the current state has zero (or undefined) probability."""
        log_prob = self.joint_log_prob()
        return not log_prob > -np.inf

    def cascade(self, vertices: Iterable[Vertex]) -> None:
        """Recalculate every deterministic descendant of the given vertices once,
        in topological order. Descendants outside the network are left untouched.
        """
        descendants = set()
        for vertex in vertices:
            descendants.update(vertex.get_deterministic_descendants(self))
        for descendant in utils.topological_sort(descendants):
            descendant.calculate()

    def sample_latent_from_prior(self, rng: RandomSource) -> None:
        """Ancestrally resample every latent vertex from its prior.

        Vertices are visited in topological order: latent vertices draw a new
        value given the current values of their parents and transformations are
        recalculated, so later vertices see the new values. Observed vertices and
        constants are left untouched.

        :param rng: Random source
        :type rng: RandomSource
        """
        self._partition()
        latent = set(self._latent)
        for vertex in self._vertices:
            if vertex in latent:
                vertex.set_value(vertex.sample(rng))
            elif vertex.KIND is VertexKind.DETERMINISTIC and vertex.parents:
                vertex.calculate()

    def probe_for_non_zero_probability(
        self,
        max_attempts: int = defaults.DEFAULT_PROBE_ATTEMPTS,
        rng: Optional[RandomSource] = None,
    ) -> None:
        """Move the network into a state of non-zero probability.

        The current state is kept if every latent vertex has a value and the
        state is possible. Otherwise, latent vertices are resampled from their
        priors until a possible state is found. A resample that draws parent
        values outside the domain of a later kernel counts as a failed attempt.

        :param max_attempts: Maximum number of prior resamples. Defaults to
            :py:data:`~bayesgraph.defaults.DEFAULT_PROBE_ATTEMPTS`.
        :type max_attempts: int
        :param rng: Random source. Defaults to None, which creates a fresh one.
        :type rng: Optional[RandomSource]

        :raises NoFeasibleStateError: If no possible state is found within
            ``max_attempts`` resamples
        """
        rng = rng or RandomSource()
        if all(
            vertex.has_value() for vertex in self.latent_vertices
        ) and not self.is_in_impossible_state():
            logger.debug("Current state already has non-zero probability")
            return

        for attempt in range(1, max_attempts + 1):
            try:
                self.sample_latent_from_prior(rng)
            except DomainError as error:
                logger.debug("Prior resample %d failed: %s", attempt, error)
                continue
            if not self.is_in_impossible_state():
                logger.info(
                    "Found a state of non-zero probability after %d attempt(s)", attempt
                )
                return

        raise NoFeasibleStateError(
            f"No state of non-zero probability found after {max_attempts} attempts"
        )

    def log_prob_gradient(
        self, with_respect_to: Optional[Iterable[Vertex]] = None
    ) -> dict[int, np.ndarray]:
        """Gradient of the joint log-probability of the current state.

        One differentiator is shared by every probabilistic vertex, so common
        ancestors are differentiated once.

        :param with_respect_to: Vertices to report the gradient for. Defaults to
            None, which reports every latent vertex reached.
        :type with_respect_to: Optional[Iterable[Vertex]]

        :returns: Gradient keyed by vertex id, each with the shape of its vertex.
            Requested vertices that the joint does not depend on get zeros.
        :rtype: dict[int, np.ndarray]

        :raises UnsupportedDifferentiationError: If the computation passes through
            an operator with no derivative
        """
        differentiator = Differentiator()
        gradient: dict[int, np.ndarray] = {}
        for vertex in self._probabilistic:
            for vertex_id, partial in vertex.dlog_prob(
                differentiator=differentiator
            ).items():
                gradient[vertex_id] = (
                    gradient[vertex_id] + partial if vertex_id in gradient else partial
                )

        if with_respect_to is None:
            return {key: np.asarray(value) for key, value in gradient.items()}
        return {
            vertex.id: np.asarray(gradient.get(vertex.id, np.zeros(vertex.shape)))
            for vertex in with_respect_to
        }

    def __len__(self) -> int:
        return len(self._vertices)

    def __iter__(self) -> Iterator[Vertex]:
        return iter(self._vertices)

    def __contains__(self, vertex: Vertex) -> bool:
        return vertex.id in self._vertex_by_id

    def __str__(self) -> str:
        self._partition()
        return (
            f"BayesianNetwork({len(self._vertices)} vertices: {len(self._latent)} "
            f"latent, {len(self._observed)} observed, "
            f"{len(self._vertices) - len(self._probabilistic)} deterministic)"
        )
