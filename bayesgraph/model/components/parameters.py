# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Probabilistic vertices for defining bayesgraph models.

This module provides the probabilistic vertex classes that serve as the random
variables of a bayesgraph model. Each class pairs a set of named parents with a
distribution kernel from
:py:mod:`~bayesgraph.model.components.distributions`: the current values of the
parents parametrize the kernel, which in turn samples the vertex and scores its
value.

A probabilistic vertex is either *latent* (its value is inferred) or *observed*
(its value is fixed data). Observed vertices contribute to the joint
log-probability of a network but are never resampled and never differentiated
with respect to.

The following distributions are currently supported in bayesgraph:

Continuous
^^^^^^^^^^
- :py:class:`~bayesgraph.model.components.parameters.Gaussian`
- :py:class:`~bayesgraph.model.components.parameters.Uniform`
- :py:class:`~bayesgraph.model.components.parameters.Gamma`
- :py:class:`~bayesgraph.model.components.parameters.Exponential`
- :py:class:`~bayesgraph.model.components.parameters.Beta`
- :py:class:`~bayesgraph.model.components.parameters.KDEVertex`

Discrete
^^^^^^^^
- :py:class:`~bayesgraph.model.components.parameters.Bernoulli`
- :py:class:`~bayesgraph.model.components.parameters.Binomial`
- :py:class:`~bayesgraph.model.components.parameters.Categorical`
- :py:class:`~bayesgraph.model.components.parameters.Multinomial`

Example:
    >>> from bayesgraph.model.components import parameters
    >>> mu = parameters.Gaussian(mu=0.0, sigma=1.0)
    >>> x = parameters.Gaussian(mu=mu, sigma=0.5, shape=(3,))
    >>> x.observe([0.1, 0.2, 0.3])
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

import numpy as np

from bayesgraph import utils
from bayesgraph.exceptions import ConstructionError, DomainError, ShapeMismatchError
from bayesgraph.model.autodiff.differentiator import Differentiator
from bayesgraph.model.autodiff.dual_number import DualNumber
from bayesgraph.model.components import abstract_model_component, constants
from bayesgraph.model.components.distributions import continuous, discrete
from bayesgraph.model.components.transformations import transformed_parameters

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.model.components.distributions.base import Distribution
    from bayesgraph.rng import RandomSource


def _sum_to_shape(gradient: np.ndarray, shape: tuple[int, ...]) -> np.ndarray:
    """Sum a broadcast gradient back down to ``shape``."""
    extra = gradient.ndim - len(shape)
    if extra > 0:
        gradient = gradient.sum(axis=tuple(range(extra)))
    kept_axes = tuple(
        axis
        for axis, dim in enumerate(shape)
        if dim == 1 and gradient.shape[axis] != 1
    )
    if kept_axes:
        gradient = gradient.sum(axis=kept_axes, keepdims=True)
    return np.asarray(gradient)


class ProbabilisticVertex(abstract_model_component.Vertex):
    """Base class for all probabilistic vertices in bayesgraph models.

    :param shape: Shape of the vertex. Broadcast against the shapes of the
        parameters. Defaults to ().
    :type shape: Union[tuple[custom_types.Integer, ...], custom_types.Integer]
    :param label: Optional human-readable label. Defaults to None.
    :type label: Optional[str]
    :param params: Distribution parameters, named as in the kernel's ``PARAMS``

    :raises ConstructionError: If every parameter is a constant and the parameter
        values are outside their domains

    :cvar DISTRIBUTION: Kernel class parametrized by the parents' values
    """

    KIND = abstract_model_component.VertexKind.PROBABILISTIC

    DISTRIBUTION: type["Distribution"]
    """Kernel class used to sample and score the vertex."""

    def __init__(
        self,
        *,
        shape: "tuple[custom_types.Integer, ...] | custom_types.Integer" = (),
        label: Optional[str] = None,
        **params: "custom_types.ParameterType",
    ):
        # Make sure we have the expected parameters
        if missing := set(self.DISTRIBUTION.PARAMS) - set(params):
            raise ConstructionError(
                f"Missing parameters {sorted(missing)} for {self.__class__.__name__}."
            )

        super().__init__(shape=shape, label=label, **params)

        # Vertices can be manually set as observed, so we need a flag to track this
        self._observed = False

        # Fixed parameters are validated right away
        if all(isinstance(parent, constants.ConstantVertex) for parent in self.parents):
            self.distribution()

    def distribution(
        self, parent_values: Optional[dict[str, np.ndarray]] = None
    ) -> "Distribution":
        """Build the kernel from parent values.

        :param parent_values: Values of the parents keyed by parameter name. If
            None, the current parent values are used. Defaults to None.
        :type parent_values: Optional[dict[str, np.ndarray]]

        :returns: The parametrized kernel
        :rtype: Distribution

        :raises ConstructionError: If a parameter value is outside its domain
        """
        if parent_values is None:
            parent_values = self.get_parent_values()
        return self.DISTRIBUTION(**parent_values)

    def _draw(
        self,
        level_draws: dict[str, np.ndarray],
        rng: Optional["RandomSource"],
    ) -> np.ndarray:
        """Draw from the kernel parametrized by the given parent values."""
        return self.distribution(level_draws).sample(self.shape, rng)

    def _resolve_value(self, value: Optional["custom_types.SampleType"]) -> np.ndarray:
        # Explicit values are scored as given so that the kernel can reject them
        return self.get_value() if value is None else np.asarray(value)

    def log_prob_elementwise(
        self, value: Optional["custom_types.SampleType"] = None
    ) -> np.ndarray:
        """Element-wise log-density of a value given the current parent values.

        :param value: Value to score. If None, the vertex's own value is scored.
            Defaults to None.
        :type value: Optional[custom_types.SampleType]

        :returns: Element-wise log-density. ``-inf`` marks impossible elements.
        :rtype: np.ndarray
        """
        return self.distribution().log_prob(self._resolve_value(value))

    def log_prob(self, value: Optional["custom_types.SampleType"] = None) -> float:
        """Total log-density of a value given the current parent values.

        :param value: Value to score. If None, the vertex's own value is scored.
            Defaults to None.
        :type value: Optional[custom_types.SampleType]

        :returns: Sum of the element-wise log-densities
        :rtype: float

        :raises DomainError: If a discrete value is outside the support
        """
        return float(np.sum(self.log_prob_elementwise(value)))

    def dlog_prob(
        self,
        value: Optional["custom_types.SampleType"] = None,
        differentiator: Optional[Differentiator] = None,
    ) -> dict[int, np.ndarray]:
        """Gradient of the total log-density with respect to latent vertices.

        Kernel gradients with respect to each parameter are chained through the
        dual number of the corresponding parent, summing over every element of
        the value. The gradient with respect to the value itself is included
        when the vertex is latent and continuous.

        :param value: Value to score. If None, the vertex's own value is used.
            Defaults to None.
        :type value: Optional[custom_types.SampleType]
        :param differentiator: Differentiator whose memo should be shared.
            Defaults to None, which creates a fresh one.
        :type differentiator: Optional[Differentiator]

        :returns: Gradient keyed by vertex id. Each array has the shape of the
            vertex it is taken with respect to.
        :rtype: dict[int, np.ndarray]

        :raises UnsupportedDifferentiationError: If a parent's dual number passes
            through an operator with no derivative
        """
        value = self._resolve_value(value)
        differentiator = differentiator or Differentiator()
        gradients = self.distribution().dlog_prob(value)

        result: dict[int, np.ndarray] = {}
        for name, parent in self._parents.items():
            if name not in gradients or not parent.differentiable:
                continue
            gradient = gradients[name]
            dual = differentiator.calculate_dual_number(parent)
            for vertex_id, partial in dual.broadcast_partials(gradient.shape).items():
                contribution = np.tensordot(gradient, partial, axes=gradient.ndim)
                result[vertex_id] = (
                    result[vertex_id] + contribution
                    if vertex_id in result
                    else contribution
                )

        if "x" in gradients and self.differentiable and not self._observed:
            dx = _sum_to_shape(gradients["x"], self.shape)
            result[self.id] = result[self.id] + dx if self.id in result else dx

        return {vertex_id: np.asarray(gradient) for vertex_id, gradient in result.items()}

    def calculate_dual(self, parent_duals: dict[str, "DualNumber"]) -> "DualNumber":
        """Latent continuous vertices are leaves with the identity as their partial
        derivative. Observed vertices are constants.
        """
        if self._observed or not self.differentiable:
            return DualNumber.create_constant(self.get_value())
        return DualNumber.create_with_respect_to_self(self.id, self.get_value())

    def observe(self, value: "custom_types.SampleType") -> None:
        """Fix the value of the vertex as observed data.

        :param value: The observed value
        :type value: custom_types.SampleType

        :raises ShapeMismatchError: If the value has the wrong shape
        """
        self.set_value(value)
        self._observed = True

    def observe_own_value(self) -> None:
        """Mark the current value of the vertex as observed.

        :raises ValueNotSetError: If the vertex has no value
        """
        self.get_value()
        self._observed = True

    def unobserve(self) -> None:
        """Return the vertex to latent. Its value is kept."""
        self._observed = False

    @property
    def is_observed(self) -> bool:
        """Whether the vertex holds observed data."""
        return self._observed

    def __str__(self) -> str:
        params = ", ".join(
            f"{name}={parent.label or parent.__class__.__name__}"
            for name, parent in self._parents.items()
        )
        state = "observed" if self._observed else "latent"
        return f"{self.describe()} ~ {self.__class__.__name__}({params}) [{state}]"


class ContinuousDistribution(
    ProbabilisticVertex, transformed_parameters.TransformableParameter
):
    """Base class for probabilistic vertices with continuous sample spaces.

    Values are double precision and participate in differentiation. Mathematical
    operators applied to these vertices build deterministic transformations.
    """

    DTYPE = np.float64
    DIFFERENTIABLE = True


class DiscreteDistribution(
    ProbabilisticVertex, transformed_parameters.TransformableParameter
):
    """Base class for probabilistic vertices with discrete sample spaces.

    Discrete vertices never carry a dual number. Gradients of their
    log-densities with respect to continuous parents are still available. Operators
    on discrete vertices build integer or boolean transformations.
    """

    DTYPE = np.int64

    def _as_value(self, value: "custom_types.SampleType") -> np.ndarray:
        if np.issubdtype(self.dtype, np.integer) and not utils.is_integer_valued(
            np.asarray(value)
        ):
            raise DomainError(
                f"Values of {self.describe()} must be integers, got {value!r}"
            )
        return super()._as_value(value)


class Gaussian(ContinuousDistribution):
    r"""Gaussian (normal) distribution vertex.

    :param mu: Mean
    :type mu: custom_types.ParameterType
    :param sigma: Standard deviation
    :type sigma: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Mathematical Definition:
        .. math::
            P(x | \mu, \sigma) = \frac{1}{\sigma\sqrt{2\pi}} *
            \exp\left(-\frac{((x-\mu)/\sigma)^2}{2}\right)

    Properties:

    .. list-table::

        * - Support
          - :math:`(-\infty, \infty)`
        * - Mean
          - :math:`\mu`
        * - Variance
          - :math:`\sigma^2`
    """

    DISTRIBUTION = continuous.Gaussian

    def __init__(
        self,
        *,
        mu: "custom_types.ParameterType",
        sigma: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(mu=mu, sigma=sigma, **kwargs)


class Uniform(ContinuousDistribution):
    r"""Uniform distribution vertex over :math:`[x_{min}, x_{max})`.

    :param x_min: Inclusive lower bound
    :type x_min: custom_types.ParameterType
    :param x_max: Exclusive upper bound
    :type x_max: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    The gradient of the log-density with respect to the value is zero inside the
    support, :math:`+\infty` below it and :math:`-\infty` at or above the upper
    bound, pointing back into the support.
    """

    DISTRIBUTION = continuous.Uniform

    def __init__(
        self,
        *,
        x_min: "custom_types.ParameterType",
        x_max: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(x_min=x_min, x_max=x_max, **kwargs)


class Gamma(ContinuousDistribution):
    r"""Shifted gamma distribution vertex.

    :param location: Lower bound of the support
    :type location: custom_types.ParameterType
    :param scale: Scale parameter. Must be positive.
    :type scale: custom_types.ParameterType
    :param alpha: Shape parameter. Must be positive.
    :type alpha: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Mathematical Definition:
        .. math::
            P(x | l, \theta, \alpha) = \frac{(x - l)^{\alpha - 1}
            e^{-(x - l)/\theta}}{\Gamma(\alpha)\theta^\alpha} \text{ for } x > l

    Properties:

    .. list-table::

        * - Support
          - :math:`(l, \infty)`
        * - Mean
          - :math:`l + \alpha\theta`
        * - Variance
          - :math:`\alpha\theta^2`

    Samples use the exponential sampler for :math:`\alpha = 1`, Cheng's rejection
    sampler for :math:`\alpha > 1` and the Ahrens-Dieter sampler otherwise.
    """

    DISTRIBUTION = continuous.Gamma

    def __init__(
        self,
        *,
        location: "custom_types.ParameterType",
        scale: "custom_types.ParameterType",
        alpha: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(location=location, scale=scale, alpha=alpha, **kwargs)


class Exponential(ContinuousDistribution):
    r"""Shifted exponential distribution vertex.

    :param location: Lower bound of the support
    :type location: custom_types.ParameterType
    :param scale: Scale (mean excess over the location). Must be positive.
    :type scale: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Mathematical Definition:
        .. math::
            P(x | l, \theta) = \frac{1}{\theta} e^{-(x - l)/\theta}
            \text{ for } x \geq l
    """

    DISTRIBUTION = continuous.Exponential

    def __init__(
        self,
        *,
        location: "custom_types.ParameterType",
        scale: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(location=location, scale=scale, **kwargs)


class Beta(ContinuousDistribution):
    r"""Beta distribution vertex.

    :param alpha: First shape parameter. Must be positive.
    :type alpha: custom_types.ParameterType
    :param beta: Second shape parameter. Must be positive.
    :type beta: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Properties:

    .. list-table::

        * - Support
          - :math:`(0, 1)`
        * - Mean
          - :math:`\frac{\alpha}{\alpha + \beta}`
    """

    DISTRIBUTION = continuous.Beta

    def __init__(
        self,
        *,
        alpha: "custom_types.ParameterType",
        beta: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(alpha=alpha, beta=beta, **kwargs)


class KDEVertex(ContinuousDistribution):
    """Scalar vertex distributed as a Gaussian kernel density estimate.

    The samples and bandwidth are fixed properties of the vertex rather than
    parents, so the vertex has no parents. Build one from a trace with
    :py:meth:`bayesgraph.model.kde.GaussianKDE.approximate`.

    :param samples: One-dimensional array of scalar samples
    :type samples: npt.NDArray
    :param bandwidth: Kernel standard deviation. Defaults to None, which uses
        Scott's rule.
    :type bandwidth: Optional[custom_types.Float]
    :param label: Optional human-readable label. Defaults to None.
    :type label: Optional[str]

    :raises ConstructionError: If the samples are not a non-empty one-dimensional
        array or the bandwidth is not positive
    """

    DISTRIBUTION = continuous.KernelDensity

    def __init__(
        self,
        samples: "custom_types.SampleType",
        bandwidth: Optional["custom_types.Float"] = None,
        label: Optional[str] = None,
    ):
        self._samples = np.asarray(samples, dtype=np.float64)
        self._bandwidth = (
            continuous.KernelDensity.scott_bandwidth(self._samples)
            if bandwidth is None
            else float(bandwidth)
        )

        # Skip the parameter check in the parent: samples are not parents
        abstract_model_component.Vertex.__init__(self, shape=(), label=label)
        self._observed = False
        self.distribution()

    def distribution(
        self,
        parent_values: Optional[  # pylint: disable=unused-argument
            dict[str, np.ndarray]
        ] = None,
    ) -> continuous.KernelDensity:
        return continuous.KernelDensity(
            samples=self._samples, bandwidth=self._bandwidth
        )

    def pdf(self, value: Optional["custom_types.SampleType"] = None) -> np.ndarray:
        """Density of a value (the vertex's own by default)."""
        return np.asarray(self.distribution().pdf(self._resolve_value(value)))

    def resample(self, n: "custom_types.Integer", rng: "RandomSource") -> None:
        """Replace the samples of the estimate with ``n`` draws from itself.

        The bandwidth is kept.

        :param n: Number of new samples
        :type n: custom_types.Integer
        :param rng: Random source
        :type rng: RandomSource
        """
        self._samples = self.distribution().sample((int(n),), rng)

    @property
    def samples(self) -> np.ndarray:
        """Copy of the samples underlying the estimate."""
        return self._samples.copy()

    @property
    def bandwidth(self) -> float:
        """Standard deviation of every kernel."""
        return self._bandwidth


class Bernoulli(DiscreteDistribution):
    r"""Bernoulli distribution vertex with boolean values.

    :param p: Probability of ``True``
    :type p: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Mathematical Definition:
        .. math::
            P(X = x | p) = p^x (1 - p)^{1 - x} \text{ for } x \in \{0, 1\}
    """

    DISTRIBUTION = discrete.Bernoulli
    DTYPE = np.bool_

    def __init__(self, *, p: "custom_types.ParameterType", **kwargs):
        super().__init__(p=p, **kwargs)


class Binomial(DiscreteDistribution):
    r"""Binomial distribution vertex.

    :param p: Success probability
    :type p: custom_types.ParameterType
    :param n: Number of trials
    :type n: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    Mathematical Definition:
        .. math::
            P(X = k | n, p) = \binom{n}{k} p^k (1 - p)^{n - k}
            \text{ for } k = 0, 1, ..., n

    Properties:

        .. list-table::

              * - Support
                - :math:`\{0, 1, 2, ..., n\}`
              * - Mean
                - :math:`n p`
              * - Variance
                - :math:`n p (1 - p)`
    """

    DISTRIBUTION = discrete.Binomial

    def __init__(
        self,
        *,
        p: "custom_types.ParameterType",
        n: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(p=p, n=n, **kwargs)


class Categorical(DiscreteDistribution):
    """Categorical distribution vertex over ``range(k)``.

    :param p: Category probabilities on the last axis. The leading axes
        broadcast with the vertex shape.
    :type p: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class
    """

    DISTRIBUTION = discrete.Categorical

    def __init__(self, *, p: "custom_types.ParameterType", **kwargs):
        super().__init__(p=p, **kwargs)

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        p_shape = parent_shapes["p"]
        if len(p_shape) == 0:
            raise ConstructionError("p of Categorical must have a category axis")

        # Values drop the category axis
        return super()._infer_shape({"p": p_shape[:-1]})


class Multinomial(DiscreteDistribution):
    r"""Multinomial distribution vertex.

    :param n: Number of trials of every group
    :type n: custom_types.ParameterType
    :param p: Category probabilities on the last axis
    :type p: custom_types.ParameterType
    :param kwargs: Additional keyword arguments passed to parent class

    The vertex has shape ``group_shape + (k,)``, where ``group_shape`` broadcasts
    the shape of ``n`` with the leading axes of ``p``.

    Mathematical Definition:

        .. math::
            P(X = x | n, p) = \frac{n!}{\prod_{i=1}^k x_i!} \prod_{i=1}^k
            p_i^{x_i} \text{ for } x_i \geq 0, \sum_{i=1}^k x_i = n

    Properties:
        .. list-table::

            * - Support
              - :math:`\{x : \sum x_i = n, x_i \geq 0\}`
            * - Mean
              - :math:`n p_i`
            * - Covariance
              - :math:`-n p_i p_j`
    """

    DISTRIBUTION = discrete.Multinomial

    def __init__(
        self,
        *,
        n: "custom_types.ParameterType",
        p: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(n=n, p=p, **kwargs)

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        p_shape = parent_shapes["p"]
        if len(p_shape) == 0:
            raise ConstructionError("p of Multinomial must have a category axis")
        n_categories = p_shape[-1]

        requested = self._shape
        if requested and requested[-1] != n_categories:
            raise ShapeMismatchError(
                f"Multinomial shape {requested} must end in {n_categories} categories"
            )
        groups = utils.broadcast_shapes(
            requested[:-1],
            parent_shapes["n"],
            p_shape[:-1],
            context="while initializing instance of Multinomial",
        )
        if requested and groups != requested[:-1]:
            raise ShapeMismatchError(
                "Provided shape does not match broadcasted shapes of parents while "
                f"initializing instance of Multinomial. {requested} != "
                f"{groups + (n_categories,)}"
            )
        return groups + (n_categories,)
