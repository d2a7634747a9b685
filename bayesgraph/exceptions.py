# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Custom exception classes for the bayesgraph package.

This module defines the hierarchy of exceptions raised by bayesgraph. All of them
inherit from :py:class:`BayesGraphError` so that package-specific failures can be
caught with a single except clause. Each exception also inherits from the closest
built-in exception type so that generic handlers (``except ValueError``, etc.)
continue to work.

Note that a log-probability of ``-inf`` is never signalled with an exception. It
is an ordinary, representable outcome that propagates arithmetically.
"""


class BayesGraphError(Exception):
    """Base class for all exceptions in the bayesgraph package.

    Example:
        >>> try:
        ...     network.probe_for_non_zero_probability(10, rng)
        ... except BayesGraphError as e:
        ...     print(f"bayesgraph error occurred: {e}")
    """


class DomainError(BayesGraphError, ValueError):
    """Raised when a value supplied to a public call lies outside its domain.

    Examples are multinomial counts that are negative, non-integer, or that do
    not sum to the number of trials.
    """


class ConstructionError(DomainError):
    """Raised when a distribution or vertex is built with invalid parameters.

    This is raised immediately at the construction call (e.g. a scale that is not
    strictly positive, or probabilities that do not sum to one), never deferred to
    the first time the object is used.
    """


class ShapeMismatchError(BayesGraphError, ValueError):
    """Raised when shapes are not broadcast-compatible or a value has the wrong shape."""


class UnsupportedDifferentiationError(BayesGraphError, NotImplementedError):
    """Raised when a dual number is requested through an operator with no derivative."""


class NoFeasibleStateError(BayesGraphError, RuntimeError):
    """Raised when no configuration with a finite joint log-probability is found.

    This is raised by
    :py:meth:`~bayesgraph.model.network.BayesianNetwork.probe_for_non_zero_probability`
    once its attempt budget is exhausted, and by the Metropolis-Hastings sampler
    when it is started from an impossible state.
    """


class NumericError(BayesGraphError, ArithmeticError):
    """Raised when a bounded numerical loop (e.g. rejection sampling) is exhausted."""


class ValueNotSetError(BayesGraphError, LookupError):
    """Raised when the value of a vertex is requested but is unset and not derivable."""


class VertexNotSampledError(BayesGraphError, KeyError):
    """Raised when extracting a vertex that never appears in a sample trace."""


class CyclicGraphError(BayesGraphError, ValueError):
    """Raised when the parent relation of a set of vertices contains a cycle."""
