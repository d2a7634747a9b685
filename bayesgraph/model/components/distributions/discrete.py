# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Discrete distribution kernels.

Sampling of the categorical family (categorical, binomial, multinomial) reduces
to categorical draws against cumulative probabilities: a uniform ``u`` selects the
number of cumulative probabilities that are ``<= u``. A uniform of zero therefore
lands on the first category with non-zero probability, and the last category with
non-zero probability absorbs any round-off at the top of the cumulative sum.

Categories always live on the last axis of a probability array. Unlike the
continuous kernels, the density calls validate their input: counts that are
negative, non-integer or that do not sum to the number of trials raise a
:py:class:`~bayesgraph.exceptions.DomainError` instead of silently returning a
density of zero.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import scipy.special as sp

from bayesgraph import utils
from bayesgraph.exceptions import ConstructionError, DomainError, ShapeMismatchError
from bayesgraph.model.components.distributions.base import as_float, Distribution

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.rng import RandomSource


def categorical_indices(probabilities: np.ndarray, u: np.ndarray) -> np.ndarray:
    """Map uniforms to category indices through cumulative probabilities.

    :param probabilities: Probabilities with categories on the last axis. The
        leading axes must broadcast with ``u``.
    :type probabilities: np.ndarray
    :param u: Uniform draws in [0, 1)
    :type u: np.ndarray

    :returns: Category index of every uniform draw
    :rtype: np.ndarray
    """
    cumulative = np.cumsum(probabilities, axis=-1)
    indices = np.sum(u[..., np.newaxis] >= cumulative, axis=-1)

    # Clip to the last category with non-zero probability
    n_categories = probabilities.shape[-1]
    last_nonzero = n_categories - 1 - np.argmax(probabilities[..., ::-1] > 0, axis=-1)
    return np.asarray(np.minimum(indices, last_nonzero), dtype=np.int64)


def _check_counts(x: "custom_types.SampleType", name: str) -> np.ndarray:
    """Validate that ``x`` holds non-negative integers and return it as int64."""
    x = np.asarray(x)
    if not utils.is_integer_valued(x) or np.any(x < 0):
        raise DomainError(f"{name} must hold non-negative integers")
    return x.astype(np.int64)


class Bernoulli(Distribution):
    """Bernoulli kernel with event probability ``p``.

    A draw is ``u < p`` with ``p`` clamped to [0, 1]. The log-density is a masked
    blend of ``ln(p)`` and ``ln(1 - p)``.
    """

    PARAMS = ("p",)
    PROBABILITY_PARAMS = {"p"}
    CONTINUOUS = False

    @property
    def _clamped_p(self) -> np.ndarray:
        return np.asarray(np.clip(self.p, 0.0, 1.0))

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        p = np.broadcast_to(self._clamped_p, shape)
        return rng.next_double(shape) < p

    def _log_prob(self, x: "custom_types.SampleType"):
        x = np.asarray(x, dtype=bool)
        p = self._clamped_p
        with np.errstate(divide="ignore"):
            return np.log(np.where(x, p, 1.0 - p))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, p = np.broadcast_arrays(np.asarray(x, dtype=bool), self._clamped_p)
        with np.errstate(divide="ignore"):
            return {"p": np.where(x, 1.0 / p, -1.0 / (1.0 - p))}


class Binomial(Distribution):
    """Binomial kernel: number of successes in ``n`` trials of probability ``p``."""

    PARAMS = ("p", "n")
    PROBABILITY_PARAMS = {"p"}
    COUNT_PARAMS = {"n"}
    CONTINUOUS = False

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        p = self.broadcast_param("p", shape)
        n = self.broadcast_param("n", shape)
        max_n = int(n.max()) if n.size else 0

        # One uniform per trial, masked to the number of trials of each element
        u = rng.next_double(shape + (max_n,))
        in_trial = np.arange(max_n) < n[..., np.newaxis]
        return np.sum((u < p[..., np.newaxis]) & in_trial, axis=-1).astype(np.int64)

    def _checked(self, x: "custom_types.SampleType") -> np.ndarray:
        k = _check_counts(x, "Binomial value")
        if np.any(k > self.n):
            raise DomainError("Binomial value cannot exceed the number of trials")
        return k

    def _log_prob(self, x: "custom_types.SampleType"):
        k = self._checked(x)
        n, p = self.n, self.p
        with np.errstate(divide="ignore"):
            return (
                sp.gammaln(n + 1)
                - sp.gammaln(k + 1)
                - sp.gammaln(n - k + 1)
                + sp.xlogy(k, p)
                + sp.xlogy(n - k, 1.0 - p)
            )

    def _dlog_prob(self, x: "custom_types.SampleType"):
        k, n, p = np.broadcast_arrays(self._checked(x), self.n, self.p)
        failures = n - k
        with np.errstate(divide="ignore", invalid="ignore"):
            successes_term = np.where(k > 0, k / p, 0.0)
            failures_term = np.where(failures > 0, failures / (1.0 - p), 0.0)
        return {"p": successes_term - failures_term}


class Categorical(Distribution):
    """Categorical kernel over ``range(k)`` with probabilities ``p``.

    ``p`` holds the categories on its last axis. Values are integer category
    indices.
    """

    PARAMS = ("p",)
    SIMPLEX_PARAMS = {"p"}
    CONTINUOUS = False

    def _get_batch_shape(self) -> tuple[int, ...]:
        return tuple(self.p.shape[:-1])

    @property
    def n_categories(self) -> int:
        return int(self.p.shape[-1])

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        p = self.broadcast_param("p", shape + (self.n_categories,))
        return categorical_indices(p, rng.next_double(shape))

    def _checked(self, x: "custom_types.SampleType") -> np.ndarray:
        x = _check_counts(x, "Categorical value")
        if np.any(x >= self.n_categories):
            raise DomainError(
                f"Categorical value must be smaller than {self.n_categories}"
            )
        return x

    def _log_prob(self, x: "custom_types.SampleType"):
        x = self._checked(x)
        shape = utils.broadcast_shapes(x.shape, self.batch_shape)
        p = np.broadcast_to(self.p, shape + (self.n_categories,))
        chosen = np.take_along_axis(
            p, np.broadcast_to(x, shape)[..., np.newaxis], axis=-1
        )[..., 0]
        with np.errstate(divide="ignore"):
            return np.log(chosen)

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x = self._checked(x)
        shape = utils.broadcast_shapes(x.shape, self.batch_shape)
        p = np.broadcast_to(self.p, shape + (self.n_categories,))
        one_hot = np.broadcast_to(x, shape)[..., np.newaxis] == np.arange(
            self.n_categories
        )
        with np.errstate(divide="ignore"):
            return {"p": np.where(one_hot, 1.0 / p, 0.0)}


class Multinomial(Distribution):
    """Multinomial kernel: counts of ``n`` trials spread over ``k`` categories.

    ``p`` holds the categories on its last axis. ``n`` must broadcast with the
    leading (group) axes of ``p``. Samples and values have shape
    ``group_shape + (k,)``.
    """

    PARAMS = ("n", "p")
    SIMPLEX_PARAMS = {"p"}
    COUNT_PARAMS = {"n"}
    CONTINUOUS = False

    def _get_batch_shape(self) -> tuple[int, ...]:
        try:
            return utils.broadcast_shapes(self.n.shape, self.p.shape[:-1])
        except ShapeMismatchError as error:
            raise ConstructionError(
                f"n of shape {self.n.shape} does not match the groups of p of shape "
                f"{self.p.shape}"
            ) from error

    @property
    def n_categories(self) -> int:
        return int(self.p.shape[-1])

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        if len(shape) == 0 or shape[-1] != self.n_categories:
            raise ShapeMismatchError(
                f"Multinomial samples must end in {self.n_categories} categories, "
                f"got shape {shape}"
            )
        groups = shape[:-1]
        n = self.broadcast_param("n", groups)
        p = self.broadcast_param("p", shape)
        max_n = int(n.max()) if n.size else 0

        # One categorical draw per trial
        u = rng.next_double(groups + (max_n,))
        indices = categorical_indices(p[..., np.newaxis, :], u)
        in_trial = np.arange(max_n) < n[..., np.newaxis]
        hits = (indices[..., np.newaxis] == np.arange(self.n_categories)) & in_trial[
            ..., np.newaxis
        ]
        return np.sum(hits, axis=-2).astype(np.int64)

    def _checked(self, x: "custom_types.SampleType") -> np.ndarray:
        x = np.asarray(x)
        if x.ndim == 0 or x.shape[-1] != self.n_categories:
            raise ShapeMismatchError(
                f"Multinomial values must have {self.n_categories} categories on "
                f"the last axis, got shape {x.shape}"
            )
        x = _check_counts(x, "Multinomial value")
        if np.any(x.sum(axis=-1) != self.n):
            raise DomainError("Multinomial counts must sum to the number of trials")
        return x

    def _log_prob(self, x: "custom_types.SampleType"):
        x = self._checked(x)
        with np.errstate(divide="ignore"):
            return (
                sp.gammaln(self.n + 1)
                - np.sum(sp.gammaln(x + 1), axis=-1)
                + np.sum(sp.xlogy(x, self.p), axis=-1)
            )

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, p = np.broadcast_arrays(as_float(self._checked(x)), self.p)
        with np.errstate(divide="ignore", invalid="ignore"):
            return {"p": np.where(x > 0, x / p, 0.0)}
