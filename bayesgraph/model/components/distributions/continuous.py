# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Continuous distribution kernels.

Every kernel here returns element-wise log-densities that are ``-inf`` outside the
support and element-wise gradients with respect to each parameter and to ``x``.
Gradients outside the support are reported as zero, except for the uniform
distribution whose ``x`` gradient points back into the support.

Sampling is fully vectorized. The rejection samplers used by the gamma family
redraw only the elements rejected so far on every round and give up with a
:py:class:`~bayesgraph.exceptions.NumericError` after
:py:data:`~bayesgraph.defaults.DEFAULT_MAX_REJECTION_ROUNDS` rounds.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

import numpy as np
import scipy.special as sp

from bayesgraph import defaults
from bayesgraph.exceptions import ConstructionError, NumericError
from bayesgraph.model.components.distributions.base import as_float, Distribution

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.rng import RandomSource

logger = logging.getLogger(__name__)

_LOG_SQRT_2PI = 0.5 * np.log(2 * np.pi)

# Acceptance constants of Cheng's gamma sampler
_CHENG_T = 4.5
_CHENG_D = 1 + np.log(_CHENG_T)


def _support_mask(mask, *arrays) -> list[np.ndarray]:
    """Zero each array outside the mask, broadcasting everything together.

    Scalars are accepted alongside arrays since 0-d arithmetic yields NumPy scalars.
    """
    return [
        np.asarray(np.where(mask, array, 0.0))
        for array in np.broadcast_arrays(mask, *arrays)[1:]
    ]


def sample_standard_exponential(
    shape: tuple[int, ...], rng: "RandomSource"
) -> np.ndarray:
    """Draw unit-rate exponential values by inverting the CDF: ``-ln(u)``."""
    u = rng.next_double(shape)
    with np.errstate(divide="ignore"):
        return np.asarray(-np.log(u))


def _cheng_gamma(
    alpha: np.ndarray, rng: "RandomSource", max_rounds: int
) -> np.ndarray:
    """Standard gamma draws for a flat array of shapes ``alpha > 1``.

    Uses Cheng's rejection algorithm with ``A = 1 / sqrt(2 alpha - 1)``,
    ``B = alpha - ln 4`` and ``Q = alpha + 1 / A``.
    """
    a = 1.0 / np.sqrt(2.0 * alpha - 1.0)
    b = alpha - np.log(4.0)
    q = alpha + 1.0 / a

    out = np.empty(alpha.shape)
    pending = np.arange(alpha.size)
    for _ in range(max_rounds):
        if pending.size == 0:
            return out

        p1 = rng.next_double((pending.size,))
        p2 = rng.next_double((pending.size,))
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            v = a[pending] * np.log(p1 / (1.0 - p1))
            y = alpha[pending] * np.exp(v)
            z = p1 * p1 * p2
            w = b[pending] + q[pending] * v - y
            accept = ((w + _CHENG_D - _CHENG_T * z >= 0) | (w >= np.log(z))) & (
                p1 > 0
            ) & np.isfinite(y)

        out[pending[accept]] = y[accept]
        pending = pending[~accept]

    if pending.size == 0:
        return out
    raise NumericError(
        f"Gamma rejection sampler did not accept {pending.size} draws within "
        f"{max_rounds} rounds"
    )


def _ahrens_dieter_gamma(
    alpha: np.ndarray, rng: "RandomSource", max_rounds: int
) -> np.ndarray:
    """Standard gamma draws for a flat array of shapes ``alpha < 1``.

    Uses the two-branch Ahrens-Dieter rejection scheme keyed on ``c = 1 + alpha / e``.
    """
    c = 1.0 + alpha / np.e

    out = np.empty(alpha.shape)
    pending = np.arange(alpha.size)
    for _ in range(max_rounds):
        if pending.size == 0:
            return out

        al = alpha[pending]
        cc = c[pending]
        p = cc * rng.next_double((pending.size,))
        u = rng.next_double((pending.size,))
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            upper = p > 1.0
            y = np.where(upper, -np.log((cc - p) / al), p ** (1.0 / al))
            threshold = np.where(upper, y ** (al - 1.0), np.exp(-y))
            accept = (u <= threshold) & (y > 0) & np.isfinite(y)

        out[pending[accept]] = y[accept]
        pending = pending[~accept]

    if pending.size == 0:
        return out
    raise NumericError(
        f"Gamma rejection sampler did not accept {pending.size} draws within "
        f"{max_rounds} rounds"
    )


def sample_standard_gamma(
    alpha: np.ndarray,
    rng: "RandomSource",
    max_rounds: int = defaults.DEFAULT_MAX_REJECTION_ROUNDS,
) -> np.ndarray:
    """Draw unit-scale gamma values for every element of ``alpha``.

    The regime is chosen per element: ``alpha == 1`` uses the exponential
    sampler, ``alpha > 1`` Cheng's algorithm and ``alpha < 1`` the Ahrens-Dieter
    scheme.

    :param alpha: Shape parameters. The output has the same shape.
    :type alpha: np.ndarray
    :param rng: Random source
    :type rng: RandomSource
    :param max_rounds: Maximum number of rejection rounds. Defaults to
        :py:data:`~bayesgraph.defaults.DEFAULT_MAX_REJECTION_ROUNDS`.
    :type max_rounds: int

    :returns: Gamma draws
    :rtype: np.ndarray

    :raises NumericError: If the rejection samplers exhaust ``max_rounds``
    """
    flat = np.asarray(alpha, dtype=np.float64).ravel()
    out = np.empty(flat.shape)

    exponential = flat == 1.0
    large = flat > 1.0
    small = flat < 1.0
    if np.any(exponential):
        out[exponential] = sample_standard_exponential(
            (int(exponential.sum()),), rng
        )
    if np.any(large):
        out[large] = _cheng_gamma(flat[large], rng, max_rounds)
    if np.any(small):
        out[small] = _ahrens_dieter_gamma(flat[small], rng, max_rounds)

    return out.reshape(np.shape(alpha))


class Gaussian(Distribution):
    """Gaussian kernel with mean ``mu`` and standard deviation ``sigma``."""

    PARAMS = ("mu", "sigma")
    POSITIVE_PARAMS = {"sigma"}

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        mu = self.broadcast_param("mu", shape)
        sigma = self.broadcast_param("sigma", shape)
        return mu + sigma * rng.next_gaussian(shape)

    def _log_prob(self, x: "custom_types.SampleType"):
        x = as_float(x)
        z = (x - self.mu) / self.sigma
        return np.asarray(-0.5 * z**2 - np.log(self.sigma) - _LOG_SQRT_2PI)

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, mu, sigma = np.broadcast_arrays(as_float(x), self.mu, self.sigma)
        diff = x - mu
        variance = sigma**2
        return {
            "mu": diff / variance,
            "sigma": (diff**2 - variance) / (variance * sigma),
            "x": -diff / variance,
        }


class Uniform(Distribution):
    """Uniform kernel over ``[x_min, x_max)``.

    The gradient with respect to ``x`` is zero inside the support, ``+inf`` below
    it and ``-inf`` at or above the upper bound.
    """

    PARAMS = ("x_min", "x_max")

    def _validate(self) -> None:
        if np.any(self.x_max <= self.x_min):
            raise ConstructionError("x_max of Uniform must be greater than x_min")

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        x_min = self.broadcast_param("x_min", shape)
        x_max = self.broadcast_param("x_max", shape)
        return x_min + (x_max - x_min) * rng.next_double(shape)

    def _in_support(self, x: np.ndarray):
        return (x >= self.x_min) & (x < self.x_max)

    def _log_prob(self, x: "custom_types.SampleType"):
        x = as_float(x)
        density = -np.log(self.x_max - self.x_min)
        return np.asarray(np.where(self._in_support(x), density, -np.inf))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, x_min, x_max = np.broadcast_arrays(as_float(x), self.x_min, self.x_max)
        inside = self._in_support(x)
        width = x_max - x_min
        dx = np.zeros(x.shape)
        dx[x < x_min] = np.inf
        dx[x >= x_max] = -np.inf
        return {
            "x_min": np.where(inside, 1.0 / width, 0.0),
            "x_max": np.where(inside, -1.0 / width, 0.0),
            "x": dx,
        }


class Exponential(Distribution):
    """Exponential kernel shifted by ``location`` with the given ``scale``.

    Samples are drawn by inverting the CDF: ``location - scale * ln(u)``.
    """

    PARAMS = ("location", "scale")
    POSITIVE_PARAMS = {"scale"}

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        location = self.broadcast_param("location", shape)
        scale = self.broadcast_param("scale", shape)
        return location + scale * sample_standard_exponential(shape, rng)

    def _log_prob(self, x: "custom_types.SampleType"):
        x = as_float(x)
        with np.errstate(invalid="ignore"):
            log_density = (self.location - x) / self.scale - np.log(self.scale)
        return np.asarray(np.where(x >= self.location, log_density, -np.inf))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, location, scale = np.broadcast_arrays(
            as_float(x), self.location, self.scale
        )
        dlocation = 1.0 / scale
        dscale = (x - location - scale) / scale**2
        dx = -1.0 / scale
        return dict(
            zip(
                ("location", "scale", "x"),
                _support_mask(x >= location, dlocation, dscale, dx),
            )
        )


class Gamma(Distribution):
    """Gamma kernel with ``location``, ``scale`` and shape ``alpha``.

    The density is supported on ``x > location``.
    """

    PARAMS = ("location", "scale", "alpha")
    POSITIVE_PARAMS = {"scale", "alpha"}
    MAX_REJECTION_ROUNDS: int = defaults.DEFAULT_MAX_REJECTION_ROUNDS

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        location = self.broadcast_param("location", shape)
        scale = self.broadcast_param("scale", shape)
        alpha = self.broadcast_param("alpha", shape)
        return location + scale * sample_standard_gamma(
            alpha, rng, self.MAX_REJECTION_ROUNDS
        )

    def _log_prob(self, x: "custom_types.SampleType"):
        x = as_float(x)
        location, scale, alpha = self.location, self.scale, self.alpha
        with np.errstate(divide="ignore", invalid="ignore"):
            log_density = (
                (location - x) / scale
                - alpha * np.log(scale)
                + (alpha - 1.0) * np.log(x - location)
                - sp.gammaln(alpha)
            )
        return np.asarray(np.where(x > location, log_density, -np.inf))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, location, scale, alpha = np.broadcast_arrays(
            as_float(x), self.location, self.scale, self.alpha
        )
        inside = x > location
        with np.errstate(divide="ignore", invalid="ignore"):
            dlocation = (alpha - 1.0) / (location - x) + 1.0 / scale
            dscale = -(scale * alpha + location - x) / scale**2
            dalpha = np.log(x - location) - np.log(scale) - sp.digamma(alpha)
            dx = (alpha - 1.0) / (x - location) - 1.0 / scale
        return dict(
            zip(
                ("location", "scale", "alpha", "x"),
                _support_mask(inside, dlocation, dscale, dalpha, dx),
            )
        )


class Beta(Distribution):
    """Beta kernel on ``(0, 1)``.

    Samples are drawn as ``X / (X + Y)`` with ``X ~ Gamma(alpha)`` and
    ``Y ~ Gamma(beta)``.
    """

    PARAMS = ("alpha", "beta")
    POSITIVE_PARAMS = {"alpha", "beta"}

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        x = sample_standard_gamma(self.broadcast_param("alpha", shape), rng)
        y = sample_standard_gamma(self.broadcast_param("beta", shape), rng)
        return x / (x + y)

    def _log_prob(self, x: "custom_types.SampleType"):
        x = as_float(x)
        alpha, beta = self.alpha, self.beta
        with np.errstate(divide="ignore", invalid="ignore"):
            log_density = (
                (alpha - 1.0) * np.log(x)
                + (beta - 1.0) * np.log1p(-x)
                - sp.betaln(alpha, beta)
            )
        return np.asarray(np.where((x > 0) & (x < 1), log_density, -np.inf))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        x, alpha, beta = np.broadcast_arrays(as_float(x), self.alpha, self.beta)
        inside = (x > 0) & (x < 1)
        with np.errstate(divide="ignore", invalid="ignore"):
            digamma_total = sp.digamma(alpha + beta)
            dalpha = np.log(x) - sp.digamma(alpha) + digamma_total
            dbeta = np.log1p(-x) - sp.digamma(beta) + digamma_total
            dx = (alpha - 1.0) / x - (beta - 1.0) / (1.0 - x)
        return dict(
            zip(("alpha", "beta", "x"), _support_mask(inside, dalpha, dbeta, dx))
        )


class KernelDensity(Distribution):
    """Gaussian kernel density estimate over scalar ``samples``.

    The density is the average of one Gaussian kernel of standard deviation
    ``bandwidth`` centred on every sample, each weighted ``1 / N``.
    """

    PARAMS = ("samples", "bandwidth")
    POSITIVE_PARAMS = {"bandwidth"}

    def _validate(self) -> None:
        if self.samples.ndim != 1 or self.samples.size == 0:
            raise ConstructionError(
                "samples of KernelDensity must be a non-empty one-dimensional array"
            )
        if self.bandwidth.ndim != 0:
            raise ConstructionError("bandwidth of KernelDensity must be a scalar")

    def _get_batch_shape(self) -> tuple[int, ...]:
        return ()

    @staticmethod
    def scott_bandwidth(samples: np.ndarray) -> float:
        """Scott's rule: ``std * N ** (-1 / 5)``."""
        samples = np.asarray(samples, dtype=np.float64)
        spread = float(np.std(samples, ddof=1)) if samples.size > 1 else 0.0
        if spread == 0.0:
            spread = 1.0
        return spread * samples.size ** (-1.0 / 5.0)

    def _standardized(self, x: np.ndarray) -> np.ndarray:
        return (x[..., np.newaxis] - self.samples) / self.bandwidth

    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        centres = self.samples[rng.next_int(self.samples.size, shape)]
        return centres + self.bandwidth * rng.next_gaussian(shape)

    def _log_prob(self, x: "custom_types.SampleType"):
        z = self._standardized(as_float(x))
        return np.asarray(
            sp.logsumexp(-0.5 * z**2, axis=-1)
            - np.log(self.samples.size)
            - np.log(self.bandwidth)
            - _LOG_SQRT_2PI
        )

    def pdf(self, x: "custom_types.SampleType") -> np.ndarray:
        """Density of ``x``."""
        return np.asarray(np.exp(self.log_prob(x)))

    def _dlog_prob(self, x: "custom_types.SampleType"):
        z = self._standardized(as_float(x))
        weights = sp.softmax(-0.5 * z**2, axis=-1)
        return {"x": np.asarray(np.sum(weights * -z, axis=-1) / self.bandwidth)}
