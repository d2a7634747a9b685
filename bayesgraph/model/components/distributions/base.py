# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Base class for distribution kernels.

A kernel is an immutable bundle of parameter arrays together with the three
operations every probabilistic vertex needs:

    - ``sample(shape, rng)``: independent draws, broadcasting the parameters up
      to ``shape``
    - ``log_prob(x)``: element-wise log-density, ``-inf`` outside the support
    - ``dlog_prob(x)``: element-wise gradients of the log-density with respect to
      every parameter, plus ``"x"`` for continuous families

Parameters are validated when the kernel is built, following the same class
variable pattern used by vertices (``POSITIVE_PARAMS``, ``PROBABILITY_PARAMS``,
...). Violations raise :py:class:`~bayesgraph.exceptions.ConstructionError`
immediately.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from bayesgraph import defaults, utils
from bayesgraph.exceptions import ConstructionError, ShapeMismatchError

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.rng import RandomSource


class Distribution(ABC):
    """Abstract base class for all distribution kernels.

    :param params: Parameter values keyed by name. Every name in ``PARAMS`` must
        be given.
    :type params: custom_types.SampleType

    :cvar PARAMS: Names of the parameters, in order
    :cvar POSITIVE_PARAMS: Parameters that must be strictly positive
    :cvar PROBABILITY_PARAMS: Parameters that must lie in [0, 1]
    :cvar SIMPLEX_PARAMS: Parameters that must be simplexes over the last axis
    :cvar COUNT_PARAMS: Parameters that must be non-negative integers
    :cvar CONTINUOUS: Whether the support is continuous, in which case
        ``dlog_prob`` also returns the derivative with respect to ``x``

    :raises ConstructionError: If a parameter is outside its domain or the
        parameter shapes are not broadcast-compatible
    """

    PARAMS: tuple[str, ...] = ()
    POSITIVE_PARAMS: set[str] = set()
    PROBABILITY_PARAMS: set[str] = set()
    SIMPLEX_PARAMS: set[str] = set()
    COUNT_PARAMS: set[str] = set()
    CONTINUOUS: bool = True

    def __init__(self, **params: "custom_types.SampleType"):
        # All parameters must be given
        if missing := set(self.PARAMS) - set(params):
            raise ConstructionError(
                f"{self.__class__.__name__} is missing parameters {sorted(missing)}"
            )
        if extra := set(params) - set(self.PARAMS):
            raise ConstructionError(
                f"{self.__class__.__name__} got unexpected parameters {sorted(extra)}"
            )

        self._params: dict[str, np.ndarray] = {
            name: np.asarray(params[name], dtype=np.float64) for name in self.PARAMS
        }
        self._validate_domains()

        # Counts are held as integers once known to be whole numbers
        for name in self.COUNT_PARAMS:
            self._params[name] = self._params[name].astype(np.int64)
        self._validate()
        self._batch_shape = self._get_batch_shape()

    def _validate_domains(self) -> None:
        """Check the class-variable declared parameter domains."""
        for name, value in self._params.items():
            if np.any(np.isnan(value)):
                raise ConstructionError(f"{name} of {self.__class__.__name__} is NaN")
            if name in self.POSITIVE_PARAMS and np.any(value <= 0):
                raise ConstructionError(
                    f"{name} of {self.__class__.__name__} must be strictly positive"
                )
            if name in self.PROBABILITY_PARAMS and np.any((value < 0) | (value > 1)):
                raise ConstructionError(
                    f"{name} of {self.__class__.__name__} must lie in [0, 1]"
                )
            if name in self.SIMPLEX_PARAMS:
                if value.ndim == 0:
                    raise ConstructionError(
                        f"{name} of {self.__class__.__name__} must have a category axis"
                    )
                if np.any(value < 0) or not np.allclose(
                    value.sum(axis=-1), 1.0, atol=defaults.DEFAULT_SIMPLEX_TOLERANCE
                ):
                    raise ConstructionError(
                        f"{name} of {self.__class__.__name__} must be non-negative and "
                        "sum to 1 over the last axis"
                    )
            if name in self.COUNT_PARAMS:
                if not utils.is_integer_valued(value) or np.any(value < 0):
                    raise ConstructionError(
                        f"{name} of {self.__class__.__name__} must hold non-negative "
                        "integers"
                    )

    def _validate(self) -> None:
        """Family-specific validation. Raises ConstructionError on failure."""

    def _get_batch_shape(self) -> tuple[int, ...]:
        """Broadcast shape of all parameters."""
        try:
            return utils.broadcast_shapes(*(value.shape for value in self._params.values()))
        except ShapeMismatchError as error:
            raise ConstructionError(
                f"Parameters of {self.__class__.__name__} have incompatible shapes: "
                + ", ".join(
                    f"{name}={value.shape}" for name, value in self._params.items()
                )
            ) from error

    def broadcast_param(self, name: str, shape: tuple[int, ...]) -> np.ndarray:
        """Broadcast a parameter to a sample shape.

        :raises ShapeMismatchError: If the parameter cannot be broadcast to ``shape``
        """
        value = self._params[name]
        try:
            return np.broadcast_to(value, shape)
        except ValueError as error:
            raise ShapeMismatchError(
                f"{name} of shape {value.shape} cannot be broadcast to sample shape "
                f"{shape} in {self.__class__.__name__}"
            ) from error

    @abstractmethod
    def _sample(self, shape: tuple[int, ...], rng: "RandomSource"):
        """Family-specific sampler. See :py:meth:`sample`."""

    @abstractmethod
    def _log_prob(self, x: "custom_types.SampleType"):
        """Family-specific log-density. See :py:meth:`log_prob`."""

    @abstractmethod
    def _dlog_prob(self, x: "custom_types.SampleType"):
        """Family-specific gradients. See :py:meth:`dlog_prob`."""

    def sample(self, shape: tuple[int, ...], rng: "RandomSource") -> np.ndarray:
        """Draw independent values of the given shape.

        Parameters are broadcast up to ``shape``.

        :param shape: Shape of the sample
        :type shape: tuple[int, ...]
        :param rng: Random source
        :type rng: RandomSource

        :returns: The sample
        :rtype: np.ndarray

        :raises ShapeMismatchError: If the parameters cannot be broadcast to ``shape``
        :raises NumericError: If a rejection sampler exhausts its round cap
        """
        return np.asarray(self._sample(tuple(shape), rng))

    def log_prob(self, x: "custom_types.SampleType") -> np.ndarray:
        """Element-wise log-density of ``x``. ``-inf`` outside the support.

        :param x: Value(s) at which to evaluate the log-density
        :type x: custom_types.SampleType

        :returns: The element-wise log-density
        :rtype: np.ndarray
        """
        return np.asarray(self._log_prob(x), dtype=np.float64)

    def dlog_prob(self, x: "custom_types.SampleType") -> dict[str, np.ndarray]:
        """Element-wise gradients of the log-density of ``x``.

        :param x: Value(s) at which to evaluate the gradients
        :type x: custom_types.SampleType

        :returns: Gradient with respect to every parameter, keyed by parameter
            name, plus ``"x"`` for continuous families. Each gradient has the
            broadcast shape of ``x`` and the parameters.
        :rtype: dict[str, np.ndarray]
        """
        return {
            name: np.asarray(gradient, dtype=np.float64)
            for name, gradient in self._dlog_prob(x).items()
        }

    def __getattr__(self, name: str) -> np.ndarray:
        # Parameters are readable as attributes
        params = self.__dict__.get("_params", {})
        if name in params:
            return params[name]
        raise AttributeError(
            f"'{self.__class__.__name__}' object has no attribute '{name}'"
        )

    @property
    def params(self) -> dict[str, np.ndarray]:
        """Copy of the parameter mapping."""
        return dict(self._params)

    @property
    def batch_shape(self) -> tuple[int, ...]:
        """Broadcast shape of all parameters."""
        return self._batch_shape

    def __repr__(self) -> str:
        params = ", ".join(f"{name}={value!r}" for name, value in self._params.items())
        return f"{self.__class__.__name__}({params})"


def as_float(x: "custom_types.SampleType") -> np.ndarray:
    """Convert a value to a float array."""
    return np.asarray(x, dtype=np.float64)

