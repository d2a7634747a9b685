# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Explicit random number source threaded through every sampling call.

bayesgraph keeps no process-wide random state. Every function that draws random
numbers takes a :py:class:`RandomSource`, and callers control its seeding and
lifetime. Convenience entry points that accept ``rng=None`` create a fresh,
unseeded source for that call only.

Example:
    >>> from bayesgraph.rng import RandomSource
    >>> rng = RandomSource(42)
    >>> rng.next_double((2, 3)).shape
    (2, 3)
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from bayesgraph import custom_types


class RandomSource:
    """Reproducible source of uniform and standard-normal draws.

    :param seed: Seed for the underlying generator. If None, system entropy is
        used. Defaults to None.
    :type seed: Optional[custom_types.Integer]
    """

    def __init__(self, seed: Optional["custom_types.Integer"] = None):
        self._seed = seed
        self._generator = np.random.default_rng(seed)

    def next_double(
        self, shape: Optional[tuple["custom_types.Integer", ...]] = None
    ) -> "custom_types.Float | npt.NDArray[np.floating]":
        """Draw independent uniform values in [0, 1).

        :param shape: Shape of the returned array. If None, a scalar float is
            returned. Defaults to None.
        :type shape: Optional[tuple[custom_types.Integer, ...]]

        :returns: Uniform draw(s)
        :rtype: Union[float, npt.NDArray[np.floating]]
        """
        if shape is None:
            return float(self._generator.random())
        return np.asarray(self._generator.random(tuple(shape)))

    def next_gaussian(
        self, shape: Optional[tuple["custom_types.Integer", ...]] = None
    ) -> "custom_types.Float | npt.NDArray[np.floating]":
        """Draw independent standard-normal values.

        :param shape: Shape of the returned array. If None, a scalar float is
            returned. Defaults to None.
        :type shape: Optional[tuple[custom_types.Integer, ...]]

        :returns: Standard-normal draw(s)
        :rtype: Union[float, npt.NDArray[np.floating]]
        """
        if shape is None:
            return float(self._generator.standard_normal())
        return np.asarray(self._generator.standard_normal(tuple(shape)))

    def next_int(
        self,
        high: "custom_types.Integer",
        shape: Optional[tuple["custom_types.Integer", ...]] = None,
    ) -> "custom_types.Integer | npt.NDArray[np.integer]":
        """Draw integers uniformly from ``[0, high)``.

        :param high: Exclusive upper bound
        :type high: custom_types.Integer
        :param shape: Shape of the returned array. If None, a scalar int is
            returned. Defaults to None.
        :type shape: Optional[tuple[custom_types.Integer, ...]]
        """
        if shape is None:
            return int(self._generator.integers(high))
        return np.asarray(self._generator.integers(high, size=tuple(shape)))

    def choice(
        self, n: "custom_types.Integer", size: "custom_types.Integer"
    ) -> npt.NDArray[np.int64]:
        """Draw ``size`` distinct indices uniformly from ``range(n)``."""
        return self._generator.choice(n, size=size, replace=False)

    @property
    def seed(self) -> Optional["custom_types.Integer"]:
        """The seed the source was created with."""
        return self._seed

    def __repr__(self) -> str:
        return f"RandomSource(seed={self._seed})"
