# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Constant value vertices for bayesgraph models.

This module provides the ConstantVertex class for representing fixed values in
bayesgraph models. Constants are the leaves of a model graph: fixed
hyperparameters, unmodeled data values and any other numbers that do not change
during inference. Raw Python and NumPy values passed as parameters of any vertex
are wrapped in constants automatically.

**Basic Usage:**

.. code-block:: python

    import numpy as np
    from bayesgraph.model.components.constants import ConstantVertex

    # Scalar constants
    rate = ConstantVertex(0.01)
    n_trials = ConstantVertex(100)

    # Array constants
    time_points = ConstantVertex(np.linspace(0, 10, 11))

Constants never carry a dual number: they contribute no partial derivatives, and
every derivative flowing through them is zero.
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

import numpy as np

from bayesgraph.model.components import abstract_model_component
from bayesgraph.model.components.transformations import transformed_parameters

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.rng import RandomSource


class ConstantVertex(
    abstract_model_component.Vertex, transformed_parameters.TransformableParameter
):
    """Represents a constant value in a bayesgraph model.

    :param value: The constant value to wrap. Its dtype (bool, integer or float)
        determines the dtype of the vertex.
    :type value: custom_types.SampleType
    :param label: Optional human-readable label. Defaults to None.
    :type label: Optional[str]

    Example:
        >>> constant = ConstantVertex([1.0, 2.0])
        >>> constant.shape
        (2,)
        >>> constant.get_value()
        array([1., 2.])
    """

    KIND = abstract_model_component.VertexKind.DETERMINISTIC
    DTYPE = None

    def __init__(
        self, value: "custom_types.SampleType", label: Optional[str] = None
    ):
        # Store the value as an array before initializing the base class, which
        # resolves the dtype from it
        self._constant = np.array(value)
        if np.issubdtype(self._constant.dtype, np.integer):
            self._constant = self._constant.astype(np.int64)
        elif not np.issubdtype(self._constant.dtype, np.bool_):
            self._constant = self._constant.astype(np.float64)

        super().__init__(shape=self._constant.shape, label=label)

        # Constants always hold a value
        self.set_value(self._constant)

    def _resolve_dtype(self) -> "np.dtype":
        return self._constant.dtype

    def _draw(
        self,
        level_draws: dict[str, np.ndarray],  # pylint: disable=unused-argument
        rng: Optional["RandomSource"],  # pylint: disable=unused-argument
    ) -> np.ndarray:
        """Return the current value of the constant."""
        return self._value if self._value is not None else self._constant

    def __str__(self) -> str:
        return f"{self.describe()} = {np.array2string(self.get_value(), precision=4)}"
