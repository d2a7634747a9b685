# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Custom type definitions for bayesgraph.

This module provides type aliases and unions for the components used throughout
the package. All imports are conditional on TYPE_CHECKING to avoid circular
imports while maintaining proper type hints for development and documentation
tools.
"""

from typing import TYPE_CHECKING, Union

# Everything in this file is only imported if TYPE_CHECKING is True.
if TYPE_CHECKING:

    import numpy as np
    import numpy.typing as npt

    from bayesgraph.model.components import abstract_model_component

# Scalar types
Integer = Union[int, "np.integer"]
"""Type alias for integer values.

Accepts both Python's built-in int and NumPy integer types.

:type: Union[int, np.integer]
"""

Float = Union[float, "np.floating"]
"""Type alias for floating-point values.

Accepts both Python's built-in float and NumPy floating-point types.

:type: Union[float, np.floating]
"""

# Value types
SampleType = Union[bool, int, float, "npt.NDArray"]
"""Type alias for raw values that can be held by a vertex.

:type: Union[bool, int, float, npt.NDArray]
"""

ParameterType = Union[
    "abstract_model_component.Vertex",
    bool,
    int,
    float,
    "npt.NDArray",
]
"""Type alias for anything that can parametrize a vertex.

Raw values are wrapped into :py:class:`~bayesgraph.model.components.constants.ConstantVertex`
instances when a vertex is built.

:type: Union[abstract_model_component.Vertex, bool, int, float, npt.NDArray]
"""

# Partial derivative types
PartialsType = dict[int, "npt.NDArray"]
"""Type alias for a mapping from vertex id to partial derivative array.

:type: dict[int, npt.NDArray]
"""

# Type for indexing
IndexType = Union["npt.NDArray[np.integer]", slice, int, None]
"""Type alias for array indexing operations.

:type: Union[npt.NDArray[np.integer], slice, int, None]
"""
