# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Functional operations on bayesgraph vertices and raw arrays.

This module provides a framework for adding deterministic operations to the model
graph. Operations are built from
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
classes and handle both immediate computation on NumPy data and deferred
computation within model graphs. This module should be the access point to all
operations available in bayesgraph--users should not need to directly interact
with the underlying transformation classes.
"""

from __future__ import annotations

from bayesgraph.model.components import abstract_model_component
from bayesgraph.model.components.transformations import transformed_parameters

# pylint: disable=line-too-long


def _contains_vertex(value) -> bool:
    """Check whether a value is, or is a list/tuple holding, a vertex."""
    if isinstance(value, abstract_model_component.Vertex):
        return True
    if isinstance(value, (list, tuple)):
        return any(_contains_vertex(entry) for entry in value)
    return False


class MetaOperation(type):
    """Metaclass for dynamically creating operation classes.

    This metaclass is responsible for creating operation classes from
    :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
    classes. It validates that a ``DISTCLASS`` attribute is provided and
    appropriate, then inherits documentation from the underlying transformation
    class. In general, users will not need to interact with this metaclass
    directly.

    :raises ValueError: If ``DISTCLASS`` is not provided in class attributes
    :raises TypeError: If ``DISTCLASS`` is not a subclass of
        :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
    """

    def __new__(mcs, name, bases, attrs):
        # There must be a DISTCLASS in the class_attrs
        if "DISTCLASS" not in attrs:
            raise ValueError("DISTCLASS must be provided in class_attrs")

        # The DISTCLASS must be a subclass of TransformedParameter
        if not issubclass(
            attrs["DISTCLASS"], transformed_parameters.TransformedParameter
        ):
            raise TypeError("DISTCLASS must be a subclass of TransformedParameter")

        return super().__new__(mcs, name, bases, attrs)

    def __init__(cls, name, bases, attrs):
        super().__init__(name, bases, attrs)

        # The call method carries the docstring of the DISTCLASS
        def __call__(self, *args, **kwargs):
            return super(cls, self).__call__(*args, **kwargs)

        cls.__call__ = __call__
        cls.__call__.__doc__ = cls.DISTCLASS.__doc__


class Operation:
    """Base class for bayesgraph operations.

    The class should never be instantiated directly. Instead, use
    :py:func:`~bayesgraph.operations.build_operation` to create operation
    instances from
    :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
    classes.

    :cvar DISTCLASS: The transformation class this operation wraps.
    :type DISTCLASS: type[transformed_parameters.TransformedParameter]
    """

    DISTCLASS: type[transformed_parameters.TransformedParameter]

    def __call__(self, *args, **kwargs):
        """Apply the operation to the provided inputs.

        - If any argument is a vertex (or a list of values containing one), a new
          :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
          instance is returned for deferred evaluation.
        - If all arguments are numerical data, the result is computed immediately
          with :py:meth:`TransformedParameter.run_np_op() <bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter.run_np_op>`.
        """
        if any(_contains_vertex(arg) for arg in args) or any(
            _contains_vertex(value) for value in kwargs.values()
        ):
            return self.__class__.DISTCLASS(*args, **kwargs)

        # Otherwise, call `run_np_op` as a static method
        return self.__class__.DISTCLASS.run_np_op(None, *args, **kwargs)


def build_operation(
    distclass: type[transformed_parameters.TransformedParameter],
) -> Operation:
    """Build an operation instance from a TransformedParameter class.

    :param distclass: The transformation class to build the operation from.
    :type distclass: type[transformed_parameters.TransformedParameter]

    :returns: A new operation instance that wraps the provided class.
    :rtype: Operation

    Example:

    .. code-block:: python

       from bayesgraph.operations import build_operation
       from bayesgraph.model.components.transformations.transformed_parameters import UnaryTransformedParameter

       class Square(UnaryTransformedParameter):
           def run_np_op(self, dist1):
               return dist1**2

       square = build_operation(Square)
       y = square(parameters.Gaussian(mu=0.0, sigma=1.0))
    """
    return MetaOperation(
        distclass.__name__.lower(),
        (Operation,),
        {"DISTCLASS": distclass, "__doc__": distclass.__doc__},
    )()


# Define our operations
abs_ = build_operation(transformed_parameters.AbsParameter)
"""Absolute value operation. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.AbsParameter`.

    **Usage:**

    .. code-block:: python

      x = parameters.Gaussian(mu=0.0, sigma=1.0)
      magnitude = operations.abs_(x)

      operations.abs_(np.array([-1.0, 2.0]))  # array([1., 2.])
"""

exp = build_operation(transformed_parameters.ExpParameter)
"""Exponential operation. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.ExpParameter`.
"""

log = build_operation(transformed_parameters.LogParameter)
"""Natural logarithm operation. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.LogParameter`.
"""

sum_ = build_operation(transformed_parameters.SumParameter)
"""Sum over all axes, or over the axes given by ``axes``. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.SumParameter`.

    **Usage:**

    .. code-block:: python

      x = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3, 4))
      total = operations.sum_(x)  # scalar
      columns = operations.sum_(x, axes=0)  # shape (4,)
"""

reshape = build_operation(transformed_parameters.ReshapeParameter)
"""Reshape operation. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.ReshapeParameter`.
"""

concat = build_operation(transformed_parameters.ConcatParameter)
"""Concatenation along an existing axis. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.ConcatParameter`.

    **Usage:**

    .. code-block:: python

      a = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(2,))
      b = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3,))
      both = operations.concat([a, b], axis=0)  # shape (5,)
"""

where = build_operation(transformed_parameters.WhereParameter)
"""Element-wise selection between two values on a boolean mask. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.WhereParameter`.
"""

cast_to_float = build_operation(transformed_parameters.CastToFloatParameter)
"""Conversion of a boolean or integer value to double precision. See also,
:py:class:`~bayesgraph.model.components.transformations.transformed_parameters.CastToFloatParameter`.
"""

logical_and = build_operation(transformed_parameters.AndParameter)
"""Element-wise logical and. Equivalent to ``a & b`` on vertices."""

logical_or = build_operation(transformed_parameters.OrParameter)
"""Element-wise logical or. Equivalent to ``a | b`` on vertices."""

logical_not = build_operation(transformed_parameters.NotParameter)
"""Element-wise logical not. Equivalent to ``~a`` on vertices."""
