# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

r"""Deterministic transformations of bayesgraph vertices.

This module provides the library of deterministic operators that can be applied
to model vertices. Each operator is a vertex whose value is a pure function of
the values of its parents and, when its dtype is floating point, carries a
derivative rule used by forward-mode differentiation.

Operators are usually built through Python operator overloading on vertices or
through :py:mod:`bayesgraph.operations` rather than by direct instantiation:

.. code-block:: python

    from bayesgraph import operations
    from bayesgraph.model.components import parameters

    a = parameters.Gaussian(mu=0.0, sigma=1.0, shape=(3,))
    b = parameters.Gaussian(mu=0.0, sigma=1.0)
    f = a * b + operations.sum_(a)

Arithmetic operators (``+ - * / **`` and unary ``-``) broadcast their operands
following NumPy rules. Boolean operators (``& | ~``) produce boolean vertices that
do not take part in differentiation.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Sequence, TYPE_CHECKING

import numpy as np

from bayesgraph import utils
from bayesgraph.exceptions import ShapeMismatchError
from bayesgraph.model.autodiff.dual_number import DualNumber
from bayesgraph.model.components import abstract_model_component

if TYPE_CHECKING:
    from bayesgraph import custom_types
    from bayesgraph.rng import RandomSource


class TransformableParameter:
    """Mixin class enabling mathematical operator overloading for vertices.

    Each operator creates the appropriate
    :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.TransformedParameter`
    instance. Both left and right operand positions are supported, so vertices can
    be mixed freely with Python numbers and NumPy arrays.

    The mixin supports the following Python operators:

    - Addition (``+``), subtraction (``-``)
    - Multiplication (``*``), division (``/``)
    - Exponentiation (``**``) and unary negation (``-``)
    - Logical and (``&``), or (``|``) and not (``~``)

    Example:
        >>> x = Gaussian(mu=0, sigma=1)
        >>> y = Gaussian(mu=1, sigma=0.5)
        >>> ratio = x / y
        >>> scaled = 2 * x
        >>> squared = x**2
    """

    # NumPy arrays on the left defer to the reflected operators below
    __array_ufunc__ = None

    def __add__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.AddParameter`."""
        return AddParameter(self, other)

    def __radd__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.AddParameter`."""
        return AddParameter(other, self)

    def __sub__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.SubtractParameter`."""
        return SubtractParameter(self, other)

    def __rsub__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.SubtractParameter`."""
        return SubtractParameter(other, self)

    def __mul__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.MultiplyParameter`."""
        return MultiplyParameter(self, other)

    def __rmul__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.MultiplyParameter`."""
        return MultiplyParameter(other, self)

    def __truediv__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.DivideParameter`."""
        return DivideParameter(self, other)

    def __rtruediv__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.DivideParameter`."""
        return DivideParameter(other, self)

    def __pow__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.PowerParameter`."""
        return PowerParameter(self, other)

    def __rpow__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.PowerParameter`."""
        return PowerParameter(other, self)

    def __neg__(self):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.NegateParameter`."""
        return NegateParameter(self)

    def __and__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.AndParameter`."""
        return AndParameter(self, other)

    def __rand__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.AndParameter`."""
        return AndParameter(other, self)

    def __or__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.OrParameter`."""
        return OrParameter(self, other)

    def __ror__(self, other: "custom_types.ParameterType"):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.OrParameter`."""
        return OrParameter(other, self)

    def __invert__(self):
        """See :py:class:`~bayesgraph.model.components.transformations.transformed_parameters.NotParameter`."""
        return NotParameter(self)


class TransformedParameter(abstract_model_component.Vertex, TransformableParameter):
    """Base class for deterministic vertices computed from their parents.

    Subclasses implement :py:meth:`run_np_op`, the operation on NumPy values, and
    :py:meth:`calculate_dual`, the derivative rule, when the operation has one.
    The dtype of the result is the promoted dtype of the parents unless the
    subclass fixes ``DTYPE``.

    Transformed parameters support:

    - Sampling through parent sampling and operation application
    - Derivation of unset values from the values of the parents
    - Forward-mode differentiation through :py:meth:`calculate_dual`
    - Further transformation through operator overloading
    """

    KIND = abstract_model_component.VertexKind.DETERMINISTIC
    DTYPE = None
    DIFFERENTIABLE = True

    def _draw(
        self,
        level_draws: dict[str, np.ndarray],
        rng: Optional["RandomSource"],  # pylint: disable=unused-argument
    ) -> np.ndarray:
        """Apply the operation to the given parent values."""
        return np.asarray(self.run_np_op(**level_draws))

    @abstractmethod
    def run_np_op(self, **draws):
        """Execute the operation on NumPy values.

        Can also be called with ``self=None`` to apply the operation to raw values
        directly, in which case any configuration of the operation (axes, shapes,
        keys) must be passed explicitly.

        :param draws: Input values for the operation

        :returns: Result of the operation
        :rtype: npt.NDArray
        """

    def __str__(self) -> str:
        args = ", ".join(
            f"{name}={parent.label or parent.describe()}"
            for name, parent in self._parents.items()
        )
        return f"{self.describe()} = {self.__class__.__name__}({args})"


class BinaryTransformedParameter(TransformedParameter):
    """Base class for transformations of exactly two parameters.

    :param dist1: First operand
    :type dist1: custom_types.ParameterType
    :param dist2: Second operand
    :type dist2: custom_types.ParameterType
    :param kwargs: Additional arguments passed to parent class
    """

    def __init__(
        self,
        dist1: "custom_types.ParameterType",
        dist2: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(dist1=dist1, dist2=dist2, **kwargs)

    @abstractmethod
    def run_np_op(self, dist1, dist2):  # pylint: disable=arguments-differ
        """Execute the binary operation on two inputs."""


class UnaryTransformedParameter(TransformedParameter):
    """Base class for transformations of exactly one parameter.

    :param dist1: Operand
    :type dist1: custom_types.ParameterType
    :param kwargs: Additional arguments passed to parent class
    """

    def __init__(self, dist1: "custom_types.ParameterType", **kwargs):
        super().__init__(dist1=dist1, **kwargs)

    @abstractmethod
    def run_np_op(self, dist1):  # pylint: disable=arguments-differ
        """Execute the unary operation on one input."""


# Basic arithmetic operations
class AddParameter(BinaryTransformedParameter):
    """Element-wise addition: ``result = dist1 + dist2``.

    Example:
        .. code-block:: python

            # Binary operations automatically handle broadcasting
            x = parameters.Gaussian(mu=0, sigma=1, shape=(5,))
            y = parameters.Gaussian(mu=0, sigma=1, shape=(3, 1))

            # Result has shape (3, 5) through broadcasting
            combined = x + y
    """

    def run_np_op(self, dist1, dist2):
        return np.add(dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].add(parent_duals["dist2"])


class SubtractParameter(BinaryTransformedParameter):
    """Element-wise subtraction: ``result = dist1 - dist2``."""

    def run_np_op(self, dist1, dist2):
        return np.subtract(dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].subtract(parent_duals["dist2"])


class MultiplyParameter(BinaryTransformedParameter):
    """Element-wise multiplication: ``result = dist1 * dist2``.

    The derivative follows the product rule. When both operands are the same
    vertex, its two contributions are summed.
    """

    def run_np_op(self, dist1, dist2):
        return np.multiply(dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].multiply(parent_duals["dist2"])


class DivideParameter(BinaryTransformedParameter):
    """Element-wise true division: ``result = dist1 / dist2``.

    The result is always double precision, even for integer operands.
    """

    DTYPE = np.float64

    def run_np_op(self, dist1, dist2):
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.true_divide(dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].divide(parent_duals["dist2"])


class PowerParameter(BinaryTransformedParameter):
    """Element-wise exponentiation: ``result = dist1 ** dist2``.

    The derivative with respect to the exponent, ``result * ln(dist1)``, is only
    included when the exponent varies.
    """

    def run_np_op(self, dist1, dist2):
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.power(dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].pow(parent_duals["dist2"])


class NegateParameter(UnaryTransformedParameter):
    """Unary negation: ``result = -dist1``."""

    def run_np_op(self, dist1):
        return np.negative(dist1)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].negate()


class AbsParameter(UnaryTransformedParameter):
    """Absolute value: ``result = |dist1|``. The derivative at zero is zero."""

    def run_np_op(self, dist1):
        return np.abs(dist1)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].abs()


class LogParameter(UnaryTransformedParameter):
    """Natural logarithm: ``result = ln(dist1)``."""

    DTYPE = np.float64

    def run_np_op(self, dist1):
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.log(dist1)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].log()


class ExpParameter(UnaryTransformedParameter):
    """Exponential: ``result = e ** dist1``."""

    DTYPE = np.float64

    def run_np_op(self, dist1):
        return np.exp(dist1)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].exp()


class SumParameter(UnaryTransformedParameter):
    """Sum over some or all axes.

    :param dist1: Parameter to reduce
    :type dist1: custom_types.ParameterType
    :param axes: Axes to sum over. Defaults to None, which sums over every axis
        and yields a scalar.
    :type axes: Optional[Union[custom_types.Integer, tuple[custom_types.Integer, ...]]]
    :param kwargs: Additional arguments passed to parent class

    :raises ShapeMismatchError: If an axis is out of range
    """

    def __init__(
        self,
        dist1: "custom_types.ParameterType",
        axes: "Optional[custom_types.Integer | tuple[custom_types.Integer, ...]]" = None,
        **kwargs,
    ):
        # Record the axes before the shape is inferred
        self._requested_axes = None if axes is None else utils.normalize_shape(axes)
        self.axes: tuple[int, ...] = ()
        super().__init__(dist1=dist1, **kwargs)

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        in_shape = parent_shapes["dist1"]
        ndim = len(in_shape)
        if self._requested_axes is None:
            self.axes = tuple(range(ndim))
        else:
            if any(not -ndim <= axis < ndim for axis in self._requested_axes):
                raise ShapeMismatchError(
                    f"Cannot sum axes {self._requested_axes} of a value of shape "
                    f"{in_shape}"
                )
            self.axes = tuple(sorted({axis % ndim for axis in self._requested_axes}))
        return tuple(dim for axis, dim in enumerate(in_shape) if axis not in self.axes)

    def run_np_op(self, dist1, axes=None):  # pylint: disable=arguments-differ
        # Axes can only be given when called as a static method
        if self is not None:
            axes = self.axes
        elif axes is not None:
            axes = utils.normalize_shape(axes)
        return np.sum(dist1, axis=axes)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].sum(self.axes)


class ReshapeParameter(UnaryTransformedParameter):
    """Reshape a parameter without changing its data.

    :param dist1: Parameter to reshape
    :type dist1: custom_types.ParameterType
    :param new_shape: Target shape. Must have as many elements as the input.
    :type new_shape: Union[tuple[custom_types.Integer, ...], custom_types.Integer]

    :raises ShapeMismatchError: If the element counts differ
    """

    def __init__(
        self,
        dist1: "custom_types.ParameterType",
        new_shape: "tuple[custom_types.Integer, ...] | custom_types.Integer",
        **kwargs,
    ):
        self.new_shape = utils.normalize_shape(new_shape)
        super().__init__(dist1=dist1, **kwargs)

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        in_shape = parent_shapes["dist1"]
        if int(np.prod(in_shape)) != int(np.prod(self.new_shape)):
            raise ShapeMismatchError(
                f"Cannot reshape a value of shape {in_shape} to {self.new_shape}"
            )
        return self.new_shape

    def run_np_op(self, dist1, new_shape=None):  # pylint: disable=arguments-differ
        if self is not None:
            new_shape = self.new_shape
        return np.reshape(dist1, new_shape)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].reshape(self.new_shape)


class ConcatParameter(TransformedParameter):
    """Concatenate parameters along an existing axis.

    :param dists: Parameters to concatenate. All must have the same number of
        dimensions and agree on every axis except ``axis``.
    :type dists: Sequence[custom_types.ParameterType]
    :param axis: Axis to concatenate along. Defaults to 0.
    :type axis: custom_types.Integer

    :raises ShapeMismatchError: If the shapes of the operands are incompatible
    """

    def __init__(
        self,
        dists: "Sequence[custom_types.ParameterType]",
        axis: "custom_types.Integer" = 0,
        **kwargs,
    ):
        if len(dists) == 0:
            raise ShapeMismatchError("At least one parameter is needed to concatenate")
        self.axis = int(axis)
        self.n_operands = len(dists)
        super().__init__(
            **{f"dist{i}": dist for i, dist in enumerate(dists)}, **kwargs
        )

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        shapes = [parent_shapes[f"dist{i}"] for i in range(self.n_operands)]
        ndim = len(shapes[0])
        if ndim == 0 or not -ndim <= self.axis < ndim:
            raise ShapeMismatchError(
                f"Cannot concatenate values of shape {shapes[0]} along axis {self.axis}"
            )
        self.axis %= ndim

        # Every axis but the concatenation axis must agree
        for shape in shapes[1:]:
            if len(shape) != ndim or any(
                dim != ref for axis, (dim, ref) in enumerate(zip(shape, shapes[0]))
                if axis != self.axis
            ):
                raise ShapeMismatchError(
                    f"Cannot concatenate values of shapes {shapes} along axis "
                    f"{self.axis}"
                )

        out_shape = list(shapes[0])
        out_shape[self.axis] = sum(shape[self.axis] for shape in shapes)
        return tuple(out_shape)

    def run_np_op(  # pylint: disable=arguments-differ
        self, dists=None, axis=0, **draws
    ):
        if self is not None:
            dists = [draws[f"dist{i}"] for i in range(self.n_operands)]
            axis = self.axis
        return np.concatenate([np.asarray(dist) for dist in dists], axis=axis)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        duals = [parent_duals[f"dist{i}"] for i in range(self.n_operands)]

        # Operands missing an ancestor contribute zeros for it
        wrt_shapes = {}
        for dual in duals:
            for vertex_id, partial in dual.partials.items():
                wrt_shapes[vertex_id] = partial.shape[dual.value.ndim :]
        return DualNumber.concat(duals, self.axis, wrt_shapes)


def _normalize_index(
    key: "custom_types.IndexType | tuple", ndim: int
) -> tuple:
    """Convert an index to a tuple without Ellipsis."""
    key = key if isinstance(key, tuple) else (key,)
    key = tuple(np.asarray(entry) if isinstance(entry, list) else entry for entry in key)

    ellipses = [i for i, entry in enumerate(key) if entry is Ellipsis]
    if len(ellipses) > 1:
        raise ShapeMismatchError("An index can only have a single ellipsis")
    if ellipses:
        consumed = sum(
            entry.ndim
            if isinstance(entry, np.ndarray) and entry.dtype == np.bool_
            else 1
            for entry in key
            if entry is not None and entry is not Ellipsis
        )
        position = ellipses[0]
        key = (
            key[:position]
            + (slice(None),) * max(ndim - consumed, 0)
            + key[position + 1 :]
        )
    return key


class PluckParameter(UnaryTransformedParameter):
    """Select elements of a parameter with NumPy indexing.

    Built by indexing a vertex, e.g. ``x[0]``, ``x[:, 1:3]`` or ``x[..., idx]``.

    :param dist1: Parameter to index
    :type dist1: custom_types.ParameterType
    :param key: Any basic or advanced NumPy index
    :type key: custom_types.IndexType

    :raises ShapeMismatchError: If the index is invalid for the parameter's shape
    """

    def __init__(
        self,
        dist1: "custom_types.ParameterType",
        key: "custom_types.IndexType",
        **kwargs,
    ):
        self._raw_key = key
        self.key: tuple = ()
        super().__init__(dist1=dist1, **kwargs)

    def _infer_shape(self, parent_shapes: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
        in_shape = parent_shapes["dist1"]
        self.key = _normalize_index(self._raw_key, len(in_shape))
        try:
            return np.broadcast_to(np.empty((), dtype=np.int8), in_shape)[
                self.key
            ].shape
        except IndexError as error:
            raise ShapeMismatchError(
                f"Index {self._raw_key!r} is invalid for a value of shape {in_shape}"
            ) from error

    def run_np_op(self, dist1, key=None):  # pylint: disable=arguments-differ
        if self is not None:
            key = self.key
        return np.asarray(dist1)[key]

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        return parent_duals["dist1"].slice(self.key)


class WhereParameter(TransformedParameter):
    """Element-wise selection: ``dist1`` where ``condition`` holds, else ``dist2``.

    :param condition: Boolean mask
    :type condition: custom_types.ParameterType
    :param dist1: Values taken where the mask is True
    :type dist1: custom_types.ParameterType
    :param dist2: Values taken where the mask is False
    :type dist2: custom_types.ParameterType

    The derivative is the masked blend of the derivatives of the two branches.
    The mask itself is never differentiated.
    """

    def __init__(
        self,
        condition: "custom_types.ParameterType",
        dist1: "custom_types.ParameterType",
        dist2: "custom_types.ParameterType",
        **kwargs,
    ):
        super().__init__(condition=condition, dist1=dist1, dist2=dist2, **kwargs)

    def _resolve_dtype(self) -> "np.dtype":
        return np.result_type(
            self._parents["dist1"].dtype, self._parents["dist2"].dtype
        )

    def run_np_op(self, condition, dist1, dist2):  # pylint: disable=arguments-differ
        return np.where(np.asarray(condition, dtype=bool), dist1, dist2)

    def calculate_dual(self, parent_duals: dict[str, DualNumber]) -> DualNumber:
        condition = np.asarray(parent_duals["condition"].value, dtype=bool)
        return DualNumber.where(condition, parent_duals["dist1"], parent_duals["dist2"])


class CastToFloatParameter(UnaryTransformedParameter):
    """Convert a boolean or integer parameter to double precision.

    The cast is a floating-point vertex but defines no derivative: requesting a
    dual number through it raises
    :py:class:`~bayesgraph.exceptions.UnsupportedDifferentiationError`.
    """

    DTYPE = np.float64

    def run_np_op(self, dist1):
        return np.asarray(dist1, dtype=np.float64)


# Boolean operations
class BooleanParameter(TransformedParameter):
    """Base class for boolean operators. Never differentiable."""

    DTYPE = np.bool_
    DIFFERENTIABLE = False


class AndParameter(BooleanParameter, BinaryTransformedParameter):
    """Element-wise logical and."""

    def run_np_op(self, dist1, dist2):
        return np.logical_and(dist1, dist2)


class OrParameter(BooleanParameter, BinaryTransformedParameter):
    """Element-wise logical or."""

    def run_np_op(self, dist1, dist2):
        return np.logical_or(dist1, dist2)


class NotParameter(BooleanParameter, UnaryTransformedParameter):
    """Element-wise logical not."""

    def run_np_op(self, dist1):
        return np.logical_not(dist1)
