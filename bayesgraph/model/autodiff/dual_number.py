# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Dual numbers for forward-mode automatic differentiation over tensors.

A :py:class:`DualNumber` pairs a value with the partial derivatives of that value
with respect to a set of ancestor vertices. The partial derivative with respect
to an ancestor of shape ``S_a`` held by a value of shape ``S`` has shape
``S + S_a``: the leading axes index the value, the trailing axes index the
ancestor. Element ``[i..., j...]`` is ``d value[i...] / d ancestor[j...]``.

Every arithmetic rule below works on the leading ("of") axes only, leaving the
trailing ("with respect to") axes untouched. Binary operations broadcast the
partials of each operand to the output shape before applying the product,
quotient or chain rule. Contributions reaching the same ancestor through several
operands are summed.
"""

from __future__ import annotations

from typing import Iterable, Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from bayesgraph import custom_types


class PartialDerivatives:
    """Mapping from ancestor vertex id to partial derivative array.

    A missing entry means the derivative is identically zero.

    :param partials: Initial partial derivatives. Defaults to None (no partials).
    :type partials: Optional[custom_types.PartialsType]
    """

    def __init__(self, partials: Optional["custom_types.PartialsType"] = None):
        self._partials: dict[int, np.ndarray] = dict(partials or {})

    @classmethod
    def with_respect_to_self(
        cls, vertex_id: int, shape: tuple[int, ...]
    ) -> "PartialDerivatives":
        """Identity partial derivative of a vertex with respect to itself.

        :param vertex_id: Id of the vertex
        :type vertex_id: int
        :param shape: Shape of the vertex
        :type shape: tuple[int, ...]

        :returns: Partials holding a single identity entry of shape ``shape + shape``
        :rtype: PartialDerivatives
        """
        size = int(np.prod(shape, dtype=np.int64))
        return cls({vertex_id: np.eye(size).reshape(shape + shape)})

    def get(self, vertex_id: int) -> Optional[np.ndarray]:
        """Get the partial with respect to a vertex id, or None if it is zero."""
        return self._partials.get(vertex_id)

    def map(self, function) -> "PartialDerivatives":
        """Apply a function to every partial derivative array."""
        return PartialDerivatives(
            {
                key: np.asarray(function(partial))
                for key, partial in self._partials.items()
            }
        )

    def add(self, other: "PartialDerivatives") -> "PartialDerivatives":
        """Sum two sets of partial derivatives entry by entry."""
        combined = dict(self._partials)
        for key, partial in other.items():
            combined[key] = (
                np.asarray(combined[key] + partial) if key in combined else partial
            )
        return PartialDerivatives(combined)

    def items(self):
        return self._partials.items()

    def keys(self):
        return self._partials.keys()

    def __contains__(self, vertex_id: int) -> bool:
        return vertex_id in self._partials

    def __len__(self) -> int:
        return len(self._partials)

    def __repr__(self) -> str:
        shapes = {key: partial.shape for key, partial in self._partials.items()}
        return f"PartialDerivatives({shapes})"


class DualNumber:
    """A value together with its partial derivatives.

    :param value: The value
    :type value: custom_types.SampleType
    :param partials: Partial derivatives of the value. Defaults to None, which
        makes the dual number a constant.
    :type partials: Optional[PartialDerivatives]
    """

    def __init__(
        self,
        value: "custom_types.SampleType",
        partials: Optional[PartialDerivatives] = None,
    ):
        self._value = np.asarray(value, dtype=np.float64)
        self._partials = partials if partials is not None else PartialDerivatives()

    @classmethod
    def create_constant(cls, value: "custom_types.SampleType") -> "DualNumber":
        """Dual number with no partial derivatives."""
        return cls(value)

    @classmethod
    def create_with_respect_to_self(
        cls, vertex_id: int, value: "custom_types.SampleType"
    ) -> "DualNumber":
        """Dual number of a leaf vertex: its derivative with respect to itself is
        the identity.
        """
        value = np.asarray(value, dtype=np.float64)
        return cls(value, PartialDerivatives.with_respect_to_self(vertex_id, value.shape))

    @property
    def value(self) -> np.ndarray:
        return self._value

    @property
    def partials(self) -> PartialDerivatives:
        return self._partials

    @property
    def shape(self) -> tuple[int, ...]:
        return self._value.shape

    @property
    def is_constant(self) -> bool:
        return len(self._partials) == 0

    # Shape helpers
    def broadcast_partials(self, shape: tuple[int, ...]) -> PartialDerivatives:
        """Broadcast the leading axes of every partial to ``shape``.

        :param shape: Target value shape. The value shape must broadcast to it.
        :type shape: tuple[int, ...]

        :returns: Broadcast partials
        :rtype: PartialDerivatives
        """
        shape = tuple(shape)
        if shape == self.shape:
            return self._partials
        pad = (1,) * (len(shape) - len(self.shape))
        ndim = len(self.shape)

        def _broadcast(partial):
            wrt_shape = partial.shape[ndim:]
            return np.broadcast_to(
                partial.reshape(pad + partial.shape), shape + wrt_shape
            )

        return self._partials.map(_broadcast)

    @staticmethod
    def _scale(partials: PartialDerivatives, factor: np.ndarray) -> PartialDerivatives:
        """Multiply every partial element-wise by ``factor`` along the leading axes."""
        factor = np.asarray(factor, dtype=np.float64)
        return partials.map(
            lambda partial: partial
            * factor.reshape(factor.shape + (1,) * (partial.ndim - factor.ndim))
        )

    @classmethod
    def _combine(
        cls,
        value: np.ndarray,
        terms: Iterable[tuple["DualNumber", Optional[np.ndarray]]],
    ) -> "DualNumber":
        """Assemble a dual number from per-operand derivative factors.

        :param value: Value of the result
        :type value: np.ndarray
        :param terms: Pairs of (operand, d result / d operand). A factor of None
            means the operand passes through unscaled.
        :type terms: Iterable[tuple[DualNumber, Optional[np.ndarray]]]
        """
        value = np.asarray(value, dtype=np.float64)
        partials = PartialDerivatives()
        for operand, factor in terms:
            if operand.is_constant:
                continue
            broadcast = operand.broadcast_partials(value.shape)
            if factor is not None:
                broadcast = cls._scale(
                    broadcast, np.broadcast_to(factor, value.shape)
                )
            partials = partials.add(broadcast)
        return cls(value, partials)

    # Arithmetic rules
    def add(self, other: "DualNumber") -> "DualNumber":
        return self._combine(
            np.asarray(self._value + other.value), [(self, None), (other, None)]
        )

    def subtract(self, other: "DualNumber") -> "DualNumber":
        return self._combine(
            np.asarray(self._value - other.value),
            [(self, None), (other, np.asarray(-1.0))],
        )

    def multiply(self, other: "DualNumber") -> "DualNumber":
        return self._combine(
            np.asarray(self._value * other.value),
            [(self, other.value), (other, self._value)],
        )

    def divide(self, other: "DualNumber") -> "DualNumber":
        with np.errstate(divide="ignore", invalid="ignore"):
            return self._combine(
                np.asarray(self._value / other.value),
                [
                    (self, np.asarray(1.0 / other.value)),
                    (other, np.asarray(-self._value / other.value**2)),
                ],
            )

    def pow(self, exponent: "DualNumber") -> "DualNumber":
        with np.errstate(divide="ignore", invalid="ignore"):
            result = np.asarray(self._value**exponent.value)
            terms = [
                (
                    self,
                    np.asarray(exponent.value * self._value ** (exponent.value - 1)),
                )
            ]

            # The exponent term involves log(base), which is only evaluated when
            # the exponent actually varies
            if not exponent.is_constant:
                terms.append((exponent, np.asarray(result * np.log(self._value))))
        return self._combine(result, terms)

    def negate(self) -> "DualNumber":
        return self._combine(np.asarray(-self._value), [(self, np.asarray(-1.0))])

    def exp(self) -> "DualNumber":
        result = np.asarray(np.exp(self._value))
        return self._combine(result, [(self, result)])

    def log(self) -> "DualNumber":
        with np.errstate(divide="ignore", invalid="ignore"):
            return self._combine(
                np.asarray(np.log(self._value)), [(self, np.asarray(1.0 / self._value))]
            )

    def abs(self) -> "DualNumber":
        return self._combine(
            np.asarray(np.abs(self._value)), [(self, np.asarray(np.sign(self._value)))]
        )

    # Structural rules
    def sum(self, axes: Optional[tuple[int, ...]] = None) -> "DualNumber":
        """Sum over the given value axes (all axes if None)."""
        if axes is None:
            axes = tuple(range(self._value.ndim))
        axes = tuple(sorted(axis % self._value.ndim for axis in axes)) if axes else ()
        return DualNumber(
            np.asarray(np.sum(self._value, axis=axes)),
            self._partials.map(lambda partial: np.sum(partial, axis=axes)),
        )

    def reshape(self, shape: tuple[int, ...]) -> "DualNumber":
        ndim = self._value.ndim
        value = self._value.reshape(shape)
        return DualNumber(
            value,
            self._partials.map(
                lambda partial: partial.reshape(value.shape + partial.shape[ndim:])
            ),
        )

    def slice(self, key: tuple) -> "DualNumber":
        """Index the value axes. ``key`` must be a tuple indexing leading axes only
        (no Ellipsis).
        """
        return DualNumber(
            np.asarray(self._value[key]), self._partials.map(lambda partial: partial[key])
        )

    @classmethod
    def concat(
        cls,
        duals: list["DualNumber"],
        axis: int,
        wrt_shapes: dict[int, tuple[int, ...]],
    ) -> "DualNumber":
        """Concatenate dual numbers along a value axis.

        Operands without a partial for some ancestor contribute zeros for it.

        :param duals: Dual numbers to concatenate
        :type duals: list[DualNumber]
        :param axis: Value axis to concatenate along
        :type axis: int
        :param wrt_shapes: Shape of every ancestor appearing in any operand
        :type wrt_shapes: dict[int, tuple[int, ...]]
        """
        value = np.concatenate([dual.value for dual in duals], axis=axis)
        axis = axis % value.ndim
        partials = {}
        for key, wrt_shape in wrt_shapes.items():
            pieces = []
            for dual in duals:
                partial = dual.partials.get(key)
                if partial is None:
                    partial = np.zeros(dual.shape + tuple(wrt_shape))
                pieces.append(partial)
            partials[key] = np.concatenate(pieces, axis=axis)
        return cls(value, PartialDerivatives(partials))

    @classmethod
    def where(
        cls, condition: np.ndarray, if_true: "DualNumber", if_false: "DualNumber"
    ) -> "DualNumber":
        """Blend two dual numbers element-wise on a boolean mask."""
        value = np.where(condition, if_true.value, if_false.value).astype(np.float64)
        mask = np.broadcast_to(condition, value.shape)
        true_partials = if_true.broadcast_partials(value.shape)
        false_partials = if_false.broadcast_partials(value.shape)

        partials = {}
        for key in set(true_partials.keys()) | set(false_partials.keys()):
            reference = true_partials.get(key)
            if reference is None:
                reference = false_partials.get(key)
            expanded = mask.reshape(mask.shape + (1,) * (reference.ndim - mask.ndim))
            zeros = np.zeros(reference.shape)
            on_true = true_partials.get(key)
            on_false = false_partials.get(key)
            partials[key] = np.where(
                expanded,
                zeros if on_true is None else on_true,
                zeros if on_false is None else on_false,
            )
        return cls(value, PartialDerivatives(partials))

    # Operator overloads mirror the named rules
    def __add__(self, other: "DualNumber") -> "DualNumber":
        return self.add(other)

    def __sub__(self, other: "DualNumber") -> "DualNumber":
        return self.subtract(other)

    def __mul__(self, other: "DualNumber") -> "DualNumber":
        return self.multiply(other)

    def __truediv__(self, other: "DualNumber") -> "DualNumber":
        return self.divide(other)

    def __pow__(self, other: "DualNumber") -> "DualNumber":
        return self.pow(other)

    def __neg__(self) -> "DualNumber":
        return self.negate()

    def __repr__(self) -> str:
        return f"DualNumber(value={self._value!r}, partials={self._partials!r})"
